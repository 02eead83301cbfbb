"""Board engine and persistence services."""
