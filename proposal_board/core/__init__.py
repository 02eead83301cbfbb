"""Board engine error hierarchy."""
