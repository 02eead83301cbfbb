"""Shared request helpers."""
