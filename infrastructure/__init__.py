"""Persistence and logging infrastructure for GrowHub."""
