"""Core load-generation engine."""
