"""Core utilities package."""
