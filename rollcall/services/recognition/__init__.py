"""Face detection and encoding backends."""
