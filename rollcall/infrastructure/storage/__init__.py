"""Storage backends for signatures and the roster."""
