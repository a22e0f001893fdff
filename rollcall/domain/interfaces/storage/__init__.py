"""Storage interfaces package."""
from .embedding_store import EmbeddingStore
from .roster import RosterStore

__all__ = ["EmbeddingStore", "RosterStore"]
