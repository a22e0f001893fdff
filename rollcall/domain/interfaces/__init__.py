"""Service interfaces package."""
from .recognition import FaceDetector, FaceEncoder
from .storage import EmbeddingStore, RosterStore

__all__ = ["FaceDetector", "FaceEncoder", "EmbeddingStore", "RosterStore"]
