"""Recognition interfaces package."""
from .face_recognition import FaceDetector, FaceEncoder

__all__ = ["FaceDetector", "FaceEncoder"]
