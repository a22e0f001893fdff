"""Domain entities package."""
from .face import BoundingBox, DetectedFace, FaceImage, FaceSignature, ImageSource
from .student import Student

__all__ = ["BoundingBox", "DetectedFace", "FaceImage", "FaceSignature", "ImageSource", "Student"]
