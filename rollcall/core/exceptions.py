"""Custom exceptions for the attendance face engine.

Every engine error carries a stable ``error_code`` that is returned on the wire.
"""
from typing import Optional


class FaceRecognitionError(Exception):
    """Base exception for face recognition operations."""

    error_code = "internal_error"

    def __init__(self, message: str, details: Optional[dict] = None):
        """
        Initialize face recognition error.

        Args:
            message: Error description
            details: Additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class DecodeError(FaceRecognitionError):
    """Raised when an image payload is corrupt, unsupported or out of bounds."""
    error_code = "decode_error"


class FaceNotDetectedError(FaceRecognitionError):
    """Raised when an enrollment image contains no face."""
    error_code = "face_not_detected"


class MultipleFacesDetectedError(FaceRecognitionError):
    """Raised when an enrollment image contains more than one face."""
    error_code = "multiple_faces"


class LowQualityError(FaceRecognitionError):
    """Raised when enrollment embeddings disagree or are too few."""
    error_code = "low_quality"


class AlreadyRegisteredError(FaceRecognitionError):
    """Raised when a student already has a signature and overwrite was not requested."""
    error_code = "already_registered"


class EncodingFailedError(FaceRecognitionError):
    """Raised when the embedding model fails or times out on a face."""
    error_code = "training_failed"


class InvalidImageCountError(FaceRecognitionError):
    """Raised when an enrollment carries too few or too many images."""
    error_code = "invalid_image_count"


class NoImageError(FaceRecognitionError):
    """Raised when a bulk item has no matching image."""
    error_code = "no_image"


class NotFoundError(FaceRecognitionError):
    """Raised when a student or signature does not exist."""
    error_code = "not_found"


class EmptyIndexError(FaceRecognitionError):
    """Raised when searching an index built from zero signatures."""
    error_code = "empty_index"


class NoStudentsError(FaceRecognitionError):
    """Raised when a section has no enrolled signatures to build a model from."""
    error_code = "no_students"


class IndexUnavailableError(FaceRecognitionError):
    """Raised when the section index cannot be built or loaded."""
    error_code = "index_unavailable"


class RecognitionBusyError(FaceRecognitionError):
    """Raised when a stream already has a recognition in flight."""
    error_code = "recognition_busy"


class CancelledError(FaceRecognitionError):
    """Raised for bulk items that never started because the caller cancelled."""
    error_code = "cancelled"


class UnauthorizedError(FaceRecognitionError):
    """Raised when the principal's role does not permit the operation."""
    error_code = "unauthorized"


class ModelLoadError(FaceRecognitionError):
    """Raised when the face recognition model fails to load."""
    pass


class StoreError(FaceRecognitionError):
    """Raised when the embedding store or roster fails."""
    error_code = "store_error"


class ServiceNotInitializedError(FaceRecognitionError):
    """Raised when a dependency is requested before the container is ready."""
    error_code = "service_unavailable"


class ForbiddenError(UnauthorizedError):
    """Raised when an authenticated principal lacks the required role."""
    pass
