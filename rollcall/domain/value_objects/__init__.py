"""Value objects package."""
from .recognition import (
    BulkEnrollmentItem,
    BulkTrainingSummary,
    ImageFailure,
    IndexMatch,
    IndexStatus,
    MatchTier,
    ModelStatus,
    RecognitionResult,
    RecognizedFace,
    TrainingOutcome,
    TrainingStatus,
    UnrecognizedFace,
    UnrecognizedReason,
)

__all__ = [
    "BulkEnrollmentItem",
    "BulkTrainingSummary",
    "ImageFailure",
    "IndexMatch",
    "IndexStatus",
    "MatchTier",
    "ModelStatus",
    "RecognitionResult",
    "RecognizedFace",
    "TrainingOutcome",
    "TrainingStatus",
    "UnrecognizedFace",
    "UnrecognizedReason",
]
