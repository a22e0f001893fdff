"""Face recognition and enrollment value objects."""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from rollcall.domain.entities.face import BoundingBox


class MatchTier(str, Enum):
    """How confident a recognized match is."""
    AUTO = "auto"
    SUGGESTED = "suggested"


class IndexStatus(str, Enum):
    """Whether a section index was available for a recognition call."""
    READY = "ready"
    NOT_TRAINED = "not_trained"


class UnrecognizedReason(str, Enum):
    """Why a detected face was not matched to a student."""
    BELOW_THRESHOLD = "below_threshold"
    PROCESSING_ERROR = "processing_error"
    DUPLICATE_MATCH = "duplicate_match"
    NOT_TRAINED = "not_trained"


class IndexMatch(BaseModel):
    """A single nearest-neighbour hit from a section index."""
    student_id: str = Field(..., description="Matched student identifier")
    similarity: float = Field(..., description="Cosine similarity with the query")


class RecognizedFace(BaseModel):
    """A detected face matched to an enrolled student."""
    student_id: str = Field(..., description="Matched student identifier")
    similarity: float = Field(..., description="Cosine similarity with the student's signature")
    bounding_box: BoundingBox = Field(..., description="Face location in the frame")
    match_tier: MatchTier = Field(..., description="Auto-accepted or suggested match")
    roll_number: Optional[str] = Field(None, description="Roll number from the roster")
    full_name: Optional[str] = Field(None, description="Display name from the roster")


class UnrecognizedFace(BaseModel):
    """A detected face that was not matched."""
    bounding_box: BoundingBox = Field(..., description="Face location in the frame")
    reason: UnrecognizedReason = Field(..., description="Why the face was not matched")
    message: str = Field(..., description="Human readable explanation")
    similarity: Optional[float] = Field(None, description="Best similarity seen, if a search ran")


class RecognitionResult(BaseModel):
    """Outcome of matching one frame against a section index."""
    faces_detected: int = Field(..., description="Number of faces found in the frame")
    recognized: List[RecognizedFace] = Field(default_factory=list)
    unrecognized: List[UnrecognizedFace] = Field(default_factory=list)
    index_status: IndexStatus = Field(IndexStatus.READY, description="Index availability for this call")
    model_id: Optional[str] = Field(None, description="Index the frame was matched against")


class TrainingStatus(str, Enum):
    """Terminal state of one enrollment attempt."""
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ImageFailure(BaseModel):
    """A problem found with one enrollment image."""
    image_index: int = Field(..., description="1-based position of the image in the request")
    error_code: str = Field(..., description="Stable error code")
    message: str = Field(..., description="Human readable explanation")


class TrainingOutcome(BaseModel):
    """Per-student result of an enrollment attempt."""
    status: TrainingStatus = Field(..., description="Success, failure or cancellation")
    student_id: Optional[str] = Field(None, description="Enrolled student identifier")
    signature_ref: Optional[str] = Field(None, description="Reference to the stored signature")
    confidence_score: Optional[float] = Field(None, description="Signature consistency score")
    error_code: Optional[str] = Field(None, description="Stable error code on failure")
    message: str = Field("", description="Human readable summary")
    failures: List[ImageFailure] = Field(default_factory=list)
    serial_no: Optional[int] = Field(None, description="Bulk item serial number")
    roll_number: Optional[str] = Field(None, description="Bulk item roll number")

    @property
    def succeeded(self) -> bool:
        return self.status == TrainingStatus.SUCCESS


class BulkEnrollmentItem(BaseModel):
    """One student row of a bulk enrollment."""
    serial_no: int = Field(..., description="Serial number linking the row to its image")
    roll_number: str = Field(..., description="Roll number within the section")
    full_name: str = Field(..., description="Display name")


class BulkTrainingSummary(BaseModel):
    """Aggregate result of a bulk enrollment."""
    total: int = Field(..., description="Number of items submitted")
    trained: int = Field(..., description="Number of items enrolled")
    failed: int = Field(..., description="Number of items that failed")
    cancelled: int = Field(0, description="Number of items never started because of cancellation")
    results: List[TrainingOutcome] = Field(default_factory=list)


class ModelStatus(BaseModel):
    """Training state of a section model."""
    section_id: str
    is_trained: bool
    is_stale: bool = False
    model_id: Optional[str] = None
    last_trained_at: Optional[datetime] = None
    students_count: int = 0
    trained_students_count: int = 0
