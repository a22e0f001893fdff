"""API specific face training and recognition models."""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from rollcall.domain.entities.face import BoundingBox
from rollcall.domain.value_objects.recognition import (
    BulkEnrollmentItem,
    BulkTrainingSummary,
    IndexStatus,
    MatchTier,
    ModelStatus,
    RecognitionResult,
    TrainingOutcome,
    TrainingStatus,
    UnrecognizedReason,
)
from rollcall.services.section_index import SectionIndex

# Constants for validation ranges used in API models
MIN_SCORE = 0.0
MAX_SCORE = 1.0


class FaceTrainingRequest(BaseModel):
    """Request model for the single enrollment endpoint."""
    student_id: str = Field(..., description="Roster identifier of the student", min_length=1, max_length=64)
    roll_number: Optional[str] = Field(None, description="Roll number of the student", max_length=64)
    images: List[str] = Field(..., description="Base64 or data-URL encoded face images (5-10)")
    overwrite: Optional[bool] = Field(
        None, description="Replace an existing signature instead of failing with already_registered"
    )


class FaceTrainingResponse(BaseModel):
    """Response model for the single enrollment endpoint."""
    success: bool = Field(..., description="Whether the face was registered")
    student_id: str = Field(..., description="Roster identifier of the student")
    face_embedding_id: Optional[str] = Field(None, description="Reference to the stored signature")
    message: str = Field(..., description="Human readable summary")
    confidence_score: Optional[float] = Field(
        None, description="Consistency of the enrollment images", ge=MIN_SCORE, le=MAX_SCORE
    )

    @classmethod
    def from_outcome(cls, outcome: TrainingOutcome) -> "FaceTrainingResponse":
        """Convert the service layer TrainingOutcome to the API response model."""
        return cls(
            success=outcome.succeeded,
            student_id=outcome.student_id,
            face_embedding_id=outcome.signature_ref,
            message=outcome.message,
            confidence_score=outcome.confidence_score,
        )


class BulkTrainingStudent(BaseModel):
    """One student row of a bulk upload. Extra roster columns are ignored."""
    serial_no: int = Field(..., description="Serial number linking the row to its image", ge=0)
    roll_number: str = Field(..., description="Roll number within the section", min_length=1, max_length=64)
    student_name: str = Field(..., description="Display name", min_length=1, max_length=200)

    def to_item(self) -> BulkEnrollmentItem:
        return BulkEnrollmentItem(
            serial_no=self.serial_no,
            roll_number=self.roll_number.strip(),
            full_name=self.student_name.strip(),
        )


class BulkTrainingRequest(BaseModel):
    """Request model for the bulk enrollment endpoint."""
    section_id: str = Field(..., description="Section the students belong to", min_length=1, max_length=64)
    students: List[BulkTrainingStudent] = Field(..., description="Students to enroll", min_length=1)
    images: Dict[str, str] = Field(
        default_factory=dict, description="Encoded image per serial number"
    )
    overwrite: Optional[bool] = Field(
        None, description="Replace existing signatures instead of failing with already_registered"
    )


class BulkTrainingResult(BaseModel):
    """Per-student result of a bulk enrollment."""
    serial_no: int
    roll_number: str
    status: TrainingStatus
    student_id: Optional[str] = None
    face_embedding_id: Optional[str] = None
    confidence_score: Optional[float] = None
    error_code: Optional[str] = None
    message: Optional[str] = None


class BulkTrainingResponse(BaseModel):
    """Response model for the bulk enrollment endpoint."""
    success: bool = Field(..., description="True when no item failed")
    total: int
    trained: int
    failed: int
    cancelled: int = 0
    results: List[BulkTrainingResult] = Field(default_factory=list)

    @classmethod
    def from_summary(cls, summary: BulkTrainingSummary) -> "BulkTrainingResponse":
        """Convert the service layer BulkTrainingSummary to the API response model."""
        results = [
            BulkTrainingResult(
                serial_no=outcome.serial_no,
                roll_number=outcome.roll_number,
                status=outcome.status,
                student_id=outcome.student_id,
                face_embedding_id=outcome.signature_ref,
                confidence_score=outcome.confidence_score,
                error_code=outcome.error_code,
                message=outcome.message or None,
            )
            for outcome in summary.results
        ]
        return cls(
            success=summary.failed == 0 and summary.cancelled == 0,
            total=summary.total,
            trained=summary.trained,
            failed=summary.failed,
            cancelled=summary.cancelled,
            results=results,
        )


class FaceRecognitionRequest(BaseModel):
    """Request model for the recognition endpoint."""
    class_id: Optional[str] = Field(None, description="Camera stream / class session identifier", max_length=64)
    section_id: str = Field(..., description="Section whose model to match against", min_length=1, max_length=64)
    image: str = Field(..., description="Base64 or data-URL encoded frame", min_length=1)
    timestamp: Optional[datetime] = Field(None, description="Capture time reported by the client")


class RecognizedStudent(BaseModel):
    """API model for a recognized face."""
    student_id: str
    roll_number: Optional[str] = None
    student_name: Optional[str] = None
    confidence: float = Field(..., description="Cosine similarity clipped to [0, 1]", ge=MIN_SCORE, le=MAX_SCORE)
    match_tier: MatchTier
    bounding_box: BoundingBox


class UnrecognizedFaceRecord(BaseModel):
    """API model for an unrecognized face."""
    bounding_box: BoundingBox
    reason: UnrecognizedReason
    message: str
    confidence: Optional[float] = None


class FaceRecognitionResponse(BaseModel):
    """Response model for the recognition endpoint."""
    success: bool = True
    faces_detected: int
    recognized: List[RecognizedStudent] = Field(default_factory=list)
    unrecognized: List[UnrecognizedFaceRecord] = Field(default_factory=list)
    index_status: IndexStatus
    model_id: Optional[str] = None
    timestamp: Optional[datetime] = None

    @classmethod
    def from_result(
        cls, result: RecognitionResult, timestamp: Optional[datetime] = None
    ) -> "FaceRecognitionResponse":
        """Convert the service layer RecognitionResult to the API response model."""
        recognized = [
            RecognizedStudent(
                student_id=face.student_id,
                roll_number=face.roll_number,
                student_name=face.full_name,
                confidence=max(MIN_SCORE, min(MAX_SCORE, face.similarity)),
                match_tier=face.match_tier,
                bounding_box=face.bounding_box,
            )
            for face in result.recognized
        ]
        unrecognized = [
            UnrecognizedFaceRecord(
                bounding_box=face.bounding_box,
                reason=face.reason,
                message=face.message,
                confidence=face.similarity,
            )
            for face in result.unrecognized
        ]
        return cls(
            faces_detected=result.faces_detected,
            recognized=recognized,
            unrecognized=unrecognized,
            index_status=result.index_status,
            model_id=result.model_id,
            timestamp=timestamp,
        )


class TrainModelRequest(BaseModel):
    """Request model for the train-model endpoint."""
    section_id: str = Field(..., description="Section to build a model for", min_length=1, max_length=64)


class TrainModelResponse(BaseModel):
    """Response model for the train-model endpoint."""
    success: bool
    message: str
    model_id: Optional[str] = None
    students_count: int = 0

    @classmethod
    def from_index(cls, index: SectionIndex) -> "TrainModelResponse":
        return cls(
            success=True,
            message=f"Model trained with {index.students_count} student(s)",
            model_id=index.model_id,
            students_count=index.students_count,
        )


class ModelStatusResponse(BaseModel):
    """Response model for the model status endpoint."""
    section_id: str
    is_trained: bool
    is_stale: bool = False
    model_id: Optional[str] = None
    last_trained_at: Optional[datetime] = None
    students_count: int
    trained_students_count: int

    @classmethod
    def from_status(cls, status: ModelStatus) -> "ModelStatusResponse":
        return cls(**status.model_dump())
