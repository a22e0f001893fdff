"""Core face domain entities."""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ImageSource(str, Enum):
    """Context an image was submitted in."""
    ENROLLMENT = "enrollment"
    LIVE_FRAME = "live_frame"


class BoundingBox(BaseModel):
    """Face bounding box in source-image pixel coordinates."""
    x: int = Field(..., description="Left edge in pixels")
    y: int = Field(..., description="Top edge in pixels")
    width: int = Field(..., description="Width in pixels")
    height: int = Field(..., description="Height in pixels")


class FaceImage(BaseModel):
    """A decoded picture, alive only for one detect and encode pass."""
    pixels: np.ndarray = Field(..., description="BGR pixel buffer (height, width, 3)")
    width: int = Field(..., description="Image width in pixels")
    height: int = Field(..., description="Image height in pixels")
    format: str = Field(..., description="Detected encoding format, e.g. jpeg")
    source: ImageSource = Field(..., description="Enrollment image or live frame")

    model_config = ConfigDict(arbitrary_types_allowed=True)


class DetectedFace(BaseModel):
    """One located face within a FaceImage."""
    bounding_box: BoundingBox = Field(..., description="Bounding box coordinates")
    confidence: float = Field(..., description="Detector confidence score (0-1)")
    landmarks: Optional[np.ndarray] = Field(None, description="Five-point landmarks as (5, 2) array")

    model_config = ConfigDict(arbitrary_types_allowed=True)


class FaceSignature(BaseModel):
    """A student's current unit-length face signature and how it was derived."""
    student_id: str = Field(..., description="Owning student identifier")
    embedding: np.ndarray = Field(..., description="Unit-normalized signature vector")
    image_count: int = Field(..., description="Number of images the signature was derived from")
    consistency_score: float = Field(..., description="Minimum pairwise cosine similarity of the inputs")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the signature was derived"
    )
    signature_ref: Optional[str] = Field(None, description="Identifier assigned when the signature was stored")
    version: int = Field(1, description="Number of times this student's signature has been written")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator('embedding', mode='before')
    @classmethod
    def validate_embedding(cls, v: Union[np.ndarray, list]) -> np.ndarray:
        """Validate and convert embedding to a flat float32 array."""
        arr = np.asarray(v, dtype=np.float32).reshape(-1)
        if arr.size == 0:
            raise ValueError("Signature embedding must not be empty")
        return arr

    @property
    def dim(self) -> int:
        return int(self.embedding.shape[0])
