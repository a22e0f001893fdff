"""Roster entities read from the external student datastore."""
from typing import Optional

from pydantic import BaseModel, Field


class Student(BaseModel):
    """A student as seen by the engine."""
    id: str = Field(..., description="Student identifier")
    roll_number: str = Field(..., description="Roll number, unique within the section")
    full_name: str = Field(..., description="Display name")
    section_id: str = Field(..., description="Section the student belongs to")
    face_registered: bool = Field(False, description="Whether a face signature is on record")
    face_embedding_id: Optional[str] = Field(None, description="Reference to the stored signature")
