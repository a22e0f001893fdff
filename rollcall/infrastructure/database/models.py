"""SQLAlchemy models for the attendance face engine."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, LargeBinary, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Student(Base):
    """Roster row for a student, mirroring the external student datastore."""

    __tablename__ = "students"
    __table_args__ = (
        UniqueConstraint("section_id", "roll_number", name="uq_students_section_roll"),
        Index("idx_students_section", "section_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    roll_number: Mapped[str] = mapped_column(String(64), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    section_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="External section identifier"
    )
    face_registered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    face_embedding_id: Mapped[str] = mapped_column(
        String(64),
        nullable=True,
        comment="Reference to the student's current face signature"
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class FaceSignature(Base):
    """The single current face signature of a student."""

    __tablename__ = "face_signatures"

    student_id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        comment="Owning student; one row per student"
    )
    signature_ref: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, default=_new_id)
    vector: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
        comment="float32 signature bytes"
    )
    dim: Mapped[int] = mapped_column(Integer, nullable=False)
    image_count: Mapped[int] = mapped_column(Integer, nullable=False)
    consistency_score: Mapped[float] = mapped_column(Float, nullable=False)
    model_name: Mapped[str] = mapped_column(String(64), nullable=True)
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Incremented on every overwrite"
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
