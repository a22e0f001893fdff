"""Database repositories for the attendance face engine."""
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.infrastructure.database.models import FaceSignature, Student


class StudentRepository:
    """Repository for roster operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository.

        Args:
            session: Database session
        """
        self._session = session

    async def get(self, student_id: str) -> Optional[Student]:
        return await self._session.get(Student, student_id)

    async def get_by_roll_number(self, section_id: str, roll_number: str) -> Optional[Student]:
        """Get a section's student by roll number.

        Args:
            section_id: External section identifier
            roll_number: Roll number within the section

        Returns:
            Optional[Student]: Found student or None
        """
        stmt = select(Student).where(
            Student.section_id == section_id,
            Student.roll_number == roll_number
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        section_id: str,
        roll_number: str,
        full_name: str,
        student_id: Optional[str] = None,
    ) -> Student:
        """Create a new student record."""
        student = Student(
            section_id=section_id,
            roll_number=roll_number,
            full_name=full_name,
        )
        if student_id:
            student.id = student_id
        self._session.add(student)
        await self._session.flush()
        return student

    async def mark_face_registered(self, student_id: str, signature_ref: str) -> Optional[Student]:
        """Flag a student as face-registered.

        Returns:
            Optional[Student]: The updated row, or None if the student is unknown
        """
        student = await self.get(student_id)
        if student is not None:
            student.face_registered = True
            student.face_embedding_id = signature_ref
            await self._session.flush()
        return student

    async def list_by_section(self, section_id: str) -> List[Student]:
        stmt = (
            select(Student)
            .where(Student.section_id == section_id)
            .order_by(Student.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class FaceSignatureRepository:
    """Repository for face signature rows."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository.

        Args:
            session: Database session
        """
        self._session = session

    async def get(self, student_id: str) -> Optional[FaceSignature]:
        return await self._session.get(FaceSignature, student_id)

    async def get_many(self, student_ids: Sequence[str]) -> List[FaceSignature]:
        """Get the signatures of the given students.

        Args:
            student_ids: Student identifiers

        Returns:
            List[FaceSignature]: Rows for the students that have one, ordered by student id
        """
        if not student_ids:
            return []
        stmt = (
            select(FaceSignature)
            .where(FaceSignature.student_id.in_(list(student_ids)))
            .order_by(FaceSignature.student_id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def upsert(
        self,
        student_id: str,
        signature_ref: str,
        vector: bytes,
        dim: int,
        image_count: int,
        consistency_score: float,
        model_name: Optional[str],
        created_at,
    ) -> FaceSignature:
        """Insert or replace a student's signature row.

        Returns:
            FaceSignature: The written row, with ``version`` bumped on overwrite
        """
        row = await self.get(student_id)
        if row is None:
            row = FaceSignature(student_id=student_id, version=1)
            self._session.add(row)
        else:
            row.version = row.version + 1

        row.signature_ref = signature_ref
        row.vector = vector
        row.dim = dim
        row.image_count = image_count
        row.consistency_score = consistency_score
        row.model_name = model_name
        row.created_at = created_at
        await self._session.flush()
        return row
