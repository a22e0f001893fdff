"""SQLAlchemy implementation of the roster collaborator."""
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rollcall.core.exceptions import NotFoundError, StoreError
from rollcall.core.logging import get_logger
from rollcall.domain.entities.student import Student
from rollcall.domain.interfaces.storage.roster import RosterStore
from rollcall.infrastructure.database import models
from rollcall.infrastructure.database.session import get_db_session
from rollcall.infrastructure.database.unit_of_work import UnitOfWork

logger = get_logger(__name__)


def _to_student(row: models.Student) -> Student:
    return Student(
        id=row.id,
        roll_number=row.roll_number,
        full_name=row.full_name,
        section_id=row.section_id,
        face_registered=row.face_registered,
        face_embedding_id=row.face_embedding_id,
    )


class SqlRosterStore(RosterStore):
    """Roster backed by the ``students`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_student(self, student_id: str) -> Student:
        try:
            async with get_db_session(self._session_factory) as session:
                row = await UnitOfWork(session).students.get(student_id)
                student = None if row is None else _to_student(row)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read student: {str(e)}")

        if student is None:
            raise NotFoundError(
                f"Student not found: {student_id}",
                details={"student_id": student_id}
            )
        return student

    async def find_by_roll_number(self, section_id: str, roll_number: str) -> Optional[Student]:
        try:
            async with get_db_session(self._session_factory) as session:
                row = await UnitOfWork(session).students.get_by_roll_number(section_id, roll_number)
                return None if row is None else _to_student(row)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read student: {str(e)}")

    async def ensure_student(self, section_id: str, roll_number: str, full_name: str) -> Student:
        existing = await self.find_by_roll_number(section_id, roll_number)
        if existing is not None:
            return existing

        try:
            async with get_db_session(self._session_factory) as session:
                async with UnitOfWork(session) as uow:
                    row = await uow.students.create(
                        section_id=section_id,
                        roll_number=roll_number,
                        full_name=full_name,
                    )
                    student = _to_student(row)
        except IntegrityError:
            # Registered concurrently by another request
            existing = await self.find_by_roll_number(section_id, roll_number)
            if existing is None:
                raise StoreError(f"Failed to register student {roll_number}")
            return existing
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to register student: {str(e)}")

        logger.info(
            "Registered student in roster",
            section_id=section_id,
            roll_number=roll_number,
            student_id=student.id
        )
        return student

    async def add_student(
        self,
        section_id: str,
        roll_number: str,
        full_name: str,
        student_id: Optional[str] = None,
    ) -> Student:
        """Create a student with an optional fixed id (seeding and tests)."""
        try:
            async with get_db_session(self._session_factory) as session:
                async with UnitOfWork(session) as uow:
                    row = await uow.students.create(
                        section_id=section_id,
                        roll_number=roll_number,
                        full_name=full_name,
                        student_id=student_id,
                    )
                    return _to_student(row)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to register student: {str(e)}")

    async def list_section_students(self, section_id: str) -> List[Student]:
        try:
            async with get_db_session(self._session_factory) as session:
                rows = await UnitOfWork(session).students.list_by_section(section_id)
                return [_to_student(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list section students: {str(e)}")

