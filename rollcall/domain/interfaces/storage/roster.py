"""Roster interface for the external student datastore."""
from abc import ABC, abstractmethod
from typing import List, Optional

from ...entities.student import Student


class RosterStore(ABC):
    """Narrow view of the relational student records the engine depends on."""

    @abstractmethod
    async def get_student(self, student_id: str) -> Student:
        """
        Get a student by id.

        Raises:
            NotFoundError: If the student does not exist
        """
        pass

    @abstractmethod
    async def find_by_roll_number(self, section_id: str, roll_number: str) -> Optional[Student]:
        """Find a student of a section by roll number."""
        pass

    @abstractmethod
    async def ensure_student(self, section_id: str, roll_number: str, full_name: str) -> Student:
        """Get a section's student by roll number, registering it if it is missing."""
        pass

    @abstractmethod
    async def list_section_students(self, section_id: str) -> List[Student]:
        """List all students of a section."""
        pass
