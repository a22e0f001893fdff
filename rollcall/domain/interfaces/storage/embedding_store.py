"""Embedding store interface for per-student face signatures."""
from abc import ABC, abstractmethod
from typing import List, Sequence, Tuple

from ...entities.face import FaceSignature


class EmbeddingStore(ABC):
    """Durable keyed persistence of the current signature of each student.

    The store knows nothing about sections; callers pass the student ids
    they resolved from the roster.
    """

    @abstractmethod
    async def put(
        self,
        student_id: str,
        signature: FaceSignature,
        overwrite: bool = True,
    ) -> FaceSignature:
        """
        Store a student's signature and flag the student face-registered.

        The existence check, the write and the flag happen atomically per student.

        Args:
            student_id: Student identifier
            signature: Signature to store
            overwrite: Replace an existing signature instead of rejecting the write

        Returns:
            The stored signature with its ``signature_ref`` and ``version`` set

        Raises:
            AlreadyRegisteredError: If a signature exists and overwrite is off
            StoreError: If the write fails; neither the signature nor the flag is left behind
        """
        pass

    @abstractmethod
    async def get(self, student_id: str) -> FaceSignature:
        """
        Fetch a student's current signature.

        Raises:
            NotFoundError: If the student has no signature on record
        """
        pass

    @abstractmethod
    async def exists(self, student_id: str) -> bool:
        """Check whether a student has a signature on record."""
        pass

    @abstractmethod
    async def get_all_for_section(
        self,
        section_id: str,
        student_ids: Sequence[str],
    ) -> List[Tuple[str, FaceSignature]]:
        """
        Fetch the signatures of a section's students.

        Args:
            section_id: Section identifier, used for logging only
            student_ids: Students of the section as resolved from the roster

        Returns:
            One ``(student_id, signature)`` pair per enrolled student, ordered by student id.
            Students without a signature are omitted.
        """
        pass
