"""Section model lifecycle: building, publishing and tracking section indexes."""
import asyncio
import weakref
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Optional

from rollcall.core.config import settings
from rollcall.core.exceptions import (
    FaceRecognitionError,
    IndexUnavailableError,
    NoStudentsError,
)
from rollcall.core.logging import get_logger
from rollcall.domain.interfaces.storage.embedding_store import EmbeddingStore
from rollcall.domain.interfaces.storage.roster import RosterStore
from rollcall.domain.value_objects.recognition import ModelStatus
from rollcall.services.section_index import SectionIndex, build_index

logger = get_logger(__name__)


class ModelLifecycleManager:
    """Owns the current index of every section.

    Indexes are never mutated: a rebuild produces a new ``SectionIndex`` that
    replaces the old one with a single dict assignment, so a reader that
    already captured a handle keeps searching a consistent snapshot.

    Enrollment calls ``mark_stale`` after writing a signature. A section is
    stale while its change counter is ahead of the counter its index was
    built from; with lazy rebuild enabled, the next recognition rebuilds it.

    Example:
        ```python
        manager = ModelLifecycleManager(embedding_store, roster)
        index = await manager.train_model("section-a")
        status = await manager.get_status("section-a")
        ```
    """

    def __init__(
        self,
        embedding_store: EmbeddingStore,
        roster: RosterStore,
        lazy_rebuild: Optional[bool] = None,
    ) -> None:
        self._store = embedding_store
        self._roster = roster
        self.lazy_rebuild = settings.LAZY_INDEX_REBUILD if lazy_rebuild is None else lazy_rebuild
        self._indexes: Dict[str, SectionIndex] = {}
        self._data_versions: Dict[str, int] = defaultdict(int)
        # data version at which a section last turned out to have no signatures
        self._empty_versions: Dict[str, int] = {}
        self._build_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _build_lock(self, section_id: str) -> asyncio.Lock:
        lock = self._build_locks.get(section_id)
        if lock is None:
            lock = asyncio.Lock()
            self._build_locks[section_id] = lock
        return lock

    def current_index(self, section_id: str) -> Optional[SectionIndex]:
        """Return the published index for a section, if any."""
        return self._indexes.get(section_id)

    def mark_stale(self, section_id: str) -> None:
        """Record that a section's signatures changed since its last build."""
        self._data_versions[section_id] += 1

    def is_stale(self, section_id: str) -> bool:
        index = self._indexes.get(section_id)
        if index is None:
            return False
        return self._data_versions[section_id] > index.data_version

    async def train_model(self, section_id: str) -> SectionIndex:
        """Build and publish a new index for a section.

        Returns:
            The newly published index

        Raises:
            NoStudentsError: If no student of the section has a signature
            IndexUnavailableError: If the roster or store cannot be read
        """
        async with self._build_lock(section_id):
            data_version = self._data_versions[section_id]
            try:
                students = await self._roster.list_section_students(section_id)
                signatures = await self._store.get_all_for_section(
                    section_id, [student.id for student in students]
                )
            except FaceRecognitionError as e:
                logger.error("Failed to load section signatures", section_id=section_id, error=str(e))
                raise IndexUnavailableError(
                    f"Could not load signatures for section {section_id}",
                    details={"section_id": section_id}
                )

            if not signatures:
                logger.warning("No enrolled students to train", section_id=section_id)
                self._empty_versions[section_id] = data_version
                raise NoStudentsError(
                    "No students with registered faces in this section",
                    details={"section_id": section_id, "students_count": len(students)}
                )

            previous = self._indexes.get(section_id)
            generation = 1 if previous is None else previous.generation + 1
            index = build_index(
                section_id,
                signatures,
                generation=generation,
                model_id=f"{section_id}-v{generation}",
                built_at=datetime.now(timezone.utc),
                data_version=data_version,
            )
            self._indexes[section_id] = index
            self._empty_versions.pop(section_id, None)

        logger.info(
            "Built section index",
            section_id=section_id,
            model_id=index.model_id,
            students_count=index.students_count,
            generation=generation
        )
        return index

    async def index_for_recognition(self, section_id: str) -> Optional[SectionIndex]:
        """Return the index to match a frame against.

        Builds the index first when lazy rebuild is enabled and the section has
        no index yet or has changed since the last build.

        Returns:
            The index, or None when the section has no enrolled signatures
        """
        index = self._indexes.get(section_id)
        if not self.lazy_rebuild:
            return index
        if index is not None and not self.is_stale(section_id):
            return index
        if index is None and self._empty_versions.get(section_id) == self._data_versions[section_id]:
            return None

        try:
            return await self.train_model(section_id)
        except NoStudentsError:
            return self._indexes.get(section_id)

    async def get_status(self, section_id: str) -> ModelStatus:
        """Report a section's training state without rebuilding anything."""
        index = self._indexes.get(section_id)
        students = await self._roster.list_section_students(section_id)
        return ModelStatus(
            section_id=section_id,
            is_trained=index is not None,
            is_stale=self.is_stale(section_id),
            model_id=None if index is None else index.model_id,
            last_trained_at=None if index is None else index.built_at,
            students_count=len(students),
            trained_students_count=sum(1 for student in students if student.face_registered),
        )
