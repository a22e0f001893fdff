"""SQLAlchemy implementation of the embedding store."""
import asyncio
import uuid
import weakref
from typing import List, Optional, Sequence, Tuple

import numpy as np
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rollcall.core.exceptions import AlreadyRegisteredError, NotFoundError, StoreError
from rollcall.core.logging import get_logger
from rollcall.domain.entities.face import FaceSignature
from rollcall.domain.interfaces.storage.embedding_store import EmbeddingStore
from rollcall.infrastructure.database import models
from rollcall.infrastructure.database.session import get_db_session
from rollcall.infrastructure.database.unit_of_work import UnitOfWork

logger = get_logger(__name__)


class SqlEmbeddingStore(EmbeddingStore):
    """Stores one signature row per student.

    Each ``put`` replaces the row inside a single transaction, so readers see
    either the previous or the new vector, never a mix. The student's roster
    row is flagged face-registered in the same transaction. Writes for the
    same student are serialized by a per-student lock; writes for different
    students proceed independently.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        model_name: Optional[str] = None,
    ) -> None:
        """Initialize the store.

        Args:
            session_factory: Factory for database sessions
            model_name: Encoder model recorded alongside each signature
        """
        self._session_factory = session_factory
        self._model_name = model_name
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, student_id: str) -> asyncio.Lock:
        # entries drop out once no writer holds the lock
        lock = self._locks.get(student_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[student_id] = lock
        return lock

    async def put(
        self,
        student_id: str,
        signature: FaceSignature,
        overwrite: bool = True,
    ) -> FaceSignature:
        vector = np.ascontiguousarray(signature.embedding, dtype=np.float32)
        signature_ref = str(uuid.uuid4())

        version = None
        async with self._lock_for(student_id):
            try:
                async with get_db_session(self._session_factory) as session:
                    async with UnitOfWork(session) as uow:
                        if overwrite or await uow.signatures.get(student_id) is None:
                            version = await self._write(uow, student_id, signature_ref, vector, signature)
            except SQLAlchemyError as e:
                logger.error(
                    "Failed to store face signature",
                    student_id=student_id,
                    error=str(e),
                    exc_info=True
                )
                raise StoreError(f"Failed to store face signature: {str(e)}")

        if version is None:
            raise AlreadyRegisteredError(
                f"Student {student_id} already has a registered face",
                details={"student_id": student_id}
            )
        logger.debug(
            "Stored face signature",
            student_id=student_id,
            signature_ref=signature_ref,
            version=version
        )
        return signature.model_copy(update={
            "student_id": student_id,
            "signature_ref": signature_ref,
            "version": version,
        })

    async def _write(
        self,
        uow: UnitOfWork,
        student_id: str,
        signature_ref: str,
        vector: np.ndarray,
        signature: FaceSignature,
    ) -> int:
        row = await uow.signatures.upsert(
            student_id=student_id,
            signature_ref=signature_ref,
            vector=vector.tobytes(),
            dim=int(vector.shape[0]),
            image_count=signature.image_count,
            consistency_score=float(signature.consistency_score),
            model_name=self._model_name,
            created_at=signature.created_at,
        )
        # roster flag commits or rolls back with the signature
        await uow.students.mark_face_registered(student_id, signature_ref)
        return row.version

    async def get(self, student_id: str) -> FaceSignature:
        try:
            async with get_db_session(self._session_factory) as session:
                row = await UnitOfWork(session).signatures.get(student_id)
                signature = None if row is None else self._to_signature(row)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read face signature: {str(e)}")

        if signature is None:
            raise NotFoundError(
                f"No face signature for student {student_id}",
                details={"student_id": student_id}
            )
        return signature

    async def exists(self, student_id: str) -> bool:
        try:
            await self.get(student_id)
        except NotFoundError:
            return False
        return True

    async def get_all_for_section(
        self,
        section_id: str,
        student_ids: Sequence[str],
    ) -> List[Tuple[str, FaceSignature]]:
        try:
            async with get_db_session(self._session_factory) as session:
                rows = await UnitOfWork(session).signatures.get_many(student_ids)
                signatures = [(row.student_id, self._to_signature(row)) for row in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read section signatures: {str(e)}")

        logger.debug(
            "Loaded section signatures",
            section_id=section_id,
            requested=len(student_ids),
            found=len(signatures)
        )
        return signatures

    @staticmethod
    def _to_signature(row: models.FaceSignature) -> FaceSignature:
        vector = np.frombuffer(row.vector, dtype=np.float32).copy()
        if vector.shape[0] != row.dim:
            raise StoreError(
                "Stored signature is corrupt",
                details={"student_id": row.student_id, "dim": row.dim, "found": int(vector.shape[0])}
            )
        return FaceSignature(
            student_id=row.student_id,
            embedding=vector,
            image_count=row.image_count,
            consistency_score=row.consistency_score,
            created_at=row.created_at,
            signature_ref=row.signature_ref,
            version=row.version,
        )
