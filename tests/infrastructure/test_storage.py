"""Tests for the SQL embedding store and roster."""
import asyncio
import gc

import numpy as np
import pytest
from sqlalchemy.exc import SQLAlchemyError

from rollcall.core.exceptions import AlreadyRegisteredError, NotFoundError, StoreError
from rollcall.domain.entities.face import FaceSignature
from rollcall.infrastructure.database.repositories import StudentRepository


def signature(*values: float, image_count: int = 5) -> FaceSignature:
    return FaceSignature(
        student_id="ignored",
        embedding=np.asarray(values, dtype=np.float32),
        image_count=image_count,
        consistency_score=0.8,
    )


class TestSqlEmbeddingStore:

    async def test_put_and_get(self, embedding_store):
        stored = await embedding_store.put("s-1", signature(0.6, 0.8))

        assert stored.student_id == "s-1"
        assert stored.signature_ref
        assert stored.version == 1

        loaded = await embedding_store.get("s-1")
        assert loaded.signature_ref == stored.signature_ref
        assert loaded.embedding.dtype == np.float32
        assert np.array_equal(loaded.embedding, np.asarray([0.6, 0.8], dtype=np.float32))
        assert loaded.consistency_score == pytest.approx(0.8)
        assert loaded.image_count == 5

    async def test_get_unknown(self, embedding_store):
        with pytest.raises(NotFoundError):
            await embedding_store.get("nobody")
        assert not await embedding_store.exists("nobody")

    async def test_put_replaces_previous_signature(self, embedding_store):
        first = await embedding_store.put("s-1", signature(1.0, 0.0))
        second = await embedding_store.put("s-1", signature(0.0, 1.0, image_count=1))

        assert second.version == 2
        assert second.signature_ref != first.signature_ref
        loaded = await embedding_store.get("s-1")
        assert np.array_equal(loaded.embedding, np.asarray([0.0, 1.0], dtype=np.float32))
        assert loaded.image_count == 1

    async def test_concurrent_puts_for_one_student(self, embedding_store):
        await asyncio.gather(*(embedding_store.put("s-1", signature(float(i), 1.0)) for i in range(4)))

        loaded = await embedding_store.get("s-1")
        assert loaded.version == 4
        assert loaded.dim == 2

    async def test_put_without_overwrite_keeps_existing(self, embedding_store):
        first = await embedding_store.put("s-1", signature(1.0, 0.0))

        with pytest.raises(AlreadyRegisteredError):
            await embedding_store.put("s-1", signature(0.0, 1.0), overwrite=False)

        loaded = await embedding_store.get("s-1")
        assert loaded.signature_ref == first.signature_ref
        assert loaded.version == 1

    async def test_concurrent_first_writes_without_overwrite(self, embedding_store):
        results = await asyncio.gather(
            embedding_store.put("s-1", signature(1.0, 0.0), overwrite=False),
            embedding_store.put("s-1", signature(0.0, 1.0), overwrite=False),
            return_exceptions=True,
        )

        assert sum(isinstance(r, FaceSignature) for r in results) == 1
        assert sum(isinstance(r, AlreadyRegisteredError) for r in results) == 1
        assert (await embedding_store.get("s-1")).version == 1

    async def test_put_flags_roster_row(self, embedding_store, roster):
        await roster.add_student("section-a", "21CS001", "Asha Rao", student_id="s-1")

        stored = await embedding_store.put("s-1", signature(0.6, 0.8))

        student = await roster.get_student("s-1")
        assert student.face_registered
        assert student.face_embedding_id == stored.signature_ref

    async def test_failed_roster_flag_rolls_back_signature(self, embedding_store, roster, monkeypatch):
        await roster.add_student("section-a", "21CS001", "Asha Rao", student_id="s-1")

        async def offline(self, student_id, signature_ref):
            raise SQLAlchemyError("roster offline")

        monkeypatch.setattr(StudentRepository, "mark_face_registered", offline)
        with pytest.raises(StoreError):
            await embedding_store.put("s-1", signature(0.6, 0.8))

        assert not await embedding_store.exists("s-1")
        assert not (await roster.get_student("s-1")).face_registered

    async def test_put_locks_are_released(self, embedding_store):
        await embedding_store.put("s-1", signature(1.0, 0.0))
        gc.collect()
        assert "s-1" not in embedding_store._locks

    async def test_get_all_for_section(self, embedding_store):
        await embedding_store.put("b", signature(0.0, 1.0))
        await embedding_store.put("a", signature(1.0, 0.0))
        await embedding_store.put("b", signature(0.6, 0.8))
        await embedding_store.put("z", signature(0.8, 0.6))

        pairs = await embedding_store.get_all_for_section("section-a", ["b", "a", "missing"])

        assert [student_id for student_id, _ in pairs] == ["a", "b"]
        assert pairs[1][1].version == 2

    async def test_get_all_for_empty_section(self, embedding_store):
        assert await embedding_store.get_all_for_section("section-a", []) == []


class TestSqlRosterStore:

    async def test_add_and_get(self, roster):
        created = await roster.add_student("section-a", "21CS001", "Asha Rao", student_id="s-1")

        student = await roster.get_student("s-1")
        assert student == created
        assert not student.face_registered

    async def test_get_unknown(self, roster):
        with pytest.raises(NotFoundError):
            await roster.get_student("nobody")

    async def test_ensure_student_is_idempotent(self, roster):
        first = await roster.ensure_student("section-a", "21CS001", "Asha Rao")
        second = await roster.ensure_student("section-a", "21CS001", "Asha R.")

        assert first.id == second.id
        assert second.full_name == "Asha Rao"

    async def test_roll_numbers_are_per_section(self, roster):
        a = await roster.ensure_student("section-a", "21CS001", "Asha Rao")
        b = await roster.ensure_student("section-b", "21CS001", "Bala N")

        assert a.id != b.id
        assert await roster.find_by_roll_number("section-b", "21CS001") == b
        assert await roster.find_by_roll_number("section-c", "21CS001") is None

    async def test_list_section_students(self, roster):
        await roster.add_student("section-a", "2", "Second", student_id="s-2")
        await roster.add_student("section-a", "1", "First", student_id="s-1")
        await roster.add_student("section-b", "3", "Elsewhere", student_id="s-3")

        students = await roster.list_section_students("section-a")
        assert [s.id for s in students] == ["s-1", "s-2"]

