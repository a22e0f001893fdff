"""Tests for building and searching section indexes."""
import numpy as np
import pytest

from rollcall.core.exceptions import EmptyIndexError, IndexUnavailableError
from rollcall.domain.entities.face import FaceSignature
from rollcall.services.section_index import build_index, search
from tests.helpers import unit


def signature(student_id: str, *values: float) -> FaceSignature:
    return FaceSignature(
        student_id=student_id,
        embedding=np.asarray(values, dtype=np.float32),
        image_count=5,
        consistency_score=1.0,
    )


class TestBuildIndex:

    def test_rows_sorted_by_student_id(self):
        index = build_index("sec", [("b", signature("b", 0, 1)), ("a", signature("a", 1, 0))])

        assert index.student_ids == ("a", "b")
        assert index.students_count == 2
        assert index.dim == 2
        assert index.model_id == "sec-v1"

    def test_matrix_is_read_only(self):
        index = build_index("sec", [("a", signature("a", 1, 0))])
        with pytest.raises(ValueError):
            index.matrix[0, 0] = 5.0

    def test_same_input_builds_same_index(self):
        pairs = [("a", signature("a", 1, 0)), ("b", signature("b", 0, 1))]
        first = build_index("sec", pairs)
        second = build_index("sec", list(reversed(pairs)))
        assert first.student_ids == second.student_ids
        assert np.array_equal(first.matrix, second.matrix)

    def test_duplicate_student_rejected(self):
        with pytest.raises(IndexUnavailableError):
            build_index("sec", [("a", signature("a", 1, 0)), ("a", signature("a", 0, 1))])

    def test_mismatched_dimensions_rejected(self):
        with pytest.raises(IndexUnavailableError):
            build_index("sec", [("a", signature("a", 1, 0)), ("b", signature("b", 0, 0, 1))])

    def test_empty_index(self):
        index = build_index("sec", [])
        assert index.students_count == 0
        with pytest.raises(EmptyIndexError):
            search(index, np.array([1.0, 0.0]))


class TestSearch:

    @pytest.fixture
    def index(self):
        return build_index("sec", [("A", signature("A", 1, 0)), ("B", signature("B", 0, 1))])

    def test_nearest_student(self, index):
        matches = search(index, np.asarray(unit(0.99, 0.14)), k=1)

        assert len(matches) == 1
        assert matches[0].student_id == "A"
        assert matches[0].similarity > 0.9

    def test_results_ordered_by_similarity(self, index):
        matches = search(index, np.asarray(unit(0.3, 0.9)), k=5)
        assert [m.student_id for m in matches] == ["B", "A"]
        assert matches[0].similarity > matches[1].similarity

    def test_ties_prefer_lower_student_id(self, index):
        matches = search(index, np.asarray(unit(1.0, 1.0)), k=2)
        assert [m.student_id for m in matches] == ["A", "B"]

    def test_query_is_normalized(self, index):
        matches = search(index, np.array([10.0, 0.0]))
        assert matches[0].similarity == pytest.approx(1.0)

    def test_accepts_signature_query(self, index):
        matches = search(index, signature("q", 0, 2))
        assert matches[0].student_id == "B"

    def test_dimension_mismatch(self, index):
        with pytest.raises(IndexUnavailableError):
            search(index, np.array([1.0, 0.0, 0.0]))
