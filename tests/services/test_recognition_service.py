"""Tests for recognizing students in a frame."""
import pytest

from rollcall.core.exceptions import DecodeError, RecognitionBusyError
from rollcall.domain.entities.face import FaceSignature
from rollcall.domain.value_objects.recognition import IndexStatus, MatchTier, UnrecognizedReason
from rollcall.services.face_recognition import FaceRecognitionService
from tests.helpers import FAIL_COLOR, GREEN, RED, SECTION, TEAL, draw_frame, enrollment_set, vector_at


@pytest.fixture
async def section(roster, embedding_store):
    """Two enrolled students on orthogonal 3-d signatures."""
    await roster.add_student(SECTION, "21CS001", "Asha Rao", student_id="A")
    await roster.add_student(SECTION, "21CS002", "Ravi Kumar", student_id="B")
    await embedding_store.put("A", FaceSignature(
        student_id="A", embedding=[1.0, 0.0, 0.0], image_count=5, consistency_score=0.9
    ))
    await embedding_store.put("B", FaceSignature(
        student_id="B", embedding=[0.0, 0.0, 1.0], image_count=5, consistency_score=0.9
    ))
    return SECTION


class TestRecognition:

    @pytest.mark.parametrize(
        "similarity, tier",
        [(0.90, MatchTier.AUTO), (0.75, MatchTier.SUGGESTED)],
    )
    async def test_recognized_tiers(self, recognition_service, encoder, section, similarity, tier):
        encoder.vectors[RED] = vector_at(similarity)

        result = await recognition_service.recognize(section, draw_frame([RED]))

        assert result.faces_detected == 1
        assert result.unrecognized == []
        face = result.recognized[0]
        assert face.student_id == "A"
        assert face.similarity == pytest.approx(similarity, abs=1e-4)
        assert face.match_tier == tier

    async def test_below_threshold_is_unrecognized(self, recognition_service, encoder, section):
        encoder.vectors[RED] = vector_at(0.50)

        result = await recognition_service.recognize(section, draw_frame([RED]))

        assert result.recognized == []
        face = result.unrecognized[0]
        assert face.reason == UnrecognizedReason.BELOW_THRESHOLD
        assert face.similarity == pytest.approx(0.50, abs=1e-4)
        assert result.index_status == IndexStatus.READY

    async def test_student_assigned_to_one_face_only(self, recognition_service, encoder, section):
        encoder.vectors[RED] = vector_at(0.90)
        encoder.vectors[GREEN] = vector_at(0.95)

        result = await recognition_service.recognize(section, draw_frame([RED, GREEN]))

        assert result.faces_detected == 2
        assert len(result.recognized) == 1
        winner = result.recognized[0]
        assert winner.student_id == "A"
        assert winner.similarity == pytest.approx(0.95, abs=1e-4)
        assert winner.bounding_box.x == 80
        loser = result.unrecognized[0]
        assert loser.reason == UnrecognizedReason.DUPLICATE_MATCH
        assert loser.bounding_box.x == 10

    async def test_distinct_students_in_one_frame(self, recognition_service, encoder, section):
        encoder.vectors[RED] = vector_at(0.92)
        encoder.vectors[GREEN] = [0.0, 0.2, 0.98]

        result = await recognition_service.recognize(section, draw_frame([RED, GREEN]))

        assert [f.student_id for f in result.recognized] == ["A", "B"]

    async def test_results_enriched_from_roster(self, recognition_service, encoder, section):
        encoder.vectors[RED] = vector_at(0.99)

        result = await recognition_service.recognize(section, draw_frame([RED]))

        face = result.recognized[0]
        assert face.roll_number == "21CS001"
        assert face.full_name == "Asha Rao"
        assert result.model_id == f"{SECTION}-v1"

    async def test_encoding_failure_only_drops_that_face(self, recognition_service, encoder, section):
        encoder.vectors[RED] = vector_at(0.95)

        result = await recognition_service.recognize(section, draw_frame([FAIL_COLOR, RED]))

        assert [f.student_id for f in result.recognized] == ["A"]
        assert result.unrecognized[0].reason == UnrecognizedReason.PROCESSING_ERROR

    async def test_empty_section(self, recognition_service, lifecycle):
        result = await recognition_service.recognize(SECTION, draw_frame([RED, GREEN]))

        assert result.faces_detected == 2
        assert result.recognized == []
        assert len(result.unrecognized) == 2
        assert all(f.reason == UnrecognizedReason.NOT_TRAINED for f in result.unrecognized)
        assert result.index_status == IndexStatus.NOT_TRAINED
        assert lifecycle.current_index(SECTION) is None

    async def test_frame_without_faces(self, recognition_service, section):
        result = await recognition_service.recognize(section, draw_frame([]))
        assert result.faces_detected == 0
        assert result.recognized == [] and result.unrecognized == []

    async def test_bad_frame(self, recognition_service, section):
        with pytest.raises(DecodeError):
            await recognition_service.recognize(section, "%%%")

    async def test_overlapping_call_on_same_stream_is_rejected(self, recognition_service, section):
        with recognition_service._in_flight.claim("class-7"):
            with pytest.raises(RecognitionBusyError):
                await recognition_service.recognize(section, draw_frame([]), class_id="class-7")
            # a different stream is unaffected
            await recognition_service.recognize(section, draw_frame([]), class_id="class-8")

    async def test_new_enrollment_is_picked_up(
        self, recognition_service, training_service, roster
    ):
        first = await roster.add_student(SECTION, "21CS010", "Meera Iyer")
        second = await roster.add_student(SECTION, "21CS011", "John Paul")
        await training_service.enroll_student(first.id, enrollment_set(TEAL))

        before = await recognition_service.recognize(SECTION, draw_frame([TEAL, GREEN]))
        assert [f.student_id for f in before.recognized] == [first.id]

        await training_service.enroll_student(second.id, enrollment_set(GREEN))
        after = await recognition_service.recognize(SECTION, draw_frame([TEAL, GREEN]))

        assert [f.student_id for f in after.recognized] == [first.id, second.id]
        assert all(f.match_tier == MatchTier.AUTO for f in after.recognized)
        assert after.model_id == f"{SECTION}-v2"


def test_thresholds_must_be_ordered(pipeline):
    with pytest.raises(ValueError):
        FaceRecognitionService(pipeline, None, None, high_threshold=0.6, low_threshold=0.7)
