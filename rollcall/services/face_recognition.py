"""Face recognition service for matching live frames against a section model."""
import asyncio
from typing import Dict, List, NamedTuple, Optional

from rollcall.core.config import settings
from rollcall.core.exceptions import EncodingFailedError, FaceRecognitionError
from rollcall.core.logging import get_logger
from rollcall.core.utils.concurrency import InFlightGuard
from rollcall.domain.entities.face import DetectedFace, FaceImage, ImageSource
from rollcall.domain.entities.student import Student
from rollcall.domain.interfaces.storage.roster import RosterStore
from rollcall.domain.value_objects.recognition import (
    IndexMatch,
    IndexStatus,
    MatchTier,
    RecognitionResult,
    RecognizedFace,
    UnrecognizedFace,
    UnrecognizedReason,
)
from rollcall.services.face_pipeline import FacePipeline, ImagePayload
from rollcall.services.model_lifecycle import ModelLifecycleManager
from rollcall.services.section_index import SectionIndex, search

logger = get_logger(__name__)


class _Candidate(NamedTuple):
    face: DetectedFace
    match: Optional[IndexMatch]
    failed: bool


class FaceRecognitionService:
    """Service for recognizing enrolled students in a camera frame.

    This service:
    1. Decodes the frame and detects every face in it
    2. Encodes each face and finds its best match in the section index
    3. Sorts faces into recognized (auto or suggested) and unrecognized
       using the two-tier similarity thresholds

    A face that fails to encode is reported as unrecognized without
    affecting the others, and a student is never assigned to two faces of
    the same frame. Only one recognition per stream runs at a time; an
    overlapping call is rejected instead of queued.

    Example:
        ```python
        service = FaceRecognitionService(pipeline, lifecycle, roster)
        result = await service.recognize(
            section_id="section-a",
            image=frame_b64,
            class_id="class-42",
        )
        ```
    """

    def __init__(
        self,
        pipeline: FacePipeline,
        lifecycle: ModelLifecycleManager,
        roster: RosterStore,
        high_threshold: Optional[float] = None,
        low_threshold: Optional[float] = None,
    ) -> None:
        """Initialize the face recognition service.

        Args:
            pipeline: Decode/detect/encode steps
            lifecycle: Provides the current section index
            roster: Supplies roll numbers and names for recognized students
            high_threshold: Similarity for auto-accepted matches
            low_threshold: Similarity for suggested matches
        """
        self._pipeline = pipeline
        self._lifecycle = lifecycle
        self._roster = roster
        self.high_threshold = settings.RECOGNITION_HIGH_THRESHOLD if high_threshold is None else high_threshold
        self.low_threshold = settings.RECOGNITION_LOW_THRESHOLD if low_threshold is None else low_threshold
        if self.low_threshold > self.high_threshold:
            raise ValueError("Low recognition threshold must not exceed the high threshold")
        self._in_flight = InFlightGuard()

    async def recognize(
        self,
        section_id: str,
        image: ImagePayload,
        class_id: Optional[str] = None,
    ) -> RecognitionResult:
        """Recognize students in one frame.

        Args:
            section_id: Section whose model to match against
            image: Encoded frame
            class_id: Camera stream identifier; defaults to the section

        Returns:
            RecognitionResult with per-face outcomes in detection order

        Raises:
            RecognitionBusyError: If this stream already has a call in flight
            DecodeError: If the frame cannot be decoded
            EncodingFailedError: If face detection on the frame failed
            IndexUnavailableError: If the section model cannot be loaded
        """
        with self._in_flight.claim(class_id or section_id):
            return await self._recognize(section_id, image)

    async def _recognize(self, section_id: str, payload: ImagePayload) -> RecognitionResult:
        frame = await self._pipeline.decode(payload, ImageSource.LIVE_FRAME)
        index = await self._lifecycle.index_for_recognition(section_id)
        faces = await self._pipeline.detect(frame)

        if index is None:
            logger.warning(
                "Recognition against a section without a trained model",
                section_id=section_id,
                faces_detected=len(faces)
            )
            return RecognitionResult(
                faces_detected=len(faces),
                unrecognized=[
                    UnrecognizedFace(
                        bounding_box=face.bounding_box,
                        reason=UnrecognizedReason.NOT_TRAINED,
                        message="Model not trained for this section",
                    )
                    for face in faces
                ],
                index_status=IndexStatus.NOT_TRAINED,
            )

        candidates = await asyncio.gather(*(self._match(frame, face, index) for face in faces))
        result = self._classify(candidates, index)
        if result.recognized:
            await self._enrich(section_id, result)

        logger.info(
            "Recognized frame",
            section_id=section_id,
            model_id=index.model_id,
            faces_detected=result.faces_detected,
            recognized=len(result.recognized),
            unrecognized=len(result.unrecognized)
        )
        return result

    async def _match(self, frame: FaceImage, face: DetectedFace, index: SectionIndex) -> _Candidate:
        try:
            embedding = await self._pipeline.encode(frame, face)
        except EncodingFailedError as e:
            logger.warning(
                "Dropping face that could not be encoded",
                bounding_box=face.bounding_box.model_dump(),
                error=e.message
            )
            return _Candidate(face=face, match=None, failed=True)

        matches = search(index, embedding, k=1)
        return _Candidate(face=face, match=matches[0] if matches else None, failed=False)

    def _classify(self, candidates: List[_Candidate], index: SectionIndex) -> RecognitionResult:
        best: Dict[str, int] = {}
        for i, candidate in enumerate(candidates):
            match = candidate.match
            if match is None or match.similarity < self.low_threshold:
                continue
            held = best.get(match.student_id)
            if held is None or match.similarity > candidates[held].match.similarity:
                best[match.student_id] = i

        recognized: List[RecognizedFace] = []
        unrecognized: List[UnrecognizedFace] = []
        for i, candidate in enumerate(candidates):
            box = candidate.face.bounding_box
            match = candidate.match

            if candidate.failed:
                unrecognized.append(UnrecognizedFace(
                    bounding_box=box,
                    reason=UnrecognizedReason.PROCESSING_ERROR,
                    message="Face could not be processed",
                ))
            elif match is None or match.similarity < self.low_threshold:
                unrecognized.append(UnrecognizedFace(
                    bounding_box=box,
                    reason=UnrecognizedReason.BELOW_THRESHOLD,
                    message="No matching student found",
                    similarity=None if match is None else round(match.similarity, 4),
                ))
            elif best[match.student_id] != i:
                logger.info(
                    "Demoted duplicate match",
                    model_id=index.model_id,
                    student_id=match.student_id,
                    similarity=round(match.similarity, 4)
                )
                unrecognized.append(UnrecognizedFace(
                    bounding_box=box,
                    reason=UnrecognizedReason.DUPLICATE_MATCH,
                    message="Best match is already recognized elsewhere in this frame",
                    similarity=round(match.similarity, 4),
                ))
            else:
                tier = MatchTier.AUTO if match.similarity >= self.high_threshold else MatchTier.SUGGESTED
                recognized.append(RecognizedFace(
                    student_id=match.student_id,
                    similarity=round(match.similarity, 4),
                    bounding_box=box,
                    match_tier=tier,
                ))

        return RecognitionResult(
            faces_detected=len(candidates),
            recognized=recognized,
            unrecognized=unrecognized,
            index_status=IndexStatus.READY,
            model_id=index.model_id,
        )

    async def _enrich(self, section_id: str, result: RecognitionResult) -> None:
        try:
            students: Dict[str, Student] = {
                s.id: s for s in await self._roster.list_section_students(section_id)
            }
        except FaceRecognitionError as e:
            logger.warning("Could not load roster for recognized students", section_id=section_id, error=e.message)
            return

        for face in result.recognized:
            student = students.get(face.student_id)
            if student is not None:
                face.roll_number = student.roll_number
                face.full_name = student.full_name
