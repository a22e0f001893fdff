"""Face training service for enrolling student face signatures."""
import asyncio
from typing import List, Mapping, Optional, Sequence, Union

import numpy as np

from rollcall.core.config import settings
from rollcall.core.exceptions import (
    AlreadyRegisteredError,
    CancelledError,
    DecodeError,
    EncodingFailedError,
    FaceNotDetectedError,
    FaceRecognitionError,
    InvalidImageCountError,
    MultipleFacesDetectedError,
    NoImageError,
)
from rollcall.core.logging import get_logger
from rollcall.domain.entities.student import Student
from rollcall.domain.interfaces.storage.embedding_store import EmbeddingStore
from rollcall.domain.interfaces.storage.roster import RosterStore
from rollcall.domain.value_objects.recognition import (
    BulkEnrollmentItem,
    BulkTrainingSummary,
    ImageFailure,
    TrainingOutcome,
    TrainingStatus,
)
from rollcall.services.face_pipeline import FacePipeline, ImagePayload
from rollcall.services.model_lifecycle import ModelLifecycleManager
from rollcall.services.signature_aggregator import SignatureAggregator

logger = get_logger(__name__)

IMAGE_ERRORS = (DecodeError, FaceNotDetectedError, MultipleFacesDetectedError, EncodingFailedError)


class FaceTrainingService:
    """Service for enrolling students from face images.

    Single enrollment is all-or-nothing: every image must hold exactly one
    face, all per-image problems are reported together, and nothing is stored
    unless the whole set passes. Bulk enrollment runs each student through the
    same pipeline independently and reports per-item outcomes.

    Example:
        ```python
        service = FaceTrainingService(pipeline, aggregator, store, roster, lifecycle)

        outcome = await service.enroll_student(
            student_id="7f6c...",
            images=[img1, img2, img3, img4, img5],
        )
        ```
    """

    def __init__(
        self,
        pipeline: FacePipeline,
        aggregator: SignatureAggregator,
        embedding_store: EmbeddingStore,
        roster: RosterStore,
        lifecycle: ModelLifecycleManager,
        min_images: Optional[int] = None,
        max_images: Optional[int] = None,
        bulk_min_images: Optional[int] = None,
        bulk_concurrency: Optional[int] = None,
        allow_overwrite_default: Optional[bool] = None,
    ) -> None:
        """Initialize the face training service.

        Args:
            pipeline: Decode/detect/encode steps
            aggregator: Builds a signature from per-image embeddings
            embedding_store: Durable signature storage
            roster: External student datastore
            lifecycle: Section model manager, told when a section changes
        """
        self._pipeline = pipeline
        self._aggregator = aggregator
        self._store = embedding_store
        self._roster = roster
        self._lifecycle = lifecycle
        self.min_images = settings.ENROLLMENT_MIN_IMAGES if min_images is None else min_images
        self.max_images = settings.ENROLLMENT_MAX_IMAGES if max_images is None else max_images
        self.bulk_min_images = settings.BULK_MIN_IMAGES if bulk_min_images is None else bulk_min_images
        self.bulk_concurrency = max(1, settings.BULK_CONCURRENCY if bulk_concurrency is None else bulk_concurrency)
        self.allow_overwrite_default = (
            settings.ALLOW_OVERWRITE_DEFAULT if allow_overwrite_default is None else allow_overwrite_default
        )

    async def enroll_student(
        self,
        student_id: str,
        images: Sequence[ImagePayload],
        roll_number: Optional[str] = None,
        overwrite: Optional[bool] = None,
    ) -> TrainingOutcome:
        """Enroll one student from 5-10 images.

        Args:
            student_id: Roster identifier of the student
            images: Encoded images (base64, data URL or bytes)
            roll_number: Roll number the caller believes the student has
            overwrite: Replace an existing signature (defaults to settings)

        Returns:
            TrainingOutcome with the signature reference and consistency score

        Raises:
            InvalidImageCountError: If the image count is out of bounds
            NotFoundError: If the student is not on the roster
            AlreadyRegisteredError: If a signature exists and overwrite is off
            DecodeError, FaceNotDetectedError, MultipleFacesDetectedError,
            EncodingFailedError: For the first failing image; ``details["failures"]``
                lists every failing image
            LowQualityError: If the images disagree
        """
        if not self.min_images <= len(images) <= self.max_images:
            raise InvalidImageCountError(
                f"Between {self.min_images} and {self.max_images} images are required, got {len(images)}",
                details={"image_count": len(images), "min": self.min_images, "max": self.max_images}
            )

        overwrite = self.allow_overwrite_default if overwrite is None else overwrite
        student = await self._roster.get_student(student_id)
        if roll_number and roll_number != student.roll_number:
            logger.warning(
                "Roll number does not match roster",
                student_id=student_id,
                given=roll_number,
                roster=student.roll_number
            )

        return await self._enroll(student, images, overwrite, self.min_images)

    async def enroll_bulk(
        self,
        section_id: str,
        students: Sequence[BulkEnrollmentItem],
        images: Mapping[str, ImagePayload],
        overwrite: Optional[bool] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BulkTrainingSummary:
        """Enroll many students of a section, one image each.

        Items run concurrently up to ``bulk_concurrency``. A failing item never
        affects the others. Once ``cancel_event`` is set, running items finish
        but no new item starts.

        Args:
            section_id: Section the students belong to
            students: Rows to enroll
            images: Encoded image per serial number (keys are serial numbers as strings)
            overwrite: Replace existing signatures (defaults to settings)
            cancel_event: Set by the caller to stop starting new items

        Returns:
            BulkTrainingSummary with per-item outcomes in input order
        """
        overwrite = self.allow_overwrite_default if overwrite is None else overwrite
        semaphore = asyncio.Semaphore(self.bulk_concurrency)

        seen = set()
        duplicates = set()
        for position, item in enumerate(students):
            if item.roll_number in seen:
                duplicates.add(position)
            seen.add(item.roll_number)

        async def run(position: int, item: BulkEnrollmentItem) -> TrainingOutcome:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return TrainingOutcome(
                        status=TrainingStatus.CANCELLED,
                        error_code=CancelledError.error_code,
                        message="Bulk enrollment was cancelled before this student started",
                        serial_no=item.serial_no,
                        roll_number=item.roll_number,
                    )
                return await self._enroll_bulk_item(
                    section_id, item, images, overwrite, duplicate=position in duplicates
                )

        results = await asyncio.gather(*(run(i, item) for i, item in enumerate(students)))

        trained = sum(1 for r in results if r.status == TrainingStatus.SUCCESS)
        cancelled = sum(1 for r in results if r.status == TrainingStatus.CANCELLED)
        failed = len(results) - trained - cancelled
        logger.info(
            "Bulk enrollment finished",
            section_id=section_id,
            total=len(results),
            trained=trained,
            failed=failed,
            cancelled=cancelled
        )
        return BulkTrainingSummary(
            total=len(results),
            trained=trained,
            failed=failed,
            cancelled=cancelled,
            results=list(results),
        )

    async def _enroll_bulk_item(
        self,
        section_id: str,
        item: BulkEnrollmentItem,
        images: Mapping[str, ImagePayload],
        overwrite: bool,
        duplicate: bool,
    ) -> TrainingOutcome:
        student: Optional[Student] = None
        try:
            if duplicate:
                raise AlreadyRegisteredError(
                    f"Roll number {item.roll_number} appears earlier in this batch"
                )
            payload = images.get(str(item.serial_no))
            if not payload:
                raise NoImageError(f"No image uploaded for serial number {item.serial_no}")

            student = await self._roster.ensure_student(section_id, item.roll_number, item.full_name)
            outcome = await self._enroll(student, [payload], overwrite, self.bulk_min_images)
            return outcome.model_copy(update={"serial_no": item.serial_no, "roll_number": item.roll_number})

        except FaceRecognitionError as e:
            logger.warning(
                "Bulk enrollment item failed",
                section_id=section_id,
                serial_no=item.serial_no,
                roll_number=item.roll_number,
                error_code=e.error_code,
                error=e.message
            )
            return self._failed_outcome(e, student, item)
        except Exception as e:
            logger.error(
                "Unexpected error during bulk enrollment item",
                section_id=section_id,
                serial_no=item.serial_no,
                error=str(e),
                exc_info=True
            )
            return self._failed_outcome(
                EncodingFailedError(f"Training failed: {str(e)}"), student, item
            )

    async def _enroll(
        self,
        student: Student,
        images: Sequence[ImagePayload],
        overwrite: bool,
        min_images: int,
    ) -> TrainingOutcome:
        # fail fast before inference; put re-checks under the student lock
        if not overwrite and await self._store.exists(student.id):
            raise AlreadyRegisteredError(
                f"Student {student.roll_number} already has a registered face",
                details={"student_id": student.id}
            )

        results = await asyncio.gather(
            *(self._embed(payload, index) for index, payload in enumerate(images, start=1))
        )
        embeddings = [r for r in results if isinstance(r, np.ndarray)]
        errors = [r for r in results if isinstance(r, FaceRecognitionError)]

        if errors:
            failures = [
                ImageFailure(image_index=e.details["image_index"], error_code=e.error_code, message=e.message)
                for e in errors
            ]
            logger.warning(
                "Enrollment rejected",
                student_id=student.id,
                failed_images=[f.image_index for f in failures],
                encoded_images=len(embeddings),
                partial_consistency=(
                    round(SignatureAggregator.consistency(np.stack(embeddings)), 4)
                    if len(embeddings) > 1 else None
                )
            )
            first = errors[0]
            first.details["failures"] = [f.model_dump() for f in failures]
            raise first

        signature = self._aggregator.aggregate(student.id, embeddings, min_images=min_images)
        stored = await self._store.put(student.id, signature, overwrite=overwrite)
        self._lifecycle.mark_stale(student.section_id)

        logger.info(
            "Enrolled student face",
            student_id=student.id,
            section_id=student.section_id,
            signature_ref=stored.signature_ref,
            version=stored.version,
            image_count=stored.image_count
        )
        return TrainingOutcome(
            status=TrainingStatus.SUCCESS,
            student_id=student.id,
            signature_ref=stored.signature_ref,
            confidence_score=round(stored.consistency_score, 4),
            message=f"Face registered from {stored.image_count} image(s)",
            roll_number=student.roll_number,
        )

    async def _embed(self, payload: ImagePayload, image_index: int) -> Union[np.ndarray, FaceRecognitionError]:
        try:
            return await self._pipeline.embed_enrollment_image(payload, image_index)
        except IMAGE_ERRORS as e:
            return e

    @staticmethod
    def _failed_outcome(
        error: FaceRecognitionError,
        student: Optional[Student],
        item: BulkEnrollmentItem,
    ) -> TrainingOutcome:
        failures: List[ImageFailure] = [
            ImageFailure(**failure) for failure in error.details.get("failures", [])
        ]
        return TrainingOutcome(
            status=TrainingStatus.FAILED,
            student_id=None if student is None else student.id,
            error_code=error.error_code,
            message=error.message,
            failures=failures,
            serial_no=item.serial_no,
            roll_number=item.roll_number,
        )
