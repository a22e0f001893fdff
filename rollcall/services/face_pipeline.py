"""Decode, detect and encode steps shared by enrollment and recognition.

Every step runs on the inference pool under a deadline. Encoding is retried a
bounded number of times because model errors are treated as transient.
"""
from typing import List, Optional, Union

import numpy as np

from rollcall.core.config import settings
from rollcall.core.exceptions import (
    DecodeError,
    EncodingFailedError,
    FaceNotDetectedError,
    MultipleFacesDetectedError,
)
from rollcall.core.logging import get_logger
from rollcall.core.utils.concurrency import InferencePool
from rollcall.core.utils.image import decode_payload
from rollcall.domain.entities.face import DetectedFace, FaceImage, ImageSource
from rollcall.domain.interfaces.recognition.face_recognition import FaceDetector, FaceEncoder

logger = get_logger(__name__)

ImagePayload = Union[str, bytes]


class FacePipeline:
    """Runs the detector and encoder for orchestrators.

    Attributes:
        detector: Face detector bound to the shared model handle
        encoder: Face encoder bound to the shared model handle
        pool: Bounded inference pool
    """

    def __init__(
        self,
        detector: FaceDetector,
        encoder: FaceEncoder,
        pool: InferencePool,
        decode_timeout: Optional[float] = None,
        detect_timeout: Optional[float] = None,
        encode_timeout: Optional[float] = None,
        encode_attempts: Optional[int] = None,
    ) -> None:
        self.detector = detector
        self.encoder = encoder
        self.pool = pool
        self.decode_timeout = settings.DECODE_TIMEOUT_SECONDS if decode_timeout is None else decode_timeout
        self.detect_timeout = settings.DETECT_TIMEOUT_SECONDS if detect_timeout is None else detect_timeout
        self.encode_timeout = settings.ENCODE_TIMEOUT_SECONDS if encode_timeout is None else encode_timeout
        self.encode_attempts = max(1, settings.ENCODE_ATTEMPTS if encode_attempts is None else encode_attempts)

    async def decode(self, payload: ImagePayload, source: ImageSource) -> FaceImage:
        """Decode a transport-encoded image.

        Raises:
            DecodeError: If the payload is invalid or decoding timed out
        """
        return await self.pool.run(
            decode_payload, payload, source,
            timeout=self.decode_timeout,
            on_timeout=lambda: DecodeError("Image decoding timed out"),
        )

    async def detect(self, image: FaceImage) -> List[DetectedFace]:
        """Locate all faces in an image.

        Raises:
            EncodingFailedError: If the detector fails or times out
        """
        try:
            return await self.pool.run(
                self.detector.detect, image,
                timeout=self.detect_timeout,
                on_timeout=lambda: EncodingFailedError("Face detection timed out"),
            )
        except EncodingFailedError:
            raise
        except Exception as e:
            logger.error("Face detection failed", error=str(e), exc_info=True)
            raise EncodingFailedError(f"Face detection failed: {str(e)}")

    async def encode(self, image: FaceImage, face: DetectedFace) -> np.ndarray:
        """Encode one face, retrying transient failures.

        Raises:
            EncodingFailedError: If every attempt failed
        """
        last_error: Optional[EncodingFailedError] = None
        for attempt in range(1, self.encode_attempts + 1):
            try:
                return await self.pool.run(
                    self.encoder.encode, image, face,
                    timeout=self.encode_timeout,
                    on_timeout=lambda: EncodingFailedError("Face encoding timed out"),
                )
            except EncodingFailedError as e:
                last_error = e
                logger.warning(
                    "Face encoding attempt failed",
                    attempt=attempt,
                    attempts=self.encode_attempts,
                    error=str(e)
                )
        raise last_error

    async def embed_enrollment_image(self, payload: ImagePayload, image_index: int) -> np.ndarray:
        """Decode, detect and encode one enrollment image that must hold exactly one face.

        Args:
            payload: Encoded image
            image_index: 1-based position, attached to any error raised

        Raises:
            DecodeError, FaceNotDetectedError, MultipleFacesDetectedError, EncodingFailedError
        """
        try:
            image = await self.decode(payload, ImageSource.ENROLLMENT)
            faces = await self.detect(image)
            if not faces:
                raise FaceNotDetectedError(f"No face detected in image {image_index}")
            if len(faces) > 1:
                raise MultipleFacesDetectedError(
                    f"Multiple faces detected in image {image_index}",
                    details={"faces_detected": len(faces)}
                )
            return await self.encode(image, faces[0])
        except (DecodeError, FaceNotDetectedError, MultipleFacesDetectedError, EncodingFailedError) as e:
            e.details.setdefault("image_index", image_index)
            raise
