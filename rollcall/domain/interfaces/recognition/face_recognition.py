"""Face detection and encoding interfaces.

Both are synchronous: they are CPU/accelerator bound and are dispatched onto
the inference pool by the orchestrators. Implementations hold their model as
read-only state shared across threads.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from rollcall.core.exceptions import EncodingFailedError
from rollcall.domain.entities.face import BoundingBox, DetectedFace, FaceImage


class FaceDetector(ABC):
    """Interface for locating faces in a decoded image.

    The detector always returns every face that passes the size and
    confidence floors; single-face policies belong to the caller.
    """

    def __init__(
        self,
        min_confidence: float = 0.5,
        min_face_size: int = 32,
        max_faces: Optional[int] = None,
    ) -> None:
        self.min_confidence = min_confidence
        self.min_face_size = min_face_size
        self.max_faces = max_faces

    @abstractmethod
    def _locate(self, image: FaceImage) -> List[DetectedFace]:
        """
        Run the underlying detector.

        Args:
            image: Decoded image

        Returns:
            Raw detections in detector order, bounding boxes in pixel coordinates
        """
        pass

    def detect(self, image: FaceImage) -> List[DetectedFace]:
        """
        Detect faces in the provided image.

        Args:
            image: Decoded image

        Returns:
            Faces meeting the confidence and size floors, in detection order.
            When more than ``max_faces`` pass, the least confident are dropped.
        """
        kept = []
        for face in self._locate(image):
            face = self._clip(face, image)
            box = face.bounding_box
            if face.confidence < self.min_confidence:
                continue
            if min(box.width, box.height) < self.min_face_size:
                continue
            kept.append(face)

        if self.max_faces is not None and len(kept) > self.max_faces:
            ranked = sorted(range(len(kept)), key=lambda i: -kept[i].confidence)
            keep = set(ranked[:self.max_faces])
            kept = [face for i, face in enumerate(kept) if i in keep]
        return kept

    @staticmethod
    def _clip(face: DetectedFace, image: FaceImage) -> DetectedFace:
        box = face.bounding_box
        x = max(0, box.x)
        y = max(0, box.y)
        right = min(image.width, box.x + box.width)
        bottom = min(image.height, box.y + box.height)
        clipped = BoundingBox(x=x, y=y, width=max(0, right - x), height=max(0, bottom - y))
        if clipped == box:
            return face
        return face.model_copy(update={"bounding_box": clipped})


class FaceEncoder(ABC):
    """Interface for mapping a detected face to an identity embedding."""

    model_name: str = "unknown"

    @abstractmethod
    def _embed(self, image: FaceImage, face: DetectedFace) -> np.ndarray:
        """
        Compute the raw embedding for one face.

        Args:
            image: Image the face was detected in
            face: Detected face (bounding box and optional landmarks)

        Returns:
            Embedding vector, not necessarily normalized
        """
        pass

    def encode(self, image: FaceImage, face: DetectedFace) -> np.ndarray:
        """
        Encode one face into a unit-length embedding.

        Raises:
            EncodingFailedError: If the model fails or yields a degenerate vector
        """
        try:
            vector = self._embed(image, face)
        except EncodingFailedError:
            raise
        except Exception as e:
            raise EncodingFailedError(f"Face encoding failed: {str(e)}")

        vector = np.asarray(vector, dtype=np.float32).reshape(-1)
        norm = float(np.linalg.norm(vector))
        if vector.size == 0 or not np.isfinite(norm) or norm == 0.0:
            raise EncodingFailedError("Face encoding produced a degenerate vector")
        return vector / norm

    @staticmethod
    def crop(image: FaceImage, face: DetectedFace) -> np.ndarray:
        """Cut the face's bounding box out of the image buffer."""
        box = face.bounding_box
        return image.pixels[box.y:box.y + box.height, box.x:box.x + box.width]
