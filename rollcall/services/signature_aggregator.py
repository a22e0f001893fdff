"""Signature aggregation: many enrollment embeddings in, one student signature out."""
from typing import List, Optional, Sequence

import numpy as np

from rollcall.core.config import settings
from rollcall.core.exceptions import LowQualityError
from rollcall.core.logging import get_logger
from rollcall.domain.entities.face import FaceSignature

logger = get_logger(__name__)


class SignatureAggregator:
    """Combines a student's per-image embeddings into a single signature.

    The signature is the re-normalized centroid of the unit embeddings. The
    minimum pairwise cosine similarity among the inputs is kept as a
    consistency score; a batch whose images disagree too much is rejected.

    A batch of exactly one embedding (bulk enrollment) skips the consistency
    check and uses the embedding itself as the signature.
    """

    def __init__(
        self,
        min_images: Optional[int] = None,
        consistency_floor: Optional[float] = None,
    ) -> None:
        self.min_images = settings.ENROLLMENT_MIN_IMAGES if min_images is None else min_images
        self.consistency_floor = (
            settings.SIGNATURE_CONSISTENCY_FLOOR if consistency_floor is None else consistency_floor
        )

    def aggregate(
        self,
        student_id: str,
        embeddings: Sequence[np.ndarray],
        min_images: Optional[int] = None,
    ) -> FaceSignature:
        """Build a signature from a student's embeddings.

        Args:
            student_id: Owning student identifier
            embeddings: One embedding per successfully encoded image
            min_images: Override for the minimum usable image count

        Returns:
            FaceSignature carrying the consistency score and image count

        Raises:
            LowQualityError: If too few embeddings are usable or they disagree
        """
        required = max(1, self.min_images if min_images is None else min_images)
        usable = self._usable(embeddings)

        if len(usable) < required:
            raise LowQualityError(
                f"Only {len(usable)} usable face images, at least {required} required",
                details={"usable_images": len(usable), "required_images": required}
            )

        matrix = np.stack(usable)

        if matrix.shape[0] == 1:
            logger.info("Built single-image signature", student_id=student_id)
            return FaceSignature(
                student_id=student_id,
                embedding=matrix[0],
                image_count=1,
                consistency_score=1.0,
            )

        consistency = self.consistency(matrix)
        if consistency < self.consistency_floor:
            logger.warning(
                "Rejected inconsistent enrollment images",
                student_id=student_id,
                consistency_score=consistency,
                floor=self.consistency_floor
            )
            raise LowQualityError(
                "Enrollment images do not look like the same person; please recapture the full set",
                details={"consistency_score": consistency, "floor": self.consistency_floor}
            )

        centroid = matrix.mean(axis=0)
        norm = float(np.linalg.norm(centroid))
        if norm == 0.0:
            raise LowQualityError(
                "Enrollment embeddings cancel out",
                details={"consistency_score": consistency}
            )

        logger.info(
            "Built face signature",
            student_id=student_id,
            image_count=matrix.shape[0],
            consistency_score=round(consistency, 4)
        )
        return FaceSignature(
            student_id=student_id,
            embedding=centroid / norm,
            image_count=int(matrix.shape[0]),
            consistency_score=consistency,
        )

    @staticmethod
    def consistency(matrix: np.ndarray) -> float:
        """Minimum pairwise cosine similarity among unit row vectors."""
        n = matrix.shape[0]
        if n < 2:
            return 1.0
        sims = matrix @ matrix.T
        upper = sims[np.triu_indices(n, k=1)]
        return float(np.clip(upper.min(), -1.0, 1.0))

    @staticmethod
    def _usable(embeddings: Sequence[np.ndarray]) -> List[np.ndarray]:
        usable = []
        for embedding in embeddings:
            vector = np.asarray(embedding, dtype=np.float64).reshape(-1)
            norm = float(np.linalg.norm(vector))
            if vector.size == 0 or not np.isfinite(norm) or norm == 0.0:
                continue
            usable.append(vector / norm)

        dims = {v.shape[0] for v in usable}
        if len(dims) > 1:
            raise LowQualityError(
                "Embeddings have mismatched dimensions",
                details={"dimensions": sorted(dims)}
            )
        return usable
