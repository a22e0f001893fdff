"""Per-section searchable signature index (the section "model").

At classroom scale a linear cosine scan over every stored signature is both
fast enough and easy to audit, so the index is a frozen matrix of unit rows.
"""
from datetime import datetime
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from rollcall.core.exceptions import EmptyIndexError, IndexUnavailableError
from rollcall.domain.entities.face import FaceSignature
from rollcall.domain.value_objects.recognition import IndexMatch


class SectionIndex:
    """Immutable snapshot of a section's signatures.

    Attributes:
        section_id: Section the index was built for
        model_id: Identifier reported to callers
        generation: Build counter for the section, starting at 1
        student_ids: Row labels, sorted ascending
        matrix: Read-only (students, dim) array of unit signatures
        built_at: Build timestamp
        data_version: Store change counter observed when the build started
    """

    __slots__ = ("section_id", "model_id", "generation", "student_ids", "matrix", "built_at", "data_version")

    def __init__(
        self,
        section_id: str,
        model_id: str,
        generation: int,
        student_ids: Tuple[str, ...],
        matrix: np.ndarray,
        built_at: Optional[datetime] = None,
        data_version: int = 0,
    ) -> None:
        self.section_id = section_id
        self.model_id = model_id
        self.generation = generation
        self.student_ids = student_ids
        self.matrix = matrix
        self.built_at = built_at
        self.data_version = data_version

    @property
    def students_count(self) -> int:
        return len(self.student_ids)

    @property
    def dim(self) -> int:
        return int(self.matrix.shape[1]) if self.matrix.ndim == 2 else 0

    def __repr__(self) -> str:
        return (
            f"SectionIndex(section_id={self.section_id!r}, model_id={self.model_id!r}, "
            f"generation={self.generation}, students={self.students_count})"
        )


def build_index(
    section_id: str,
    signatures: Sequence[Tuple[str, FaceSignature]],
    generation: int = 1,
    model_id: Optional[str] = None,
    built_at: Optional[datetime] = None,
    data_version: int = 0,
) -> SectionIndex:
    """Build an index from ``(student_id, signature)`` pairs.

    The result depends only on the arguments; rows are ordered by student id.

    Raises:
        IndexUnavailableError: If a student appears twice or dimensions differ
    """
    ordered = sorted(signatures, key=lambda pair: pair[0])
    student_ids = tuple(student_id for student_id, _ in ordered)
    if len(set(student_ids)) != len(student_ids):
        raise IndexUnavailableError(
            "A student has more than one signature",
            details={"section_id": section_id}
        )

    if ordered:
        dims = {sig.dim for _, sig in ordered}
        if len(dims) > 1:
            raise IndexUnavailableError(
                "Signatures have mismatched dimensions; re-enroll with the current model",
                details={"section_id": section_id, "dimensions": sorted(dims)}
            )
        rows = []
        for _, sig in ordered:
            vector = sig.embedding.astype(np.float32)
            rows.append(vector / np.float32(np.linalg.norm(vector)))
        matrix = np.stack(rows)
    else:
        matrix = np.zeros((0, 0), dtype=np.float32)
    matrix.setflags(write=False)

    return SectionIndex(
        section_id=section_id,
        model_id=model_id or f"{section_id}-v{generation}",
        generation=generation,
        student_ids=student_ids,
        matrix=matrix,
        built_at=built_at,
        data_version=data_version,
    )


def search(
    index: SectionIndex,
    query: Union[FaceSignature, np.ndarray],
    k: int = 1,
) -> List[IndexMatch]:
    """Return up to ``k`` nearest students by cosine similarity.

    Results are ordered by descending similarity, ties broken by lower student id.

    Raises:
        EmptyIndexError: If the index holds no signatures
        IndexUnavailableError: If the query dimension does not match the index
    """
    if index.students_count == 0:
        raise EmptyIndexError(
            "Section model has no enrolled students",
            details={"section_id": index.section_id}
        )

    vector = query.embedding if isinstance(query, FaceSignature) else query
    vector = np.asarray(vector, dtype=np.float32).reshape(-1)
    if vector.shape[0] != index.dim:
        raise IndexUnavailableError(
            "Query embedding does not match the section model",
            details={"section_id": index.section_id, "query_dim": int(vector.shape[0]), "index_dim": index.dim}
        )
    norm = float(np.linalg.norm(vector))
    if norm > 0.0:
        vector = vector / norm

    scores = index.matrix @ vector
    order = sorted(range(len(scores)), key=lambda i: (-float(scores[i]), index.student_ids[i]))
    return [
        IndexMatch(student_id=index.student_ids[i], similarity=float(np.clip(scores[i], -1.0, 1.0)))
        for i in order[:max(0, k)]
    ]
