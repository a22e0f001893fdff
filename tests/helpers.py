"""Deterministic stand-ins for the face models.

Faces are drawn as solid colored squares on a black canvas. ``ColorBlockDetector``
finds every non-black rectangle, and ``ColorHashEncoder`` turns the square's
color into a fixed vector, so the same color always encodes the same way and
tests can pin exact vectors for specific colors.
"""
import base64
import hashlib
from typing import Dict, Iterable, List, Sequence, Set, Tuple

import cv2
import numpy as np

from rollcall.domain.entities.face import BoundingBox, DetectedFace, FaceImage
from rollcall.domain.interfaces.recognition.face_recognition import FaceDetector, FaceEncoder

Color = Tuple[int, int, int]

FACE_SIZE = 48
FACE_SPACING = 70
FAIL_COLOR: Color = (0, 0, 255)
SECTION = "section-a"

RED: Color = (0, 0, 200)
GREEN: Color = (0, 200, 0)
BLUE: Color = (200, 0, 0)
TEAL: Color = (200, 200, 0)
GREY: Color = (120, 120, 120)
PINK: Color = (180, 105, 255)


class ColorBlockDetector(FaceDetector):
    """Reports every solid non-black rectangle as a face, left to right."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.calls = 0

    def _locate(self, image: FaceImage) -> List[DetectedFace]:
        self.calls += 1
        mask = np.any(image.pixels > 0, axis=2).astype(np.uint8) * 255
        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        boxes = sorted(tuple(int(v) for v in cv2.boundingRect(c)) for c in contours)
        return [
            DetectedFace(bounding_box=BoundingBox(x=x, y=y, width=w, height=h), confidence=0.99)
            for x, y, w, h in boxes
        ]


class ColorHashEncoder(FaceEncoder):
    """Maps a face's color to a seeded random vector, or to a pinned one."""

    model_name = "color-hash"

    def __init__(self, dim: int = 128) -> None:
        self.dim = dim
        self.vectors: Dict[Color, Sequence[float]] = {}
        self.failing: Set[Color] = {FAIL_COLOR}
        self.calls = 0

    def _embed(self, image: FaceImage, face: DetectedFace) -> np.ndarray:
        self.calls += 1
        mean = self.crop(image, face).reshape(-1, 3).mean(axis=0)
        color = tuple(int(round(float(c))) for c in mean)
        if color in self.failing:
            raise RuntimeError(f"model crashed on {color}")
        if color in self.vectors:
            return np.asarray(self.vectors[color], dtype=np.float32)
        seed = int.from_bytes(hashlib.sha256(bytes(color)).digest()[:8], "big")
        return np.random.default_rng(seed).standard_normal(self.dim)


def draw_frame(colors: Iterable[Color], width: int = 400, height: int = 120) -> str:
    """Base64 PNG with one square face per color, laid out left to right."""
    canvas = np.zeros((height, width, 3), dtype=np.uint8)
    for i, color in enumerate(colors):
        x = 10 + i * FACE_SPACING
        canvas[30:30 + FACE_SIZE, x:x + FACE_SIZE] = color
    ok, buffer = cv2.imencode(".png", canvas)
    assert ok
    return base64.b64encode(buffer.tobytes()).decode("ascii")


def enrollment_set(color: Color, count: int = 5) -> List[str]:
    return [draw_frame([color]) for _ in range(count)]


def unit(*values: float) -> List[float]:
    vector = np.asarray(values, dtype=np.float64)
    return list(vector / np.linalg.norm(vector))


def vector_at(similarity: float, dim: int = 3) -> List[float]:
    """A unit vector whose cosine with the first axis is ``similarity``."""
    vector = [0.0] * dim
    vector[0] = similarity
    vector[1] = float(np.sqrt(1.0 - similarity ** 2))
    return vector
