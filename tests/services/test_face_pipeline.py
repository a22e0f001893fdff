"""Tests for the decode/detect/encode pipeline."""
import numpy as np
import pytest

from rollcall.core.exceptions import EncodingFailedError
from rollcall.domain.entities.face import ImageSource
from rollcall.services.face_pipeline import FacePipeline
from tests.helpers import FAIL_COLOR, RED, ColorHashEncoder, draw_frame


class FlakyEncoder(ColorHashEncoder):
    """Fails the first ``failures`` calls, then behaves normally."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    def _embed(self, image, face):
        if self.failures:
            self.failures -= 1
            self.calls += 1
            raise RuntimeError("transient model error")
        return super()._embed(image, face)


def make_pipeline(detector, encoder, inference_pool) -> FacePipeline:
    return FacePipeline(
        detector,
        encoder,
        inference_pool,
        decode_timeout=5.0,
        detect_timeout=5.0,
        encode_timeout=5.0,
        encode_attempts=2,
    )


async def first_face(pipeline: FacePipeline, color):
    image = await pipeline.decode(draw_frame([color]), ImageSource.LIVE_FRAME)
    faces = await pipeline.detect(image)
    return image, faces[0]


class TestEncodeRetry:

    async def test_transient_failure_is_retried(self, detector, inference_pool):
        encoder = FlakyEncoder(failures=1)
        pipeline = make_pipeline(detector, encoder, inference_pool)
        image, face = await first_face(pipeline, RED)

        vector = await pipeline.encode(image, face)

        assert encoder.calls == 2
        assert np.linalg.norm(vector) == pytest.approx(1.0, abs=1e-5)

    async def test_gives_up_after_configured_attempts(self, detector, inference_pool):
        encoder = FlakyEncoder(failures=5)
        pipeline = make_pipeline(detector, encoder, inference_pool)
        image, face = await first_face(pipeline, RED)

        with pytest.raises(EncodingFailedError):
            await pipeline.encode(image, face)
        assert encoder.calls == 2

    async def test_persistent_model_error(self, pipeline, encoder):
        image, face = await first_face(pipeline, FAIL_COLOR)

        with pytest.raises(EncodingFailedError):
            await pipeline.encode(image, face)
        assert encoder.calls == 2
