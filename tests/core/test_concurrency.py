"""Tests for the inference pool and in-flight guard."""
import threading

import pytest

from rollcall.core.exceptions import EncodingFailedError, RecognitionBusyError
from rollcall.core.utils.concurrency import InferencePool, InFlightGuard


class TestInferencePool:

    async def test_runs_blocking_call(self, inference_pool):
        result = await inference_pool.run(sum, [1, 2, 3], timeout=1.0)
        assert result == 6

    async def test_timeout_raises_typed_error(self, inference_pool):
        release = threading.Event()
        try:
            with pytest.raises(EncodingFailedError, match="timed out"):
                await inference_pool.run(
                    release.wait, 5.0,
                    timeout=0.05,
                    on_timeout=lambda: EncodingFailedError("Face encoding timed out"),
                )
        finally:
            release.set()

    async def test_errors_propagate(self, inference_pool):
        def boom():
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await inference_pool.run(boom, timeout=1.0)


class TestInFlightGuard:

    def test_second_claim_is_rejected(self):
        guard = InFlightGuard()
        with guard.claim("class-1"):
            assert guard.is_active("class-1")
            with pytest.raises(RecognitionBusyError):
                with guard.claim("class-1"):
                    pass
            # other streams are independent
            with guard.claim("class-2"):
                pass
        assert not guard.is_active("class-1")

    def test_released_after_error(self):
        guard = InFlightGuard()
        with pytest.raises(RuntimeError):
            with guard.claim("class-1"):
                raise RuntimeError("failed")
        assert not guard.is_active("class-1")
