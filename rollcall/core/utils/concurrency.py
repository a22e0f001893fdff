"""Bounded inference dispatch and per-stream in-flight guards."""
import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, Set

from rollcall.core.exceptions import FaceRecognitionError, RecognitionBusyError
from rollcall.core.logging import get_logger

logger = get_logger(__name__)


class InferencePool:
    """Runs blocking decode/detect/encode calls on a bounded thread pool with deadlines.

    Example:
        ```python
        pool = InferencePool(max_workers=4)
        faces = await pool.run(
            detector.detect, image,
            timeout=3.0,
            on_timeout=lambda: EncodingFailedError("Face detection timed out"),
        )
        ```
    """

    def __init__(self, max_workers: int) -> None:
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="inference"
        )

    async def run(
        self,
        func: Callable[..., Any],
        *args: Any,
        timeout: Optional[float] = None,
        on_timeout: Optional[Callable[[], FaceRecognitionError]] = None,
    ) -> Any:
        """Run ``func(*args)`` on the pool and wait at most ``timeout`` seconds.

        A timed-out call keeps its worker thread until the model returns, but the
        caller is released immediately with the error built by ``on_timeout``.
        """
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, functools.partial(func, *args))
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Inference call timed out",
                call=getattr(func, "__qualname__", repr(func)),
                timeout=timeout
            )
            if on_timeout is None:
                raise
            raise on_timeout()

    def shutdown(self) -> None:
        """Stop accepting work and drop queued calls."""
        self._executor.shutdown(wait=False, cancel_futures=True)


class InFlightGuard:
    """Allows at most one in-flight call per key (e.g. per camera stream)."""

    def __init__(self) -> None:
        self._active: Set[str] = set()

    def is_active(self, key: str) -> bool:
        return key in self._active

    @contextmanager
    def claim(self, key: str) -> Iterator[None]:
        """Hold ``key`` for the duration of the block.

        Raises:
            RecognitionBusyError: If ``key`` is already held
        """
        if key in self._active:
            raise RecognitionBusyError(
                "A recognition for this stream is already in progress",
                details={"stream": key}
            )
        self._active.add(key)
        try:
            yield
        finally:
            self._active.discard(key)
