"""Processing concurrency layer.

Architecture:
    FastAPI (async) -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N) -> image pipeline

Requests beyond the semaphore limit queue with a 5s timeout, then get 503.
The optional processing deadline only bounds how long the caller waits (504).
The pipeline itself runs to completion in its worker thread, and its slot stays
taken until it does, so a backlog of overdue jobs turns into 503s rather than
extra threads of work.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

    from dirphoto.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEMAPHORE_TIMEOUT_SECONDS: float = 5.0


class PoolSaturatedError(TimeoutError):
    """No processing slot became free within the queue timeout."""


class ProcessingTimeoutError(TimeoutError):
    """The pipeline did not return within the caller's deadline."""


class ProcessingPool:
    """Manages the semaphore and thread pool for image processing."""

    def __init__(self, settings: Settings) -> None:
        self._semaphore = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="image-pipeline",
        )
        self._deadline: float | None = settings.process_timeout or None
        self._active_count: int = 0
        self._queue_depth: int = 0
        self._counter_lock = threading.Lock()

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Submit a synchronous function to the processing thread pool.

        Acquires the semaphore (with timeout), runs the function in the
        executor, then releases. If the caller stops waiting first, the slot
        is released when the worker thread actually finishes.

        Raises:
            PoolSaturatedError: If the semaphore cannot be acquired within the timeout.
            ProcessingTimeoutError: If the function does not finish before the deadline.
        """
        with self._counter_lock:
            self._queue_depth += 1
        try:
            await asyncio.wait_for(
                self._semaphore.acquire(),
                timeout=SEMAPHORE_TIMEOUT_SECONDS,
            )
        except TimeoutError:
            logger.warning("Processing queue full, rejecting request")
            raise PoolSaturatedError("image processing queue is full") from None
        finally:
            with self._counter_lock:
                self._queue_depth -= 1

        with self._counter_lock:
            self._active_count += 1
        loop = asyncio.get_running_loop()
        try:
            future = loop.run_in_executor(self._executor, func, *args)
        except RuntimeError:
            self._release_slot()
            raise
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=self._deadline)
        except TimeoutError:
            logger.warning("Image processing exceeded %.1fs deadline", self._deadline)
            raise ProcessingTimeoutError(f"image processing exceeded {self._deadline}s") from None
        finally:
            if future.done():
                self._release_slot()
            else:
                future.add_done_callback(self._release_after_worker)

    def _release_slot(self) -> None:
        self._semaphore.release()
        with self._counter_lock:
            self._active_count -= 1

    def _release_after_worker(self, future: asyncio.Future[Any]) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.warning("Abandoned image processing job failed: %s", future.exception())
        logger.debug("Abandoned image processing job finished, slot released")
        self._release_slot()

    @property
    def active_count(self) -> int:
        """Number of currently running processing tasks."""
        with self._counter_lock:
            return self._active_count

    @property
    def queue_depth(self) -> int:
        """Number of requests waiting for a semaphore slot."""
        with self._counter_lock:
            return self._queue_depth

    def shutdown(self) -> None:
        """Shut down the thread pool executor."""
        self._executor.shutdown(wait=True)
