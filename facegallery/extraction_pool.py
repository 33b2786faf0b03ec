import asyncio
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

from .errors import ExtractionTimeoutError, PoolSaturatedError

logger = logging.getLogger(__name__)


class ExtractionPool:
    """Fixed-size worker pool for blocking face extraction.

    At most ``max_pending`` tasks may be queued or running; further submissions
    are rejected instead of queued. A task that exceeds ``timeout`` fails the
    request but keeps its slot until the worker actually finishes it.
    """

    def __init__(self, max_workers: int = 2, max_pending: int = 8, timeout: float = 30.0):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.max_workers = max_workers
        self.max_pending = max(max_pending, max_workers)
        self.timeout = timeout
        self.lock = threading.Lock()
        self._pending = 0
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="face-extract")

    @property
    def capacity(self) -> int:
        return self.max_pending

    def pending(self) -> int:
        with self.lock:
            return self._pending

    def _release(self, _fut: Future):
        with self.lock:
            self._pending -= 1

    def submit(self, fn: Callable, *args) -> Future:
        with self.lock:
            if self._pending >= self.max_pending:
                raise PoolSaturatedError(f"Face analysis is busy ({self.max_pending} requests in flight), please try again")
            self._pending += 1
        try:
            fut = self._executor.submit(fn, *args)
        except RuntimeError:
            self._release(None)
            raise
        fut.add_done_callback(self._release)
        return fut

    async def run(self, fn: Callable, *args):
        fut = self.submit(fn, *args)
        try:
            return await asyncio.wait_for(asyncio.wrap_future(fut), timeout=self.timeout)
        except asyncio.TimeoutError:
            fut.cancel()
            logger.warning(f"Extraction exceeded {self.timeout}s timeout")
            raise ExtractionTimeoutError()

    def info(self) -> dict:
        return {
            "workers": self.max_workers,
            "capacity": self.max_pending,
            "pending": self.pending(),
            "timeout_s": self.timeout,
        }

    def shutdown(self, wait: bool = False):
        self._executor.shutdown(wait=wait, cancel_futures=True)
