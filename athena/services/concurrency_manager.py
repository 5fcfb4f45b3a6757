"""
Optimistic concurrency retries and background work for the gateway.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from ..core.exceptions import ConflictError, StaleRevisionError


logger = logging.getLogger(__name__)


class ConcurrencyManager:
    """Retries read-modify-write operations on revision conflicts and runs deferred work."""

    def __init__(self, max_retries: int = 3, backoff_factor: float = 0.05,
                 max_workers: int = 4, sleep: Callable[[float], None] = time.sleep):
        self._max_retries = max_retries
        self._backoff_factor = backoff_factor
        self._max_workers = max_workers
        self._sleep = sleep
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def execute_with_retry(self, func: Callable[[], Any], description: str = "update") -> Any:
        """Run func, re-running it after a backoff whenever it hits a stale revision.

        func must re-read the document it modifies on every call. After
        ``max_retries`` retries the conflict is surfaced as ConflictError.
        """
        last_exception = None

        for attempt in range(self._max_retries + 1):
            try:
                return func()
            except StaleRevisionError as e:
                last_exception = e
                if attempt < self._max_retries:
                    delay = self._backoff_factor * (2 ** attempt)
                    logger.info("Revision conflict on %s, retry %d/%d in %.3fs",
                                description, attempt + 1, self._max_retries, delay)
                    self._sleep(delay)

        raise ConflictError(
            f"Concurrent modification during {description}; gave up after {self._max_retries} retries",
            error_code="concurrent_modification",
            details={"last_error": str(last_exception)}
        )

    def submit(self, func: Callable[..., Any], *args: Any) -> Future:
        """Run func on the background pool."""
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="athena-sync"
                )
            return self._executor.submit(func, *args)

    def cleanup(self):
        """Wait for queued background work and release the pool."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)
