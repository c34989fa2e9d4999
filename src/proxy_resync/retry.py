"""Bounded retry of control-plane calls that fail with transient errors."""

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, FrozenSet, Iterable, Optional, TypeVar

from proxy_resync.errors import ClusterError, ErrorKind
from proxy_resync.observability import get_logger

logger = get_logger("proxy_resync.retry")

T = TypeVar("T")


class RetryState(str, Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    TERMINAL_FAILURE = "terminal_failure"


class RetryPolicy:
    """Retry a call while it fails with one of the ``retry_on`` error kinds.

    Any other error ends the loop at once. A retryable error on the last
    allowed attempt, or once ``max_elapsed`` seconds would be exceeded by the
    next delay, is re-raised unchanged.
    """

    def __init__(self,
                 retry_on: Iterable[ErrorKind],
                 max_attempts: int = 10,
                 delay: float = 0.5,
                 max_elapsed: Optional[float] = None,
                 name: str = "call") -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.retry_on: FrozenSet[ErrorKind] = frozenset(retry_on)
        self.max_attempts = max_attempts
        self.delay = delay
        self.max_elapsed = max_elapsed
        self.name = name
        self.state = RetryState.ATTEMPTING
        self.attempts = 0

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, ClusterError) and error.kind in self.retry_on

    def _budget_left(self, started: float) -> bool:
        if self.max_elapsed is None:
            return True
        return time.monotonic() - started + self.delay <= self.max_elapsed

    async def run(self, call: Callable[[], Awaitable[T]]) -> T:
        self.state = RetryState.ATTEMPTING
        self.attempts = 0
        started = time.monotonic()

        while True:
            self.attempts += 1
            try:
                result = await call()
            except Exception as e:
                if not self.is_retryable(e):
                    self.state = RetryState.TERMINAL_FAILURE
                    raise
                if self.attempts >= self.max_attempts or not self._budget_left(started):
                    self.state = RetryState.EXHAUSTED
                    logger.error("Retries exhausted", call=self.name, attempts=self.attempts, error=str(e))
                    raise
                logger.info("Transient cluster error, retrying", call=self.name,
                            attempt=self.attempts, kind=e.kind.value, delay=self.delay)
                await asyncio.sleep(self.delay)
                continue

            self.state = RetryState.SUCCEEDED
            return result
