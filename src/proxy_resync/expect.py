"""Waiting for expected lines in a process's output."""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

from proxy_resync.errors import ProcessExitedError, SyncTimeoutError
from proxy_resync.observability import get_logger
from proxy_resync.process import ProcessHandle

logger = get_logger("proxy_resync.expect")

Predicate = Callable[[str], bool]


def contains(text: str) -> Predicate:
    return lambda line: text in line


def contains_all(*texts: str) -> Predicate:
    """Match lines that contain every one of ``texts``."""
    return lambda line: all(text in line for text in texts)


@dataclass
class LogExpectation:
    """A predicate over output lines, bounded by a timeout in seconds."""
    predicate: Predicate
    description: str
    timeout: float
    filter: Optional[str] = None

    def matches(self, line: str) -> bool:
        if self.filter is not None and self.filter not in line:
            return False
        return self.predicate(line)


async def _scan(handle: ProcessHandle, expectation: LogExpectation) -> str:
    cursor = handle.expect_cursor
    while True:
        while cursor < len(handle.output):
            line = handle.output[cursor]
            cursor += 1
            if expectation.matches(line):
                handle.expect_cursor = cursor
                return line
        if handle.output.closed:
            raise ProcessExitedError(handle.name, expectation.description, handle.returncode)
        await handle.output.wait_beyond(cursor)


async def await_pattern(handle: ProcessHandle, expectation: LogExpectation) -> str:
    """Return the first not-yet-consumed line matching ``expectation``.

    Lines are checked as they arrive. Raises ``SyncTimeoutError`` once the
    timeout elapses and ``ProcessExitedError`` if the output ends first.
    Cancelling the awaiting task unblocks the wait immediately.
    """
    try:
        line = await asyncio.wait_for(_scan(handle, expectation), timeout=expectation.timeout)
    except asyncio.TimeoutError:
        logger.error("Expected output not observed", process=handle.name,
                     pattern=expectation.description, timeout=expectation.timeout)
        raise SyncTimeoutError(handle.name, expectation.description, expectation.timeout,
                               handle.tail()) from None

    logger.debug("Matched expected output", process=handle.name,
                 pattern=expectation.description, line=line)
    return line
