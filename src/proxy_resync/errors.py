"""Error taxonomy for the resync scenario."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional


class ResyncE2EError(Exception):
    """Base class for every error raised by the scenario harness."""


class SetupError(ResyncE2EError):
    """A process or cluster member could not be brought up."""


class SpawnError(SetupError):
    """The OS refused to start a process."""

    def __init__(self, command: List[str], cause: BaseException) -> None:
        self.command = command
        self.cause = cause
        super().__init__(f"failed to spawn {' '.join(command)}: {cause}")


class SyncTimeoutError(ResyncE2EError):
    """An expected output line was not observed before the deadline."""

    def __init__(self, process: str, pattern: str, timeout: float, tail: Optional[List[str]] = None) -> None:
        self.process = process
        self.pattern = pattern
        self.timeout = timeout
        self.tail = tail or []
        super().__init__(f"{process}: no line matching {pattern!r} within {timeout:g}s")


class ProcessExitedError(ResyncE2EError):
    """The output stream closed before the expected line appeared."""

    def __init__(self, process: str, pattern: str, returncode: Optional[int]) -> None:
        self.process = process
        self.pattern = pattern
        self.returncode = returncode
        super().__init__(
            f"{process} exited (code {returncode}) before a line matching {pattern!r} appeared"
        )


class ErrorKind(str, Enum):
    """Classification of control-plane failures."""

    UNHEALTHY = "unhealthy"
    LEADER_CHANGED = "leader_changed"
    OTHER = "other"


class ClusterError(ResyncE2EError):
    """A control-plane request failed."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        self.kind = kind
        self.message = message
        super().__init__(f"[{kind.value}] {message}")

    @property
    def transient(self) -> bool:
        return self.kind is not ErrorKind.OTHER


class MemberNotFoundError(ResyncE2EError):
    """No member advertises the requested client endpoint."""

    def __init__(self, endpoint: str) -> None:
        self.endpoint = endpoint
        super().__init__(f"member not found for client endpoint {endpoint}")


class AssertionFailure(ResyncE2EError):
    """Observed state differs from the expected state."""

    def __init__(self, what: str, expected: Any, actual: Any) -> None:
        self.what = what
        self.expected = expected
        self.actual = actual
        super().__init__(f"{what}: expected {expected!r}, got {actual!r}")


class ScenarioFailure(ResyncE2EError):
    """A scenario step failed; carries the step name and captured process output."""

    def __init__(self, step: str, cause: BaseException, outputs: Dict[str, List[str]]) -> None:
        self.step = step
        self.cause = cause
        self.outputs = outputs
        super().__init__(f"step {step!r} failed: {cause}")

    def render(self) -> str:
        """Full diagnostic text: failing step, cause and every process's output."""
        parts = [str(self)]
        for name, lines in self.outputs.items():
            parts.append(f"----- {name} ({len(lines)} lines) -----")
            parts.extend(lines)
        return "\n".join(parts)
