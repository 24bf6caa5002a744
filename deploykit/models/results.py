"""
Result Models

Dataclass models for operation results and command outputs.
"""

from dataclasses import dataclass
from enum import Enum

from deploykit.constants import TIMEOUT_EXIT_CODE


class Outcome(Enum):
    """Classification of an external command invocation."""

    SUCCESS = "success"
    TIMEOUT = "timeout"
    FAILURE = "failure"

    @classmethod
    def from_exit_code(cls, exit_code: int) -> "Outcome":
        """Classify an exit status (124 is the timeout convention)."""
        if exit_code == 0:
            return cls.SUCCESS
        if exit_code == TIMEOUT_EXIT_CODE:
            return cls.TIMEOUT
        return cls.FAILURE


class LockOutcome(Enum):
    """Result of a single attempt to release the remote deployment lock."""

    RELEASED = "released"
    NOT_LOCKED = "not_locked"
    FAILED = "failed"

    @property
    def is_clear(self) -> bool:
        return self in (LockOutcome.RELEASED, LockOutcome.NOT_LOCKED)


@dataclass
class OperationResult:
    """Result of an external command run through the CommandRunner."""

    description: str
    exit_code: int
    elapsed_seconds: int
    outcome: Outcome
    output: str = ""
    command: str = ""

    @property
    def is_success(self) -> bool:
        """Check if execution succeeded."""
        return self.outcome == Outcome.SUCCESS

    @property
    def is_timeout(self) -> bool:
        """Check if execution exceeded its time limit."""
        return self.outcome == Outcome.TIMEOUT

    @property
    def is_failure(self) -> bool:
        """Check if execution failed (including timeouts)."""
        return self.outcome != Outcome.SUCCESS

    def __repr__(self) -> str:
        return (
            f"OperationResult(description={self.description!r}, "
            f"outcome={self.outcome.value}, exit_code={self.exit_code}, "
            f"elapsed={self.elapsed_seconds}s)"
        )
