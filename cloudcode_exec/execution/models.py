"""
Request and result types for one-shot runs.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..core.exceptions import ExecutionFailedError, ExecutionTimeoutError

# Exit code reported when no process exit status exists (spawn or setup failure).
NO_EXIT_CODE = -1


class RunStatus(str, Enum):
    COMPLETED = "Completed"
    FAILED = "Failed"
    TIMEOUT = "Timeout"


STATUS_DESCRIPTIONS = {
    RunStatus.COMPLETED: "The program ran to completion and exited with code 0.",
    RunStatus.FAILED: (
        "The program exited with a non-zero code, or its environment could not be "
        "prepared. This describes the submitted program, not the execution service."
    ),
    RunStatus.TIMEOUT: "The program exceeded its time limit and was killed with all of its child processes.",
}


@dataclass(slots=True)
class RunRequest:
    """One request to run source text once."""

    project_id: str
    language: str
    source_text: str
    stdin: str | None = None
    timeout_seconds: int | None = None
    dependencies: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RunResult:
    """Captured output and status of one run."""

    output: str
    error_output: str
    exit_code: int
    status: RunStatus
    elapsed_ms: int
    timeout_seconds: int | None = None
    executed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def succeeded(self) -> bool:
        return self.status is RunStatus.COMPLETED

    def raise_for_status(self) -> None:
        """Raise ExecutionTimeoutError or ExecutionFailedError unless completed."""
        if self.status is RunStatus.TIMEOUT:
            raise ExecutionTimeoutError(self.timeout_seconds or 0)
        if self.status is RunStatus.FAILED:
            raise ExecutionFailedError(self.exit_code, self.error_output)

    def to_dict(self) -> dict[str, Any]:
        return {
            "output": self.output,
            "errorOutput": self.error_output,
            "exitCode": self.exit_code,
            "status": self.status.value,
            "statusDescription": STATUS_DESCRIPTIONS[self.status],
            "executionTimeMs": self.elapsed_ms,
            "executedAt": self.executed_at.isoformat(),
        }

    @classmethod
    def failed(cls, error_output: str, elapsed_ms: int = 0) -> "RunResult":
        """Result for a run that failed before the program produced an exit code."""
        return cls(
            output="",
            error_output=error_output,
            exit_code=NO_EXIT_CODE,
            status=RunStatus.FAILED,
            elapsed_ms=elapsed_ms,
        )
