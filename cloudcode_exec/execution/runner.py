"""
Process runners used by the execution engine.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from ..core.process_utils import CommandOutcome, run_command


@dataclass(slots=True)
class ProcessRequest:
    """Process launch request passed to a runner."""

    argv: list[str]
    workdir: Path
    timeout_seconds: int
    stdin: str | None = None
    env: dict[str, str] | None = None


class ProcessRunner(Protocol):
    """Runner contract for one-shot processes."""

    name: str

    def execute(self, request: ProcessRequest) -> CommandOutcome:
        """Run request to completion or timeout and return the captured outcome."""


class LocalProcessRunner:
    """Runs the interpreter as a local child process in its own process group."""

    name = "local"

    def __init__(self, kill_wait_seconds: float = 2.0):
        self.kill_wait_seconds = kill_wait_seconds

    def execute(self, request: ProcessRequest) -> CommandOutcome:
        return run_command(
            request.argv,
            cwd=request.workdir,
            timeout=request.timeout_seconds,
            env=request.env,
            input_text=request.stdin,
            kill_wait=self.kill_wait_seconds,
        )
