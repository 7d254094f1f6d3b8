"""
One-shot code execution.
"""

from .engine import ExecutionEngine, truncate_output
from .models import NO_EXIT_CODE, RunRequest, RunResult, RunStatus
from .runner import LocalProcessRunner, ProcessRequest, ProcessRunner

__all__ = [
    "ExecutionEngine",
    "LocalProcessRunner",
    "NO_EXIT_CODE",
    "ProcessRequest",
    "ProcessRunner",
    "RunRequest",
    "RunResult",
    "RunStatus",
    "truncate_output",
]
