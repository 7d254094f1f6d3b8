"""
Subprocess helpers shared by provisioning, installs and one-shot runs.

Every child is started in its own session so a timeout can kill the whole
process group, not just the top-level process.
"""

import os
import signal
import subprocess
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from .exceptions import ProcessSpawnError
from .logging import get_logger

logger = get_logger(__name__)

POSIX = os.name == "posix"


@dataclass(slots=True)
class CommandOutcome:
    """Captured result of one finished (or killed) command."""

    args: list[str]
    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr joined, for transcripts."""
        parts = [part for part in (self.stdout, self.stderr) if part]
        return "\n".join(parts)

    def describe_failure(self) -> str:
        if self.timed_out:
            return "timed out"
        detail = (self.stderr or self.stdout).strip()
        if detail:
            return f"exit code {self.returncode}: {detail}"
        return f"exit code {self.returncode}"


def popen_session_kwargs() -> dict:
    """Keyword arguments that put a child in its own process group."""
    if POSIX:
        return {"start_new_session": True}
    return {"creationflags": getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)}


def kill_process_tree(process: subprocess.Popen) -> None:
    """Force-kill a process and every descendant in its process group.

    On POSIX the group is signalled even when the leader already exited,
    since forked workers may still be alive.
    """
    if not POSIX:
        if process.poll() is None:
            process.kill()
        return
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        # Group already gone; make sure the leader is reaped.
        try:
            process.kill()
        except OSError:
            pass


def signal_process_group(process: subprocess.Popen, sig: int) -> bool:
    """Send a signal to the process group led by ``process``."""
    if not POSIX or process.poll() is not None:
        return False
    try:
        os.killpg(process.pid, sig)
        return True
    except (ProcessLookupError, PermissionError) as e:
        logger.debug(f"signal {sig} to group {process.pid} failed: {e}")
        return False


def run_command(
    args: Sequence[str],
    cwd: Path | None = None,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
    input_text: str | None = None,
    kill_wait: float = 2.0,
) -> CommandOutcome:
    """
    Run a command to completion, killing its process tree on timeout.

    Args:
        args: Command and arguments
        cwd: Working directory
        timeout: Wall-clock limit in seconds, None for no limit
        env: Environment for the child, None to inherit
        input_text: Text written to stdin; stdin is closed either way
        kill_wait: Seconds to wait for pipes to drain after a kill

    Returns:
        CommandOutcome with whatever output was captured

    Raises:
        ProcessSpawnError: If the executable cannot be started
    """
    argv = [str(arg) for arg in args]
    started = time.monotonic()
    try:
        process = subprocess.Popen(
            argv,
            cwd=str(cwd) if cwd else None,
            env=dict(env) if env is not None else None,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            **popen_session_kwargs(),
        )
    except OSError as e:
        raise ProcessSpawnError(argv[0], str(e)) from e

    timed_out = False
    try:
        stdout, stderr = process.communicate(input=input_text or None, timeout=timeout)
    except subprocess.TimeoutExpired:
        timed_out = True
        logger.warning(f"Command timed out after {timeout}s, killing process group {process.pid}")
        kill_process_tree(process)
        try:
            # Retrying communicate() keeps the output read so far.
            stdout, stderr = process.communicate(timeout=kill_wait)
        except subprocess.TimeoutExpired:
            # A grandchild that left the group still holds the pipes.
            stdout, stderr = "", ""
            for stream in (process.stdout, process.stderr):
                if stream:
                    stream.close()
            process.wait()

    elapsed_ms = int((time.monotonic() - started) * 1000)
    return CommandOutcome(
        args=argv,
        returncode=process.returncode,
        stdout=stdout or "",
        stderr=stderr or "",
        timed_out=timed_out,
        elapsed_ms=elapsed_ms,
    )
