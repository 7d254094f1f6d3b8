"""
Long-lived shell process behind an interactive terminal session.
"""

import os
import queue
import signal
import subprocess
import threading
from collections.abc import Callable
from pathlib import Path

from ..core.exceptions import ProcessSpawnError
from ..core.logging import get_logger
from ..core.process_utils import kill_process_tree, popen_session_kwargs, signal_process_group

logger = get_logger(__name__)

LineCallback = Callable[[str], None]
ExitCallback = Callable[[int], None]

DEFAULT_SHELL = "/bin/sh"

# Keeps the shell alive on Ctrl+C; caught traps reset to default in children.
INTERRUPT_TRAP = "trap ':' INT"


def resolve_shell(configured: str | None = None) -> str:
    """Configured shell, else $SHELL, else /bin/sh."""
    return configured or os.environ.get("SHELL") or DEFAULT_SHELL


def shell_arguments(shell: str) -> list[str]:
    """Argv that starts ``shell`` without reading rc files."""
    shell_base = Path(shell).name
    if shell_base == "zsh":
        rc_flags = ["--no-rcs", "--no-globalrcs"]
    elif shell_base == "bash":
        rc_flags = ["--norc", "--noprofile"]
    else:
        # POSIX sh reads no rc files when non-interactive; dash rejects long options
        rc_flags = []
    return [shell, *rc_flags]


class ShellProcess:
    """
    A shell attached through pipes, with output pushed to callbacks.

    Output is read line by line on background threads. Input lines are
    queued and written by a dedicated writer thread, so writers never block
    on a full pipe.
    """

    def __init__(
        self,
        cwd: Path,
        shell: str | None = None,
        on_stdout: LineCallback | None = None,
        on_stderr: LineCallback | None = None,
        on_exit: ExitCallback | None = None,
        install_interrupt_trap: bool = True,
    ):
        self.cwd = cwd
        self.shell = resolve_shell(shell)
        self._on_stdout = on_stdout
        self._on_stderr = on_stderr
        self._on_exit = on_exit
        self._install_interrupt_trap = install_interrupt_trap
        self._input_queue: queue.Queue[str | None] = queue.Queue()
        self._closed = False
        self._close_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._proc: subprocess.Popen | None = None
        self._threads: list[threading.Thread] = []

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    @property
    def returncode(self) -> int | None:
        return self._proc.poll() if self._proc else None

    @property
    def is_running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def start(self) -> None:
        """
        Spawn the shell and its pump threads.

        Raises:
            ProcessSpawnError: If the shell binary cannot be started
        """
        env = os.environ.copy()
        # Prevent prompts and decoration from contaminating output.
        env["PS1"] = ""
        env["PS2"] = ""
        env["PROMPT_COMMAND"] = ""
        env["DISABLE_AUTO_TITLE"] = "true"
        env["RPROMPT"] = ""
        env.setdefault("TERM", "dumb")

        try:
            self._proc = subprocess.Popen(
                shell_arguments(self.shell),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                cwd=str(self.cwd),
                env=env,
                **popen_session_kwargs(),
            )
        except OSError as e:
            raise ProcessSpawnError(self.shell, str(e)) from e

        if self._install_interrupt_trap and os.name == "posix":
            self._input_queue.put(INTERRUPT_TRAP)

        readers = [
            threading.Thread(target=self._reader_loop, args=(self._proc.stdout, self._on_stdout), daemon=True),
            threading.Thread(target=self._reader_loop, args=(self._proc.stderr, self._on_stderr), daemon=True),
        ]
        writer = threading.Thread(target=self._writer_loop, daemon=True)
        waiter = threading.Thread(target=self._wait_loop, args=(readers,), daemon=True)
        self._threads = [*readers, writer, waiter]
        for thread in self._threads:
            thread.start()
        logger.info(f"Started shell {self.shell} (pid {self._proc.pid}) in {self.cwd}")

    def write_line(self, line: str) -> None:
        """Queue one line for the shell's stdin; returns immediately."""
        if self._closed:
            return
        self._input_queue.put(line)

    def interrupt(self) -> bool:
        """Deliver SIGINT to the shell's process group."""
        if self._proc is None or os.name != "posix":
            return False
        return signal_process_group(self._proc, signal.SIGINT)

    def close(self, wait_seconds: float = 1.5) -> None:
        """Ask the shell to exit, then terminate and kill its process group."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._input_queue.put(None)

        proc = self._proc
        if proc is None:
            return

        # The writer may be stuck on a full pipe; do not wait on it for long.
        if self._write_lock.acquire(timeout=wait_seconds):
            try:
                if proc.stdin and not proc.stdin.closed:
                    proc.stdin.write("exit\n")
                    proc.stdin.flush()
            except (OSError, ValueError):
                pass
            finally:
                self._write_lock.release()

        try:
            proc.terminate()
            proc.wait(timeout=wait_seconds)
        except (OSError, subprocess.TimeoutExpired):
            pass
        # Reaps background jobs left in the group as well as a stuck shell.
        kill_process_tree(proc)
        try:
            proc.wait(timeout=wait_seconds)
        except subprocess.TimeoutExpired:
            logger.warning(f"Shell pid {proc.pid} did not exit after SIGKILL")

    def _reader_loop(self, stream, callback: LineCallback | None) -> None:
        """Read lines from one output pipe until EOF."""
        if stream is None:
            return
        try:
            for line in stream:
                if callback is not None:
                    callback(line.rstrip("\r\n"))
        except (OSError, ValueError) as e:
            logger.debug(f"Shell output reader stopped: {e}")

    def _writer_loop(self) -> None:
        """Write queued lines to the shell until closed."""
        proc = self._proc
        while True:
            line = self._input_queue.get()
            if line is None or proc is None or proc.stdin is None:
                return
            try:
                with self._write_lock:
                    proc.stdin.write(line + "\n")
                    proc.stdin.flush()
            except (OSError, ValueError) as e:
                logger.debug(f"Shell stdin closed: {e}")
                return

    def _wait_loop(self, readers: list[threading.Thread]) -> None:
        """Report the exit code once the shell ended and its output drained."""
        proc = self._proc
        if proc is None:
            return
        code = proc.wait()
        for reader in readers:
            reader.join(timeout=2.0)
        self._input_queue.put(None)
        if self._on_exit is not None:
            self._on_exit(code)
