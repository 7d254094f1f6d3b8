"""
One interactive terminal session: a shell, its line discipline and its transport.
"""

import threading
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from ..core.logging import get_logger
from .line_discipline import LineDiscipline
from .shell import ShellProcess
from .transport import TERMINAL_ERROR, TERMINAL_EXIT, TERMINAL_OUTPUT, TerminalTransport, try_send

logger = get_logger(__name__)

LINE_END = "\r\n"


class SessionState(str, Enum):
    CREATING = "creating"
    RUNNING = "running"
    CLOSING = "closing"
    CLOSED = "closed"


def session_id_for(user_id: str, project_id: str) -> str:
    """Display id sent to clients; not unique, since both parts may contain '_'."""
    return f"{user_id}_{project_id}"


def session_key(user_id: str, project_id: str) -> tuple[str, str]:
    return (user_id, project_id)


class TerminalSession:
    """
    A long-lived shell streamed to one caller.

    Output lines go to the transport as they arrive; keystrokes go through
    the line discipline and reach the shell one complete line at a time.
    """

    def __init__(
        self,
        user_id: str,
        project_id: str,
        working_directory: Path,
        transport: TerminalTransport,
        shell: str | None = None,
        deliver_interrupt: bool = True,
        close_wait_seconds: float = 1.5,
        on_exit: Callable[["TerminalSession", int], None] | None = None,
    ):
        self.user_id = user_id
        self.project_id = project_id
        self.working_directory = working_directory
        self.transport = transport
        self.deliver_interrupt = deliver_interrupt
        self.close_wait_seconds = close_wait_seconds
        self.discipline = LineDiscipline()
        self.cols: int | None = None
        self.rows: int | None = None
        self._on_exit = on_exit
        self._state = SessionState.CREATING
        self._state_lock = threading.Lock()
        self._input_lock = threading.Lock()
        self.process = ShellProcess(
            cwd=working_directory,
            shell=shell,
            on_stdout=self._handle_stdout,
            on_stderr=self._handle_stderr,
            on_exit=self._handle_exit,
            install_interrupt_trap=deliver_interrupt,
        )

    @property
    def session_id(self) -> str:
        return session_id_for(self.user_id, self.project_id)

    @property
    def key(self) -> tuple[str, str]:
        return session_key(self.user_id, self.project_id)

    @property
    def shell(self) -> str:
        return self.process.shell

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_disposed(self) -> bool:
        return self._state in (SessionState.CLOSING, SessionState.CLOSED)

    @property
    def is_running(self) -> bool:
        return self._state is SessionState.RUNNING and self.process.is_running

    def start(self) -> None:
        """Spawn the shell. Raises ProcessSpawnError if it cannot start."""
        try:
            self.process.start()
        except Exception:
            self._state = SessionState.CLOSED
            raise
        with self._state_lock:
            if self._state is SessionState.CREATING:
                self._state = SessionState.RUNNING

    def write_input(self, chunk: str) -> None:
        """Apply raw keystrokes; complete lines are queued for the shell."""
        if self.is_disposed:
            return
        with self._input_lock:
            result = self.discipline.feed(chunk)
            if result.echo:
                try_send(self.transport, TERMINAL_OUTPUT, result.echo)
            if result.interrupt and self.deliver_interrupt:
                self.process.interrupt()
            for line in result.lines:
                self.process.write_line(line)

    def resize(self, cols: int, rows: int) -> None:
        """Record the window size; pipes have no window size to update."""
        self.cols = cols
        self.rows = rows
        logger.debug(f"Session {self.session_id} resized to {cols}x{rows} (not propagated)")

    def dispose(self) -> None:
        """Stop the shell; never raises."""
        with self._state_lock:
            if self.is_disposed:
                return
            self._state = SessionState.CLOSING
        try:
            self.process.close(wait_seconds=self.close_wait_seconds)
        except Exception as e:
            logger.debug(f"Error while closing session {self.session_id}: {e}")
        finally:
            self._state = SessionState.CLOSED
        logger.info(f"Closed terminal session {self.session_id}")

    def _handle_stdout(self, line: str) -> None:
        try_send(self.transport, TERMINAL_OUTPUT, line + LINE_END)

    def _handle_stderr(self, line: str) -> None:
        try_send(self.transport, TERMINAL_ERROR, line + LINE_END)

    def _handle_exit(self, code: int) -> None:
        with self._state_lock:
            unexpected = not self.is_disposed
            self._state = SessionState.CLOSED
        if unexpected:
            logger.info(f"Shell for session {self.session_id} exited with code {code}")
            try_send(self.transport, TERMINAL_EXIT, code)
        if self._on_exit is not None:
            self._on_exit(self, code)
