"""
Registry of live terminal sessions, at most one per (user, project).
"""

import threading
from pathlib import Path

from ..core.config import TerminalConfig
from ..core.exceptions import ProcessSpawnError, SessionNotFoundError
from ..core.locks import KeyedLock
from ..core.logging import get_logger
from ..core.venv_utils import is_valid_venv
from ..environment.workspace import NODE_MODULES_DIRNAME, PACKAGE_JSON_FILENAME, VENV_DIRNAME, WorkspaceLayout
from ..languages import Language, resolve_language
from .session import TerminalSession, session_id_for, session_key
from .transport import TERMINAL_CLOSED, TERMINAL_OUTPUT, TERMINAL_READY, TerminalTransport, try_send

logger = get_logger(__name__)

CYAN = "\x1b[36m"
GREEN = "\x1b[32m"
YELLOW = "\x1b[33m"
GREY = "\x1b[90m"
RESET = "\x1b[0m"


def build_welcome_message(working_directory: Path, language: "str | Language | None" = None) -> str:
    """Banner shown when a session opens, with a hint for the project language."""
    lines = [
        f"{CYAN}=== CloudCode Terminal ==={RESET}\r\n",
        f"Directory: {working_directory}\r\n",
        f"{GREY}Ctrl+C: Interrupt | Ctrl+L: Clear | Enter: Run line{RESET}\r\n\r\n",
    ]
    if language is None:
        return "".join(lines)

    spec = resolve_language(language)
    if spec.language is Language.PYTHON:
        if is_valid_venv(working_directory / VENV_DIRNAME):
            lines.append(
                f"{GREEN}[Python] venv detected.{RESET} Activate: {YELLOW}. venv/bin/activate{RESET}\r\n\r\n"
            )
        else:
            lines.append(f"{YELLOW}[Python]{RESET} Create a venv: {YELLOW}python3 -m venv venv{RESET}\r\n\r\n")
    elif spec.language in (Language.JAVASCRIPT, Language.TYPESCRIPT):
        if not (working_directory / PACKAGE_JSON_FILENAME).exists():
            lines.append(f"{YELLOW}[Node.js]{RESET} Initialise: {YELLOW}npm init -y{RESET}\r\n\r\n")
        elif not (working_directory / NODE_MODULES_DIRNAME).is_dir():
            lines.append(f"{YELLOW}[Node.js]{RESET} Install: {YELLOW}npm install{RESET}\r\n\r\n")
    return "".join(lines)


class TerminalSessionManager:
    """
    Owns every live session.

    The registry map is only touched under a short-lived lock. Creating or
    closing a session additionally holds a lock for that session key, so a
    create/close race on one key is serialised (last writer wins, and the
    previous shell is gone before its replacement becomes visible) while
    different keys proceed independently.
    """

    def __init__(self, layout: WorkspaceLayout, config: TerminalConfig | None = None):
        self.layout = layout
        self.config = config or TerminalConfig()
        self._sessions: dict[tuple[str, str], TerminalSession] = {}
        self._registry_lock = threading.Lock()
        self._key_locks = KeyedLock()

    def create_session(
        self,
        user_id: str,
        project_id: str,
        transport: TerminalTransport,
        language: "str | Language | None" = None,
    ) -> str:
        """
        Open a shell for (user, project), replacing any existing one.

        Args:
            user_id: Caller identity
            project_id: Project identifier
            transport: Connection to stream events to
            language: Project language, used for the welcome hint

        Returns:
            The session id

        Raises:
            InvalidProjectIdError: If the project id is unsafe
            ProcessSpawnError: If the shell cannot be started
            UnsupportedLanguageError: If ``language`` is given and unknown
        """
        session_id = session_id_for(user_id, project_id)
        key = session_key(user_id, project_id)
        working_directory = self.layout.project_dir(project_id)
        if language is not None:
            language = resolve_language(language).language

        with self._key_locks.hold(key):
            with self._registry_lock:
                existing = self._sessions.pop(key, None)
            if existing is not None:
                logger.info(f"Replacing terminal session {session_id}")
                existing.dispose()

            try:
                self.layout.ensure_project_dir(project_id)
            except OSError as e:
                raise ProcessSpawnError(self.config.shell or "shell", f"cannot create {working_directory}: {e}") from e
            session = TerminalSession(
                user_id=user_id,
                project_id=project_id,
                working_directory=working_directory,
                transport=transport,
                shell=self.config.shell,
                deliver_interrupt=self.config.deliver_interrupt,
                close_wait_seconds=self.config.close_wait_seconds,
                on_exit=self._on_session_exit,
            )
            session.start()
            with self._registry_lock:
                self._sessions[key] = session
            if not session.is_running:
                # Shell died before it was registered.
                self._remove_if_same(key, session)

        try_send(
            transport,
            TERMINAL_READY,
            {"sessionId": session_id, "workingDirectory": str(working_directory), "shell": session.shell},
        )
        if self.config.welcome_banner:
            try_send(transport, TERMINAL_OUTPUT, build_welcome_message(working_directory, language))
        logger.info(f"Opened terminal session {session_id} in {working_directory}")
        return session_id

    def write_input(self, user_id: str, project_id: str, chunk: str) -> None:
        """Feed raw keystrokes to the session; returns without waiting on the shell."""
        self._require(user_id, project_id).write_input(chunk)

    def resize(self, user_id: str, project_id: str, cols: int, rows: int) -> None:
        self._require(user_id, project_id).resize(cols, rows)

    def close_session(self, user_id: str, project_id: str) -> None:
        """Stop the session's shell and remove it; sends TerminalClosed."""
        key = session_key(user_id, project_id)
        with self._key_locks.hold(key):
            with self._registry_lock:
                session = self._sessions.pop(key, None)
            if session is None:
                raise SessionNotFoundError(user_id, project_id)
            session.dispose()
        try_send(session.transport, TERMINAL_CLOSED)

    def on_transport_disconnected(self, user_id: str, transport: TerminalTransport | None = None) -> int:
        """
        Tear down every session of ``user_id``, or only those bound to ``transport``.

        Returns:
            Number of sessions closed
        """
        with self._registry_lock:
            doomed = [
                (key, session)
                for key, session in self._sessions.items()
                if session.user_id == user_id and (transport is None or session.transport is transport)
            ]
        for key, session in doomed:
            with self._key_locks.hold(key):
                self._remove_if_same(key, session)
                session.dispose()
        if doomed:
            logger.info(f"Closed {len(doomed)} terminal session(s) for disconnected user {user_id}")
        return len(doomed)

    def close_all(self) -> None:
        """Dispose every session, used at service shutdown."""
        with self._registry_lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.dispose()

    def get(self, user_id: str, project_id: str) -> TerminalSession | None:
        with self._registry_lock:
            return self._sessions.get(session_key(user_id, project_id))

    def active_sessions(self) -> list[TerminalSession]:
        with self._registry_lock:
            return list(self._sessions.values())

    def _require(self, user_id: str, project_id: str) -> TerminalSession:
        session = self.get(user_id, project_id)
        if session is None or session.is_disposed:
            raise SessionNotFoundError(user_id, project_id)
        return session

    def _remove_if_same(self, key: tuple[str, str], session: TerminalSession) -> None:
        with self._registry_lock:
            if self._sessions.get(key) is session:
                del self._sessions[key]

    def _on_session_exit(self, session: TerminalSession, code: int) -> None:
        self._remove_if_same(session.key, session)
