"""
Interactive terminal sessions over a real-time transport.
"""

from .line_discipline import DisciplineResult, LineDiscipline
from .manager import TerminalSessionManager, build_welcome_message
from .session import SessionState, TerminalSession, session_id_for, session_key
from .shell import ShellProcess, resolve_shell
from .transport import (
    TERMINAL_CLOSED,
    TERMINAL_ERROR,
    TERMINAL_EXIT,
    TERMINAL_OUTPUT,
    TERMINAL_READY,
    TerminalTransport,
    try_send,
)

__all__ = [
    "DisciplineResult",
    "LineDiscipline",
    "SessionState",
    "ShellProcess",
    "TERMINAL_CLOSED",
    "TERMINAL_ERROR",
    "TERMINAL_EXIT",
    "TERMINAL_OUTPUT",
    "TERMINAL_READY",
    "TerminalSession",
    "TerminalSessionManager",
    "TerminalTransport",
    "build_welcome_message",
    "resolve_shell",
    "session_id_for",
    "session_key",
    "try_send",
]
