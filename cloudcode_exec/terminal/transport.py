"""
Real-time event vocabulary and best-effort delivery to a caller's connection.
"""

from typing import Any, Protocol

from ..core.logging import get_logger

logger = get_logger(__name__)

TERMINAL_READY = "TerminalReady"
TERMINAL_OUTPUT = "TerminalOutput"
TERMINAL_ERROR = "TerminalError"
TERMINAL_EXIT = "TerminalExit"
TERMINAL_CLOSED = "TerminalClosed"


class TerminalTransport(Protocol):
    """Connection that terminal events are pushed to."""

    def send(self, event: str, payload: Any = None) -> None:
        """Push one event; may raise if the connection is gone."""


def try_send(transport: TerminalTransport | None, event: str, payload: Any = None) -> bool:
    """
    Deliver one event at most once.

    Failures are logged at debug level and never raised or retried, so a
    disconnected client cannot stall or crash the process feeding it.

    Returns:
        True if the transport accepted the event
    """
    if transport is None:
        return False
    try:
        transport.send(event, payload)
        return True
    except Exception as e:
        logger.debug(f"Dropped {event} event: {e}")
        return False
