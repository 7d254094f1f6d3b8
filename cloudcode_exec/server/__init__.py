"""
FastAPI service exposing runs, dependency management and terminals.
"""

from .app import ServiceContainer, create_app
from .auth import Authorizer, allow_identified
from .hub import TerminalHub, WebSocketTransport

__all__ = [
    "Authorizer",
    "ServiceContainer",
    "TerminalHub",
    "WebSocketTransport",
    "allow_identified",
    "create_app",
]
