"""
WebSocket hub for interactive terminals.

Client messages are JSON objects ``{"op": ..., "projectId": ..., ...}``;
server events are ``{"event": ..., "data": ...}``.
"""

import asyncio
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool

from ..core.exceptions import CloudCodeExecError, SessionNotFoundError, TransportDeliveryError, format_error_message
from ..core.logging import get_logger
from ..terminal.manager import TerminalSessionManager
from ..terminal.transport import TERMINAL_ERROR, try_send
from .auth import Authorizer

logger = get_logger(__name__)

OP_CREATE = "CreateSession"
OP_INPUT = "SendInput"
OP_RESIZE = "ResizeTerminal"
OP_CLOSE = "CloseSession"


class WebSocketTransport:
    """
    Pushes events from any thread onto one websocket.

    ``send`` only enqueues; a single task on the event loop writes frames in
    order, so output from shell reader threads keeps its order.
    """

    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop):
        self.websocket = websocket
        self.loop = loop
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._closed = False
        self._sender: asyncio.Task | None = None

    def start(self) -> None:
        self._sender = self.loop.create_task(self._send_loop())

    def send(self, event: str, payload: Any = None) -> None:
        if self._closed:
            raise TransportDeliveryError(f"Connection closed, dropping {event}")
        message = {"event": event, "data": payload}
        try:
            self.loop.call_soon_threadsafe(self._queue.put_nowait, message)
        except RuntimeError as e:
            raise TransportDeliveryError(str(e)) from e

    async def close(self) -> None:
        self._closed = True
        if self._sender is not None:
            self._queue.put_nowait(None)
            try:
                await asyncio.wait_for(self._sender, timeout=1.0)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                self._sender.cancel()

    async def _send_loop(self) -> None:
        while True:
            message = await self._queue.get()
            if message is None:
                return
            try:
                await self.websocket.send_json(message)
            except Exception as e:
                # Client went away; later events are dropped.
                logger.debug(f"WebSocket send failed: {e}")
                self._closed = True
                return


class TerminalHub:
    """Maps websocket operations onto the session manager."""

    def __init__(self, manager: TerminalSessionManager, authorizer: Authorizer):
        self.manager = manager
        self.authorizer = authorizer

    async def serve(self, websocket: WebSocket, user_id: str) -> None:
        await websocket.accept()
        transport = WebSocketTransport(websocket, asyncio.get_running_loop())
        transport.start()
        logger.info(f"Terminal hub connected for user {user_id}")
        try:
            while True:
                data = await websocket.receive_json()
                await self.dispatch(user_id, transport, data)
        except WebSocketDisconnect:
            logger.info(f"Terminal hub disconnected for user {user_id}")
        finally:
            await transport.close()
            await run_in_threadpool(self.manager.on_transport_disconnected, user_id, transport)

    async def dispatch(self, user_id: str, transport: WebSocketTransport, data: Any) -> None:
        if not isinstance(data, dict):
            try_send(transport, TERMINAL_ERROR, "Malformed message")
            return
        op = data.get("op")
        project_id = str(data.get("projectId") or "")

        try:
            if op == OP_CREATE:
                if not self.authorizer(user_id, project_id):
                    try_send(transport, TERMINAL_ERROR, "Access to this project is denied")
                    return
                await run_in_threadpool(
                    self.manager.create_session, user_id, project_id, transport, data.get("language")
                )
            elif op == OP_INPUT:
                self.manager.write_input(user_id, project_id, str(data.get("input") or ""))
            elif op == OP_RESIZE:
                cols = int(data.get("cols") or 0)
                rows = int(data.get("rows") or 0)
                self._ignore_missing(self.manager.resize, user_id, project_id, cols, rows)
            elif op == OP_CLOSE:
                await run_in_threadpool(self._ignore_missing, self.manager.close_session, user_id, project_id)
            else:
                try_send(transport, TERMINAL_ERROR, f"Unknown operation: {op}")
        except SessionNotFoundError as e:
            try_send(transport, TERMINAL_ERROR, e.user_message)
        except CloudCodeExecError as e:
            logger.warning(f"Terminal operation {op} failed: {e}")
            try_send(transport, TERMINAL_ERROR, f"Error: {format_error_message(e)}")
        except (TypeError, ValueError) as e:
            try_send(transport, TERMINAL_ERROR, f"Invalid {op} message: {e}")

    @staticmethod
    def _ignore_missing(func, *args) -> None:
        try:
            func(*args)
        except SessionNotFoundError:
            pass
