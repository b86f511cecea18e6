"""
Realtime Server — websocket transport for the EventBroadcaster.

Runs a QWebSocketServer on the Qt event loop. Each accepted socket becomes a
SocketConnection registered with the broadcaster. Clients talk JSON:

    {"type": "join", "token": "<join token>"}   -> joins that token's user
    {"type": "leave"}                           -> leaves the user scope

A join is only honoured when the token verifies; the user id is taken from the
token, never from the client.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Callable, Dict, Optional

from PySide6.QtCore import QObject, Qt, Signal, Slot
from PySide6.QtNetwork import QHostAddress
from PySide6.QtWebSockets import QWebSocket, QWebSocketServer

from .broadcaster import Connection, EventBroadcaster, encode_message

logger = logging.getLogger(__name__)

TokenVerifier = Callable[[str], Optional[str]]


class SocketConnection(QObject):
    """
    Adapts a QWebSocket to the broadcaster's Connection protocol.

    send() may be called from the HTTP thread. The frame travels through a
    queued signal so the socket is only written on the Qt thread.
    """

    outgoing = Signal(str)

    def __init__(self, socket: QWebSocket, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self.id = uuid.uuid4().hex
        self.socket = socket
        self.outgoing.connect(socket.sendTextMessage, Qt.ConnectionType.QueuedConnection)

    def send(self, text: str) -> None:
        if not self.socket.isValid():
            raise ConnectionError(f"socket {self.id} is closed")
        self.outgoing.emit(text)


class ClientMessageHandler:
    """Interprets client frames. Kept free of Qt so it can be driven directly."""

    def __init__(self, broadcaster: EventBroadcaster, verify_token: TokenVerifier) -> None:
        self.broadcaster = broadcaster
        self.verify_token = verify_token

    def handle(self, conn: Connection, text: str) -> Optional[str]:
        """Apply one client frame. Returns the user id on a successful join."""
        try:
            message = json.loads(text)
        except ValueError:
            self._reply(conn, "error", {"message": "Malformed message"})
            return None
        if not isinstance(message, dict):
            self._reply(conn, "error", {"message": "Malformed message"})
            return None

        kind = message.get("type")
        if kind == "join":
            user_id = self.verify_token(message.get("token"))
            if user_id is None:
                logger.warning("Refused join on connection %s", conn.id)
                self._reply(conn, "error", {"message": "Invalid or expired join token"})
                return None
            self.broadcaster.join(user_id, conn)
            self._reply(conn, "joined", {"userId": user_id})
            return user_id
        if kind == "leave":
            self.broadcaster.leave(conn)
            self._reply(conn, "left", {})
            return None

        self._reply(conn, "error", {"message": f"Unknown message type: {kind}"})
        return None

    @staticmethod
    def _reply(conn: Connection, event: str, data: dict) -> None:
        try:
            conn.send(encode_message(event, data))
        except Exception:
            logger.warning("Could not reply %s to connection %s", event, conn.id, exc_info=True)


class RealtimeServer(QObject):
    """QWebSocketServer wired to an EventBroadcaster."""

    def __init__(
        self,
        broadcaster: EventBroadcaster,
        verify_token: TokenVerifier,
        host: str = "127.0.0.1",
        port: int = 8765,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.broadcaster = broadcaster
        self.host = host
        self.port = port
        self.handler = ClientMessageHandler(broadcaster, verify_token)
        self._connections: Dict[str, SocketConnection] = {}

        self._server = QWebSocketServer(
            "TaskPulse", QWebSocketServer.SslMode.NonSecureMode, self
        )
        self._server.newConnection.connect(self._on_new_connection)

    # ── Lifecycle ───────────────────────────────────────────────────────────

    def start(self) -> bool:
        if not self._server.listen(QHostAddress(self.host), self.port):
            logger.error("Realtime server failed to listen on %s:%d: %s",
                         self.host, self.port, self._server.errorString())
            return False
        logger.info("Realtime server listening on ws://%s:%d",
                    self.host, self._server.serverPort())
        return True

    def stop(self) -> None:
        for conn in list(self._connections.values()):
            conn.socket.close()
        self._server.close()
        logger.info("Realtime server stopped.")

    @property
    def server_port(self) -> int:
        return self._server.serverPort()

    # ── Socket callbacks ────────────────────────────────────────────────────

    @Slot()
    def _on_new_connection(self) -> None:
        while self._server.hasPendingConnections():
            socket = self._server.nextPendingConnection()
            conn = SocketConnection(socket, self)
            self._connections[conn.id] = conn
            self.broadcaster.register(conn)
            socket.textMessageReceived.connect(
                lambda text, c=conn: self._on_text_message(c, text)
            )
            socket.disconnected.connect(lambda c=conn: self._on_disconnected(c))

    def _on_text_message(self, conn: SocketConnection, text: str) -> None:
        self.handler.handle(conn, text)

    def _on_disconnected(self, conn: SocketConnection) -> None:
        self.broadcaster.unregister(conn)
        self._connections.pop(conn.id, None)
        conn.socket.deleteLater()
        conn.deleteLater()


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Carries broadcaster frames to browsers over websockets and handles the
#   two client messages (join / leave).
#
# Key pieces:
#   - SocketConnection: the QWebSocket adapter. send() raises on a closed
#     socket so the broadcaster logs and skips it.
#   - ClientMessageHandler: join requires a verified token (see tokens.py).
#     Naming a user id directly is not possible.
#   - Sockets live on the Qt thread. HTTP handlers publish from the uvicorn
#     thread, so frames cross over through SocketConnection.outgoing.
