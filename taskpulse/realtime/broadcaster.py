"""
Event Broadcaster — fans domain events out to live client connections.

One instance is built at process start and handed to every service that
announces mutations. It keeps a registry of live connections and of which
user each connection has joined as. Delivery is fire-and-forget: nothing is
buffered for absent clients and nothing is retried.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Set

logger = logging.getLogger(__name__)

TASK_CREATED = "task:created"
TASK_UPDATED = "task:updated"
TASK_DELETED = "task:deleted"
TIME_STARTED = "time:started"
TIME_STOPPED = "time:stopped"
STATISTICS_UPDATED = "statistics:updated"

EVENT_CATALOGUE = frozenset({
    TASK_CREATED, TASK_UPDATED, TASK_DELETED,
    TIME_STARTED, TIME_STOPPED, STATISTICS_UPDATED,
})


class Connection(Protocol):
    """Anything with an id that can push a text frame to one client."""
    id: str

    def send(self, text: str) -> None: ...


@dataclass(frozen=True)
class Scope:
    """Recipient set for one publish: a single user's connections, or everyone."""
    user_id: Optional[str] = None
    broadcast: bool = False

    def __post_init__(self) -> None:
        if self.broadcast == (self.user_id is not None):
            raise ValueError("Scope needs exactly one of user_id or broadcast=True")

    @classmethod
    def for_user(cls, user_id: str) -> "Scope":
        return cls(user_id=user_id)

    @classmethod
    def everyone(cls) -> "Scope":
        return cls(broadcast=True)


def encode_message(event_name: str, payload: Any) -> str:
    return json.dumps({"event": event_name, "data": payload}, default=str)


class EventBroadcaster:
    """Per-user pub/sub registry over live connections."""

    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}
        self._rooms: Dict[str, Set[str]] = {}      # user_id -> connection ids
        self._joined_as: Dict[str, str] = {}       # connection id -> user_id
        # publish() runs on the HTTP thread, the registry changes on the Qt thread
        self._lock = threading.RLock()

    # ── Registry ────────────────────────────────────────────────────────────

    def register(self, conn: Connection) -> None:
        """A transport session is up; it receives broadcasts from now on."""
        with self._lock:
            self._connections[conn.id] = conn
        logger.info("Client connected: %s", conn.id)

    def unregister(self, conn: Connection) -> None:
        with self._lock:
            self.leave(conn)
            self._connections.pop(conn.id, None)
        logger.info("Client disconnected: %s", conn.id)

    def join(self, user_id: str, conn: Connection) -> None:
        """Associate a connection with a user. A connection belongs to one user at a time."""
        with self._lock:
            if conn.id not in self._connections:
                self.register(conn)
            current = self._joined_as.get(conn.id)
            if current == user_id:
                return
            if current is not None:
                self.leave(conn)
            self._rooms.setdefault(user_id, set()).add(conn.id)
            self._joined_as[conn.id] = user_id
        logger.info("Connection %s joined user %s", conn.id, user_id)

    def leave(self, conn: Connection) -> None:
        with self._lock:
            user_id = self._joined_as.pop(conn.id, None)
            if user_id is None:
                return
            room = self._rooms.get(user_id)
            if room is not None:
                room.discard(conn.id)
                if not room:
                    del self._rooms[user_id]
        logger.debug("Connection %s left user %s", conn.id, user_id)

    def connection_count(self, user_id: Optional[str] = None) -> int:
        if user_id is None:
            return len(self._connections)
        return len(self._rooms.get(user_id, ()))

    # ── Publishing ──────────────────────────────────────────────────────────

    def publish(self, event_name: str, payload: Any, scope: Scope) -> int:
        """
        Send one event to every connection in scope, at most once each.

        Returns how many connections accepted the frame. A connection whose
        send raises is skipped; the mutation that triggered the event is never
        affected.
        """
        if event_name not in EVENT_CATALOGUE:
            raise ValueError(f"Unknown event: {event_name}")

        with self._lock:
            if scope.broadcast:
                recipients = list(self._connections.values())
            else:
                ids = self._rooms.get(scope.user_id, ())
                recipients = [self._connections[cid] for cid in ids if cid in self._connections]

        if not recipients:
            logger.debug("No live connections for %s (%s)", event_name, scope)
            return 0

        text = encode_message(event_name, payload)
        delivered = 0
        for conn in recipients:
            try:
                conn.send(text)
            except Exception:
                logger.warning("Dropped %s for connection %s", event_name, conn.id, exc_info=True)
                continue
            delivered += 1
        logger.debug("Emitted %s to %d connection(s)", event_name, delivered)
        return delivered


class NullBroadcaster:
    """Accepts publishes and delivers nothing. For tests and offline scripts."""

    def publish(self, event_name: str, payload: Any, scope: Scope) -> int:
        if event_name not in EVENT_CATALOGUE:
            raise ValueError(f"Unknown event: {event_name}")
        return 0


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Keeps track of who is listening and pushes JSON frames of the form
#   {"event": name, "data": payload} to them.
#
# Key pieces:
#   - Scope: user-scoped by default; Scope.everyone() is only used for
#     task:deleted.
#   - _rooms / _joined_as: the two sides of the user <-> connection map, so
#     leave() and unregister() are O(1).
#   - Connection is a Protocol; realtime/server.py adapts a QWebSocket to it
#     and the tests use plain fakes.
#
# Data flow:
#   Service mutation succeeds -> broadcaster.publish() -> conn.send(text)
#   -> QWebSocket.sendTextMessage() -> browser
