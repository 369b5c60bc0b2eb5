"""Registry of live relay connections, used for lifecycle bookkeeping."""

from __future__ import annotations

import logging
import threading

from tts_relay.services.connection import ClientConnection

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Tracks connected clients; deregistering a client drops its queued work."""

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}
        self._lock = threading.Lock()

    def on_connect(self, connection: ClientConnection) -> None:
        with self._lock:
            self._connections[connection.id] = connection
            active = len(self._connections)
        logger.info("Client connected (active=%d)", active, extra=connection.log_extra)

    def on_disconnect(self, connection: ClientConnection) -> int:
        """Deregister *connection* and return how many queued requests were dropped."""
        with self._lock:
            known = self._connections.pop(connection.id, None) is not None
            active = len(self._connections)
        dropped = connection.close()
        if known:
            logger.info(
                "Client disconnected (active=%d, dropped=%d)",
                active, dropped, extra=connection.log_extra,
            )
        return dropped

    def get(self, connection_id: str) -> ClientConnection | None:
        with self._lock:
            return self._connections.get(connection_id)

    def connection_ids(self) -> list[str]:
        with self._lock:
            return list(self._connections)

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, connection: object) -> bool:
        key = connection.id if isinstance(connection, ClientConnection) else connection
        with self._lock:
            return key in self._connections
