# switchboard/http/connection_manager.py

import logging
import threading
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class WebSocketConnectionManager:
    """
    Tracks open WebSocket connections and fans messages out to them.

    Shared by every session thread. Membership changes take the lock;
    broadcast takes a snapshot under the lock and sends outside it, so a slow
    peer never blocks add/remove. Registered objects must provide
    ``client_id``, ``send_text(str)`` and ``close()``.
    """

    def __init__(self):
        self._clients: Dict[str, object] = {}
        self._lock = threading.Lock()

    def add_client(self, connection) -> None:
        """
        Register a connection under its client_id.

        Args:
            connection: Upgraded WebSocket connection
        """
        with self._lock:
            self._clients[connection.client_id] = connection
            logger.debug(f"Added client: {connection.client_id}")

    def _drop_client_locked(self, client_id: str, reason: str):
        """
        Remove a client (must be called with lock held).

        Returns:
            The removed connection, or None if it was not registered
        """
        connection = self._clients.pop(client_id, None)
        if connection is not None:
            logger.debug(f"Dropped client {client_id}: {reason}")
        return connection

    def remove_client(self, client_id: str) -> None:
        """
        Deregister a client. Does not close it; the owning session does that.

        Args:
            client_id: ID of client to remove
        """
        with self._lock:
            self._drop_client_locked(client_id, "explicit removal")

    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def client_ids(self) -> List[str]:
        with self._lock:
            return list(self._clients.keys())

    def __contains__(self, client_id: str) -> bool:
        with self._lock:
            return client_id in self._clients

    def close_all(self) -> None:
        """
        Deregister and close every connection.

        Called at shutdown; session threads see their sockets fail and exit.
        """
        with self._lock:
            connections = list(self._clients.values())
            self._clients.clear()
        for connection in connections:
            try:
                connection.close()
            except OSError:
                pass
        logger.info("All WebSocket connections closed")

    def broadcast(self, message: str, exclude: Optional[str] = None) -> int:
        """
        Send a text message to every registered connection except ``exclude``.

        Connections whose send fails are dropped from the registry and closed.
        Delivery order follows the registry snapshot and is not guaranteed.

        Args:
            message: Text payload
            exclude: Client ID to skip (normally the sender)

        Returns:
            Number of connections the message was delivered to
        """
        with self._lock:
            targets = [
                connection for client_id, connection in self._clients.items()
                if client_id != exclude
            ]

        delivered = 0
        dead_clients = []
        for connection in targets:
            try:
                connection.send_text(message)
                delivered += 1
            except OSError as e:
                dead_clients.append((connection, f"socket_error: {e}"))

        if dead_clients:
            with self._lock:
                for connection, reason in dead_clients:
                    self._drop_client_locked(connection.client_id, reason)
            for connection, _ in dead_clients:
                try:
                    connection.close()
                except OSError:
                    pass

        return delivered
