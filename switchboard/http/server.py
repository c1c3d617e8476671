# switchboard/http/server.py

import logging
import socket
import threading
from typing import Optional, Tuple

from switchboard.file_store import FileStore
from switchboard.http.connection_manager import WebSocketConnectionManager
from switchboard.http.session import DEFAULT_IDLE_TIMEOUT_SEC, ConnectionSession

logger = logging.getLogger(__name__)

# Listen backlog
LISTEN_BACKLOG = 50

# How often the accept loop wakes to check for shutdown (seconds)
ACCEPT_POLL_INTERVAL_SEC = 0.5


class HTTPServer:
    """
    Accepts TCP connections and runs one ConnectionSession thread per socket.

    The WebSocket registry and file store are injected and shared by every
    session. Sessions are independent failure domains: an error on one
    connection never reaches the accept loop or another session.
    """

    def __init__(
        self,
        host: str,
        port: int,
        registry: WebSocketConnectionManager,
        file_store: FileStore,
        idle_timeout: Optional[float] = DEFAULT_IDLE_TIMEOUT_SEC,
        ws_idle_timeout: Optional[float] = None,
        max_ws_payload: Optional[int] = None,
    ):
        """
        Initialize HTTPServer.

        Args:
            host: Host address to bind to
            port: Port to listen on (0 picks a free port)
            registry: Shared registry of upgraded WebSocket connections
            file_store: Store behind the /files/ endpoint
            idle_timeout: Seconds to wait for the next request line
            ws_idle_timeout: Read timeout after upgrade, None for no timeout
            max_ws_payload: Largest accepted WebSocket frame payload
        """
        self.host = host
        self.port = port
        self.registry = registry
        self.file_store = file_store
        self.idle_timeout = idle_timeout
        self.ws_idle_timeout = ws_idle_timeout
        self.max_ws_payload = max_ws_payload

        self.running = False
        self._server_sock: Optional[socket.socket] = None
        self._ready = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._connections_accepted = 0

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); valid once wait_until_ready() returns True."""
        return self._server_sock.getsockname()[:2]

    @property
    def connections_accepted(self) -> int:
        return self._connections_accepted

    def start(self):
        """Start the HTTP server in a background thread."""
        self.running = True
        self._thread = threading.Thread(target=self._run, name="http-accept", daemon=True)
        self._thread.start()
        logger.info(f"HTTP server starting on {self.host}:{self.port}")

    def serve_forever(self):
        """Run the HTTP server in the current thread (blocking)."""
        self.running = True
        self._run()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the listening socket is bound."""
        return self._ready.wait(timeout)

    def _bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.host, self.port))
        sock.listen(LISTEN_BACKLOG)
        sock.settimeout(ACCEPT_POLL_INTERVAL_SEC)
        return sock

    def _run(self):
        """Main server loop - accepts connections."""
        self._server_sock = self._bind()
        self._ready.set()
        logger.info(f"HTTP server listening on {self.address[0]}:{self.address[1]}")

        try:
            while self.running:
                try:
                    client, addr = self._server_sock.accept()
                except socket.timeout:
                    continue
                except OSError:
                    # Socket closed during shutdown
                    break
                self._connections_accepted += 1
                logger.debug(f"Accepted connection from {addr}")
                threading.Thread(
                    target=self._handle_client,
                    args=(client, addr),
                    name=f"conn-{addr[0]}:{addr[1]}",
                    daemon=True,
                ).start()
        finally:
            self._close_listener()

    def _handle_client(self, client: socket.socket, addr):
        """Run one connection session to completion."""
        # Accepted sockets inherit the listener's timeout; the session sets its own
        client.settimeout(None)
        session = ConnectionSession(
            client,
            addr,
            self.registry,
            self.file_store,
            idle_timeout=self.idle_timeout,
            ws_idle_timeout=self.ws_idle_timeout,
            max_ws_payload=self.max_ws_payload,
        )
        session.run()

    def _close_listener(self):
        if self._server_sock is not None:
            try:
                self._server_sock.close()
            except OSError:
                pass

    def stop(self, timeout: float = 2.0):
        """
        Stop accepting connections and close every WebSocket connection.

        Plain HTTP sessions finish on their own (idle timeout or peer close).
        """
        self.running = False
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._close_listener()
        self.registry.close_all()
        logger.info(f"HTTP server stopped after {self._connections_accepted} connections")
