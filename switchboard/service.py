# switchboard/service.py

import logging
import time
from typing import Optional

from switchboard.config import SwitchboardConfig, load_config
from switchboard.file_store import FileStore
from switchboard.http.connection_manager import WebSocketConnectionManager
from switchboard.http.server import HTTPServer

logger = logging.getLogger(__name__)


class SwitchboardService:
    """
    Owns the shared state of a running server.

    The WebSocket registry is created here at start and drained at shutdown;
    it is passed to every session instead of living in a module global.
    """

    def __init__(self, config: Optional[SwitchboardConfig] = None):
        """
        Initialize SwitchboardService.

        Args:
            config: Configuration to use; loaded from the environment if None
        """
        self.config = config if config is not None else load_config()

        self.registry = WebSocketConnectionManager()
        self.file_store = FileStore(self.config.files_dir)
        self.http_server = HTTPServer(
            host=self.config.host,
            port=self.config.port,
            registry=self.registry,
            file_store=self.file_store,
            idle_timeout=self.config.idle_timeout_sec,
            ws_idle_timeout=self.config.ws_idle_timeout_sec,
            max_ws_payload=self.config.ws_max_payload,
        )
        self.running = False

    def start(self, ready_timeout: float = 5.0) -> None:
        """Start the HTTP server thread and wait for the listener to bind."""
        logger.info("=== Switchboard starting ===")
        self.http_server.start()
        if not self.http_server.wait_until_ready(ready_timeout):
            raise RuntimeError(f"HTTP server did not bind within {ready_timeout}s")
        self.running = True
        host, port = self.http_server.address
        logger.info(f"Switchboard serving on {host}:{port} (files: {self.config.files_dir})")

    def run_forever(self) -> None:
        """Block until interrupted."""
        try:
            while self.running:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        """Stop accepting connections and close every WebSocket connection."""
        if not self.running:
            return
        logger.info("Shutting down Switchboard...")
        self.running = False
        self.http_server.stop()
        logger.info("Switchboard stopped")
