"""
Post-upgrade WebSocket session.

Once the 101 response is sent the connection belongs to a WebSocketSession
until it closes; it never returns to HTTP parsing.
"""

import logging
import socket
import threading
from typing import BinaryIO, Optional

from switchboard.http.connection_manager import WebSocketConnectionManager
from switchboard.http.websocket import (
    CLOSE_NORMAL,
    CLOSE_TOO_BIG,
    Frame,
    FrameTooLarge,
    Opcode,
    create_close_frame,
    encode_frame,
    is_sendable_close_code,
    read_frame,
)

logger = logging.getLogger(__name__)

WELCOME_TEMPLATE = "Welcome to WebSocket server! Path: {path}"
ECHO_PREFIX = "Echo: "
BROADCAST_PREFIX = "Broadcast: "


class WebSocketConnection:
    """
    Write side of an upgraded socket.

    The owning session thread and broadcasting threads both write here, so
    every frame is sent under a per-connection lock.
    """

    def __init__(self, sock: socket.socket, client_id: str, path: str):
        self.sock = sock
        self.client_id = client_id
        self.path = path
        self._send_lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send_frame(self, payload: bytes, opcode: int = Opcode.TEXT) -> None:
        """
        Raises:
            OSError: If the socket is closed or the write fails
        """
        frame = encode_frame(payload, opcode)
        with self._send_lock:
            if self._closed:
                raise OSError(f"Connection {self.client_id} is closed")
            self.sock.sendall(frame)

    def send_text(self, message: str) -> None:
        self.send_frame(message.encode("utf-8"), Opcode.TEXT)

    def send_pong(self, payload: bytes) -> None:
        self.send_frame(payload, Opcode.PONG)

    def send_close(self, code: int) -> None:
        """Best-effort close frame; failures are ignored."""
        try:
            with self._send_lock:
                if not self._closed:
                    self.sock.sendall(create_close_frame(code))
        except OSError:
            pass

    def close(self) -> None:
        with self._send_lock:
            if self._closed:
                return
            self._closed = True
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            self.sock.close()
        except OSError:
            pass


class WebSocketSession:
    """
    Read loop for one upgraded connection.

    Text frames are echoed to the sender and broadcast to every other
    registered connection. Fragmented messages are not reassembled; each
    frame is handled as a complete message.
    """

    def __init__(
        self,
        connection: WebSocketConnection,
        stream: BinaryIO,
        registry: WebSocketConnectionManager,
        max_payload: Optional[int] = None,
    ):
        self.connection = connection
        self.stream = stream
        self.registry = registry
        self.max_payload = max_payload
        self.frames_received = 0

    def run(self) -> None:
        """Register, greet, then dispatch frames until the peer goes away."""
        client_id = self.connection.client_id
        self.registry.add_client(self.connection)
        try:
            self.connection.send_text(WELCOME_TEMPLATE.format(path=self.connection.path))
            while not self.connection.closed:
                try:
                    frame = read_frame(self.stream, self.max_payload)
                except FrameTooLarge as e:
                    logger.warning(f"Closing WebSocket {client_id}: {e}")
                    self.connection.send_close(CLOSE_TOO_BIG)
                    break
                except socket.timeout:
                    logger.info(f"WebSocket {client_id} idle timeout")
                    break
                if frame is None:
                    break
                self.frames_received += 1
                if not self.dispatch(frame):
                    break
        except OSError as e:
            logger.warning(f"WebSocket {client_id} connection error: {e}")
        finally:
            self.registry.remove_client(client_id)
            self.connection.close()
            logger.info(f"WebSocket {client_id} closed after {self.frames_received} frames")

    def dispatch(self, frame: Frame) -> bool:
        """
        Handle one frame.

        Returns:
            False once the session should end (close frame), True otherwise

        Raises:
            OSError: If replying to the sender fails
        """
        if frame.opcode == Opcode.TEXT:
            message = frame.payload.decode("utf-8", errors="replace")
            logger.debug(f"WebSocket {self.connection.client_id} text: {message!r}")
            self.connection.send_text(ECHO_PREFIX + message)
            self.registry.broadcast(BROADCAST_PREFIX + message, exclude=self.connection.client_id)
        elif frame.opcode == Opcode.CLOSE:
            logger.debug(f"WebSocket {self.connection.client_id} close frame received")
            self.connection.send_close(self._close_code(frame.payload))
            return False
        elif frame.opcode == Opcode.PING:
            self.connection.send_pong(frame.payload)
        elif frame.opcode == Opcode.PONG:
            logger.debug(f"WebSocket {self.connection.client_id} pong received")
        else:
            logger.debug(f"WebSocket {self.connection.client_id} ignoring opcode {frame.opcode:#x}")
        return True

    @staticmethod
    def _close_code(payload: bytes) -> int:
        # Echo the peer's status code when it sent a valid one
        if len(payload) >= 2:
            code = int.from_bytes(payload[:2], "big")
            if is_sendable_close_code(code):
                return code
        return CLOSE_NORMAL
