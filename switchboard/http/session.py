"""
Per-connection HTTP session.

One session owns one accepted socket and runs on its own thread. It reads
requests in arrival order, answers each one, and either keeps the connection
for the next request, closes it, or hands it to the WebSocket session after a
successful upgrade.

State transitions:

    READING_REQUEST -> ROUTING -> RESPONDING -> READING_REQUEST
                                             -> CLOSED
                               -> UPGRADING  (terminal for HTTP)
"""

import enum
import logging
import socket
import uuid
from typing import Optional, Tuple

from switchboard.file_store import FileNotFound, FileStore, FileStoreError, InvalidFileName
from switchboard.http.connection_manager import WebSocketConnectionManager
from switchboard.http.request import (
    HTTPRequestError,
    InvalidContentLength,
    MalformedRequestLine,
    Request,
    RequestHeaderTooLarge,
    read_request,
)
from switchboard.http.response import (
    CONNECTION_CLOSE,
    EncodingError,
    Response,
    build_response,
    build_switching_protocols,
    supports_gzip,
)
from switchboard.http.websocket import generate_accept_key, is_upgrade_request
from switchboard.http.ws_session import WebSocketConnection, WebSocketSession

logger = logging.getLogger(__name__)

# Idle timeout while waiting for the next request line (seconds)
DEFAULT_IDLE_TIMEOUT_SEC = 30.0

ECHO_PREFIX = "/echo/"
FILES_PREFIX = "/files/"

# Request paths are kept as latin-1 text so they map back to the wire bytes
PATH_ENCODING = "iso-8859-1"


class SessionState(enum.Enum):
    READING_REQUEST = "reading_request"
    ROUTING = "routing"
    RESPONDING = "responding"
    UPGRADING = "upgrading"
    CLOSED = "closed"


class ConnectionSession:
    """
    Drives the read-parse-respond loop for one connection.

    Every failure is contained here: protocol errors become an error response
    plus close, transport errors close the socket, and nothing propagates to
    the listener or to other sessions.
    """

    def __init__(
        self,
        sock: socket.socket,
        address: Tuple,
        registry: WebSocketConnectionManager,
        file_store: FileStore,
        idle_timeout: Optional[float] = DEFAULT_IDLE_TIMEOUT_SEC,
        ws_idle_timeout: Optional[float] = None,
        max_ws_payload: Optional[int] = None,
    ):
        self.sock = sock
        self.address = address
        self.registry = registry
        self.file_store = file_store
        self.idle_timeout = idle_timeout
        self.ws_idle_timeout = ws_idle_timeout
        self.max_ws_payload = max_ws_payload

        self.client_id = str(uuid.uuid4())
        self.state = SessionState.READING_REQUEST
        self.keep_alive = True
        self.request_count = 0
        self.ws_path: Optional[str] = None
        self._stream = None

    def run(self) -> None:
        """Serve requests until close, timeout, error, or upgrade."""
        try:
            self.sock.settimeout(self.idle_timeout)
            self._stream = self.sock.makefile("rb")
            self._serve()
        except OSError as e:
            logger.warning(f"Connection {self.address} transport error: {e}")
        except Exception as e:
            logger.error(f"Connection {self.address} failed: {e}", exc_info=True)
        finally:
            if self.state != SessionState.UPGRADING:
                self.state = SessionState.CLOSED
            self._close()

    def _serve(self) -> None:
        while self.keep_alive:
            self.state = SessionState.READING_REQUEST
            try:
                request = read_request(self._stream)
            except (MalformedRequestLine, InvalidContentLength) as e:
                logger.warning(f"Bad request from {self.address}: {e}")
                self._send_fatal(400)
                return
            except RequestHeaderTooLarge as e:
                logger.warning(f"Oversized request from {self.address}: {e}")
                self._send_fatal(431)
                return
            except HTTPRequestError as e:
                logger.info(f"Connection {self.address} dropped mid-request: {e}")
                return

            if request is None:
                logger.debug(f"Connection {self.address} reached end of stream")
                return

            self.request_count += 1
            self.state = SessionState.ROUTING

            if is_upgrade_request(request):
                self._upgrade(request)
                return

            close_requested = "close" in (request.header("connection") or "").lower()
            extra_headers = (CONNECTION_CLOSE,) if close_requested else ()

            try:
                response = self.route(request, extra_headers)
            except EncodingError as e:
                logger.error(f"Encoding failed for {request.path}: {e}")
                response = build_response(500, extra_headers=extra_headers)
            except Exception as e:
                logger.error(f"Handler failed for {request.method} {request.path}: {e}", exc_info=True)
                response = build_response(500, extra_headers=extra_headers)

            self.state = SessionState.RESPONDING
            self.sock.sendall(response.serialize())
            logger.info(
                f"{self.address} #{self.request_count} {request.method} {request.path} -> {response.status}"
            )

            if close_requested:
                self.keep_alive = False

    def route(self, request: Request, extra_headers=()) -> Response:
        """
        Map a request to its response.

        Raises:
            EncodingError: If gzip compression of the echo body fails
        """
        path = request.path

        if path == "/":
            return build_response(200, extra_headers=extra_headers)

        if path.startswith(ECHO_PREFIX):
            echo = path[len(ECHO_PREFIX):].encode(PATH_ENCODING)
            return build_response(
                200,
                content_type="text/plain",
                body=echo,
                gzip_body=supports_gzip(request.header("accept-encoding")),
                extra_headers=extra_headers,
            )

        if path == "/user-agent":
            user_agent = request.header("user-agent")
            if user_agent is None:
                return build_response(400, extra_headers=extra_headers)
            return build_response(
                200,
                content_type="text/plain",
                body=user_agent.encode(PATH_ENCODING),
                extra_headers=extra_headers,
            )

        if path.startswith(FILES_PREFIX):
            return self._handle_file(request, path[len(FILES_PREFIX):], extra_headers)

        return build_response(404, extra_headers=extra_headers)

    def _handle_file(self, request: Request, name: str, extra_headers) -> Response:
        try:
            if request.method == "GET":
                data = self.file_store.read(name)
                return build_response(
                    200,
                    content_type="application/octet-stream",
                    body=data,
                    extra_headers=extra_headers,
                )
            if request.method == "POST":
                if not request.body:
                    return build_response(400, extra_headers=extra_headers)
                self.file_store.write(name, request.body)
                return build_response(201, extra_headers=extra_headers)
            return build_response(405, extra_headers=extra_headers)
        except InvalidFileName as e:
            logger.warning(f"Rejected file name from {self.address}: {e}")
            return build_response(400, extra_headers=extra_headers)
        except FileNotFound:
            return build_response(404, extra_headers=extra_headers)
        except FileStoreError as e:
            logger.error(f"File store error: {e}")
            return build_response(500, extra_headers=extra_headers)

    def _upgrade(self, request: Request) -> None:
        """Complete the handshake and hand the socket to the WebSocket loop."""
        accept_key = generate_accept_key(request.header("sec-websocket-key"))
        self.sock.sendall(build_switching_protocols(accept_key).serialize())
        self.state = SessionState.UPGRADING
        self.ws_path = request.path
        logger.info(f"WebSocket handshake completed for {self.address} path: {request.path}")

        self.sock.settimeout(self.ws_idle_timeout)
        connection = WebSocketConnection(self.sock, self.client_id, request.path)
        WebSocketSession(
            connection,
            self._stream,
            self.registry,
            max_payload=self.max_ws_payload,
        ).run()

    def _send_fatal(self, status: int) -> None:
        """Answer with an error status and mark the session for close."""
        self.keep_alive = False
        self.state = SessionState.RESPONDING
        try:
            self.sock.sendall(build_response(status, extra_headers=(CONNECTION_CLOSE,)).serialize())
        except OSError as e:
            logger.debug(f"Could not deliver {status} to {self.address}: {e}")

    def _close(self) -> None:
        if self._stream is not None:
            try:
                self._stream.close()
            except OSError:
                pass
        try:
            self.sock.close()
        except OSError:
            pass
