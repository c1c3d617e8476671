"""
Test harness for Switchboard contract tests.

Responsibilities:
- Start an in-process HTTPServer on a free port with a temporary files dir
- Wait until http://127.0.0.1:<port>/ responds 200
- Provide a raw-socket HTTP response reader that honours Content-Length,
  so several responses can be read from one keep-alive connection
"""

import socket
import time
from pathlib import Path
from typing import Dict, Optional, Tuple

from switchboard.file_store import FileStore
from switchboard.http.connection_manager import WebSocketConnectionManager
from switchboard.http.server import HTTPServer

HOST = "127.0.0.1"


def wait_for_server(host: str, port: int, path: str = "/", timeout: float = 10.0) -> bool:
    """
    Wait until the server responds with 200 to a request.

    Returns:
        True if server responds 200, False if timeout
    """
    start_time = time.time()
    while time.time() - start_time < timeout:
        try:
            with HTTPTestConnection(port, host=host, timeout=1.0) as conn:
                status, _, _ = conn.request("GET", path, {"Connection": "close"})
                if status == 200:
                    return True
        except OSError:
            pass
        time.sleep(0.1)
    return False


def start_server(files_dir: Path, idle_timeout: Optional[float] = 5.0,
                 max_ws_payload: Optional[int] = None) -> Tuple[HTTPServer, int]:
    """
    Start Switchboard's HTTP server in a background thread.

    Returns:
        Tuple of (server, port)

    Raises:
        RuntimeError: If the server fails to become ready
    """
    server = HTTPServer(
        host=HOST,
        port=0,
        registry=WebSocketConnectionManager(),
        file_store=FileStore(files_dir),
        idle_timeout=idle_timeout,
        max_ws_payload=max_ws_payload,
    )
    server.start()
    if not server.wait_until_ready(5.0):
        raise RuntimeError("Switchboard failed to bind within 5 seconds")
    port = server.address[1]
    if not wait_for_server(HOST, port, timeout=5.0):
        server.stop()
        raise RuntimeError("Switchboard failed to become ready within 5 seconds")
    return server, port


class HTTPTestConnection:
    """
    One raw keep-alive HTTP connection.

    Keeps a receive buffer so consecutive responses on the same socket are
    split by Content-Length rather than by recv() boundaries.
    """

    def __init__(self, port: int, host: str = HOST, timeout: float = 5.0):
        self.sock = socket.create_connection((host, port), timeout=timeout)
        self.timeout = timeout
        self.buffer = b''

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _fill(self) -> bool:
        chunk = self.sock.recv(4096)
        if not chunk:
            return False
        self.buffer += chunk
        return True

    def _read_until(self, marker: bytes) -> bytes:
        while marker not in self.buffer:
            if not self._fill():
                raise ConnectionError("Connection closed before end of headers")
        index = self.buffer.index(marker) + len(marker)
        data, self.buffer = self.buffer[:index], self.buffer[index:]
        return data

    def _read_exact(self, count: int) -> bytes:
        while len(self.buffer) < count:
            if not self._fill():
                raise ConnectionError("Connection closed before body complete")
        data, self.buffer = self.buffer[:count], self.buffer[count:]
        return data

    def send_raw(self, data: bytes) -> None:
        self.sock.sendall(data)

    def send_request(self, method: str, path: str, headers: Optional[Dict[str, str]] = None,
                     body: bytes = b'') -> None:
        """Write a raw HTTP/1.1 request."""
        lines = [f"{method} {path} HTTP/1.1", f"Host: {HOST}"]
        for key, value in (headers or {}).items():
            lines.append(f"{key}: {value}")
        if body:
            lines.append(f"Content-Length: {len(body)}")
        self.sock.sendall(("\r\n".join(lines) + "\r\n\r\n").encode('iso-8859-1') + body)

    def read_response(self) -> Tuple[int, Dict[str, str], bytes]:
        """
        Read one HTTP response.

        Returns:
            (status_code, headers, body) with lower-cased header names
        """
        self.sock.settimeout(self.timeout)
        head = self._read_until(b'\r\n\r\n').decode('iso-8859-1')
        lines = head.split('\r\n')
        status_code = int(lines[0].split(' ', 2)[1])

        headers = {}
        for line in lines[1:]:
            if ':' in line:
                key, value = line.split(':', 1)
                headers[key.strip().lower()] = value.strip()

        body = self._read_exact(int(headers.get('content-length', '0')))
        return status_code, headers, body

    def request(self, method: str, path: str, headers: Optional[Dict[str, str]] = None,
                body: bytes = b'') -> Tuple[int, Dict[str, str], bytes]:
        self.send_request(method, path, headers, body)
        return self.read_response()

    def closed_by_peer(self, timeout: float = 2.0) -> bool:
        """True if the server closes the connection within timeout."""
        if self.buffer:
            return False
        self.sock.settimeout(timeout)
        try:
            return self.sock.recv(1) == b''
        except socket.timeout:
            return False
        except OSError:
            return True

    def close(self) -> None:
        try:
            self.sock.close()
        except OSError:
            pass
