"""
HTTP/1.1 request reader.

Parses one request (request line, headers, optional fixed-length body) from a
line-buffered binary stream such as ``socket.makefile("rb")``.
"""

import logging
import socket
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, Optional

logger = logging.getLogger(__name__)

# Longest request line or header line accepted (bytes, including CRLF)
MAX_LINE_BYTES = 65536

# Headers the session acts on; anything else is read and dropped
RECOGNIZED_HEADERS = frozenset({
    "user-agent",
    "content-length",
    "accept-encoding",
    "connection",
    "upgrade",
    "sec-websocket-key",
    "sec-websocket-version",
})

# Request line and header bytes are decoded 1:1 so path bytes survive intact
HEADER_ENCODING = "iso-8859-1"


class HTTPRequestError(Exception):
    """Base class for request parsing failures."""
    pass


class MalformedRequestLine(HTTPRequestError):
    """Request line has fewer than two space-separated tokens."""
    pass


class InvalidContentLength(HTTPRequestError):
    """Content-Length is not a non-negative integer."""
    pass


class RequestHeaderTooLarge(HTTPRequestError):
    """A request or header line exceeded MAX_LINE_BYTES."""
    pass


class TruncatedRequest(HTTPRequestError):
    """Stream ended inside the header block or the body."""
    pass


@dataclass(frozen=True)
class Request:
    """A parsed HTTP request. Header names are lower-cased."""
    method: str
    path: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    @property
    def content_length(self) -> int:
        return len(self.body) if self.body else 0


def _readline(stream: BinaryIO) -> bytes:
    line = stream.readline(MAX_LINE_BYTES + 1)
    if len(line) > MAX_LINE_BYTES:
        raise RequestHeaderTooLarge(f"Line exceeds {MAX_LINE_BYTES} bytes")
    return line


def _strip_eol(line: bytes) -> str:
    return line.rstrip(b"\r\n").decode(HEADER_ENCODING)


def parse_content_length(value: str) -> int:
    """
    Parse a Content-Length value.

    Raises:
        InvalidContentLength: If the value is not a non-negative integer
    """
    value = value.strip()
    if not (value.isascii() and value.isdigit()):
        raise InvalidContentLength(f"Invalid Content-Length: {value!r}")
    return int(value)


def read_headers(stream: BinaryIO) -> Dict[str, str]:
    """
    Read header lines up to the blank line that ends the header block.

    Names are lower-cased and trimmed, values trimmed. The last occurrence of
    a name wins. Only RECOGNIZED_HEADERS are kept.

    Raises:
        TruncatedRequest: If the stream ends before the blank line
        RequestHeaderTooLarge: If a header line is too long
    """
    headers: Dict[str, str] = {}
    while True:
        raw = _readline(stream)
        if not raw:
            raise TruncatedRequest("Stream ended inside header block")
        line = _strip_eol(raw)
        if not line:
            return headers
        if ":" not in line:
            logger.debug(f"Ignoring header line without colon: {line!r}")
            continue
        name, value = line.split(":", 1)
        name = name.strip().lower()
        if name in RECOGNIZED_HEADERS:
            headers[name] = value.strip()


def read_body(stream: BinaryIO, length: int) -> bytes:
    """
    Read exactly ``length`` body bytes.

    Raises:
        TruncatedRequest: If the stream ends first
    """
    chunks = []
    remaining = length
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            raise TruncatedRequest(
                f"Body truncated: expected {length} bytes, got {length - remaining}"
            )
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_request(stream: BinaryIO) -> Optional[Request]:
    """
    Read one request from the stream.

    Args:
        stream: Buffered binary stream positioned at a request line

    Returns:
        The parsed Request, or None when the peer closed the connection, sent
        an empty request line, or the idle timeout elapsed while waiting for
        the request line.

    Raises:
        MalformedRequestLine: Request line has fewer than two tokens
        InvalidContentLength: Content-Length is not a non-negative integer
        RequestHeaderTooLarge: A line is longer than MAX_LINE_BYTES
        TruncatedRequest: Stream ended inside the headers or body
    """
    try:
        raw = _readline(stream)
    except socket.timeout:
        logger.debug("Idle timeout waiting for request line")
        return None
    if not raw:
        return None

    request_line = _strip_eol(raw)
    if not request_line:
        return None

    parts = request_line.split(" ")
    if len(parts) < 2:
        raise MalformedRequestLine(f"Malformed request line: {request_line!r}")
    method, path = parts[0], parts[1]

    headers = read_headers(stream)

    body = None
    if "content-length" in headers:
        length = parse_content_length(headers["content-length"])
        if length > 0:
            body = read_body(stream, length)

    return Request(method=method, path=path, headers=headers, body=body)
