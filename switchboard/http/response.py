"""
HTTP/1.1 response construction.

Responses are built once and serialized once. Content-Length is always
computed from the final body bytes, after optional gzip compression.
"""

import gzip
import logging
import zlib
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

HTTP_VERSION = "HTTP/1.1"

REASON_PHRASES = {
    101: "Switching Protocols",
    200: "OK",
    201: "Created",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    431: "Request Header Fields Too Large",
    500: "Internal Server Error",
}

CONNECTION_CLOSE = ("Connection", "close")


class EncodingError(Exception):
    """Response body could not be compressed."""
    pass


@dataclass
class Response:
    """Status line, ordered headers and body of one HTTP response."""
    status: int
    reason: str
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    version: str = HTTP_VERSION

    def get_header(self, name: str) -> Optional[str]:
        for key, value in self.headers:
            if key.lower() == name.lower():
                return value
        return None

    def serialize(self) -> bytes:
        head = f"{self.version} {self.status} {self.reason}\r\n"
        head += "".join(f"{key}: {value}\r\n" for key, value in self.headers)
        head += "\r\n"
        return head.encode("iso-8859-1") + self.body


def supports_gzip(accept_encoding: Optional[str]) -> bool:
    """
    Return True if the Accept-Encoding value lists exactly "gzip".

    Tokens are comma separated, trimmed and lower-cased. Wildcards and
    q-values are not interpreted, so "gzip;q=1" or "*" do not select gzip.
    """
    if not accept_encoding:
        return False
    return any(token.strip().lower() == "gzip" for token in accept_encoding.split(","))


def compress_body(body: bytes) -> bytes:
    """
    Gzip-compress a response body.

    Raises:
        EncodingError: If the encoder fails
    """
    try:
        return gzip.compress(body)
    except (OSError, zlib.error) as e:
        raise EncodingError(f"gzip encoding failed: {e}") from e


def build_response(
    status: int,
    content_type: Optional[str] = None,
    body: Optional[bytes] = None,
    gzip_body: bool = False,
    extra_headers: Iterable[Tuple[str, str]] = (),
) -> Response:
    """
    Build a response with computed Content-Length.

    Header order is Content-Type, Content-Encoding, the caller's extra
    headers (e.g. ``Connection: close``), then Content-Length.

    Args:
        status: Numeric status code (must be in REASON_PHRASES)
        content_type: Content-Type value, omitted if None
        body: Body bytes, empty if None
        gzip_body: Compress the body and emit ``Content-Encoding: gzip``
        extra_headers: Additional (name, value) pairs

    Returns:
        Response ready to serialize

    Raises:
        EncodingError: If gzip compression fails
    """
    payload = body or b""
    headers: List[Tuple[str, str]] = []

    if content_type is not None:
        headers.append(("Content-Type", content_type))

    if gzip_body:
        payload = compress_body(payload)
        headers.append(("Content-Encoding", "gzip"))

    headers.extend(extra_headers)
    headers.append(("Content-Length", str(len(payload))))

    return Response(status=status, reason=REASON_PHRASES[status], headers=headers, body=payload)


def build_switching_protocols(accept_key: str) -> Response:
    """Build the 101 response that completes a WebSocket handshake."""
    return Response(
        status=101,
        reason=REASON_PHRASES[101],
        headers=[
            ("Upgrade", "websocket"),
            ("Connection", "Upgrade"),
            ("Sec-WebSocket-Accept", accept_key),
        ],
    )
