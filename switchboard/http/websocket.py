"""
WebSocket handshake and frame codec.

Implements the opening handshake and frame encoding/decoding per RFC 6455.
Server frames are never masked; client frames are unmasked on read.
"""

import base64
import enum
import hashlib
import logging
import struct
from dataclasses import dataclass
from typing import BinaryIO, Optional

from switchboard.http.request import Request

logger = logging.getLogger(__name__)

# WebSocket magic string per RFC 6455
WEBSOCKET_MAGIC_STRING = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"

SUPPORTED_VERSION = "13"

# Close status codes
CLOSE_NORMAL = 1000
CLOSE_TOO_BIG = 1009

# Codes that must never appear in a close frame (RFC 6455 section 7.4.1)
RESERVED_CLOSE_CODES = frozenset({1004, 1005, 1006, 1015})


class Opcode(enum.IntEnum):
    CONTINUATION = 0x0
    TEXT = 0x1
    BINARY = 0x2
    CLOSE = 0x8
    PING = 0x9
    PONG = 0xA


class WebSocketError(Exception):
    """WebSocket protocol error."""
    pass


class FrameTooLarge(WebSocketError):
    """Declared payload length is above the accepted bound."""
    pass


@dataclass(frozen=True)
class Frame:
    """
    One decoded WebSocket frame.

    ``opcode`` is a plain int so unknown opcodes survive decoding; compare
    against Opcode members. RSV bits are carried but never interpreted.
    """
    fin: bool
    opcode: int
    payload: bytes
    rsv: int = 0


def generate_accept_key(sec_websocket_key: str) -> str:
    """
    Generate WebSocket accept key for upgrade response.

    Per RFC 6455 Section 1.3: SHA-1(key + magic_string), then base64 encode.

    Args:
        sec_websocket_key: Client's Sec-WebSocket-Key header value

    Returns:
        Sec-WebSocket-Accept value
    """
    key = sec_websocket_key + WEBSOCKET_MAGIC_STRING
    sha1 = hashlib.sha1(key.encode('utf-8')).digest()
    return base64.b64encode(sha1).decode('utf-8')


def is_upgrade_request(request: Request) -> bool:
    """
    Check whether a request asks to switch to WebSocket.

    Connection must contain "upgrade" and Upgrade must contain "websocket"
    (both case-insensitive), a key must be present and the version must be
    exactly "13".
    """
    connection = (request.header("connection") or "").lower()
    upgrade = (request.header("upgrade") or "").lower()
    return (
        "upgrade" in connection
        and "websocket" in upgrade
        and request.header("sec-websocket-key") is not None
        and request.header("sec-websocket-version") == SUPPORTED_VERSION
    )


def apply_mask(payload: bytes, mask_key: bytes) -> bytes:
    """XOR payload byte i with mask_key[i % 4]. Masking is its own inverse."""
    return bytes(b ^ mask_key[i % 4] for i, b in enumerate(payload))


def encode_frame(payload: bytes, opcode: int = Opcode.TEXT) -> bytes:
    """
    Encode a WebSocket frame.

    Per RFC 6455 Section 5.2:
    - FIN bit = 1 (final frame)
    - RSV bits = 0
    - Mask = 0 (server to client frames are not masked)
    - Payload length: 7-bit, 16-bit extended or 64-bit extended

    Args:
        payload: Frame payload bytes
        opcode: Frame opcode

    Returns:
        Encoded WebSocket frame bytes
    """
    payload_len = len(payload)
    first_byte = 0x80 | (opcode & 0x0F)

    if payload_len < 126:
        header = struct.pack('!BB', first_byte, payload_len)
    elif payload_len < 65536:
        header = struct.pack('!BBH', first_byte, 126, payload_len)
    else:
        header = struct.pack('!BBQ', first_byte, 127, payload_len)

    return header + payload


def is_sendable_close_code(code: int) -> bool:
    """True if code may be sent on the wire in a close frame."""
    if code in RESERVED_CLOSE_CODES:
        return False
    return 1000 <= code <= 1014 or 3000 <= code <= 4999


def create_close_frame(code: int = CLOSE_NORMAL, reason: str = "") -> bytes:
    """
    Create a WebSocket close frame.

    Args:
        code: Close status code (1000 = normal closure)
        reason: Optional close reason

    Returns:
        Close frame bytes
    """
    payload = struct.pack('!H', code) + reason.encode('utf-8')
    return encode_frame(payload, opcode=Opcode.CLOSE)


def _read_exact(stream: BinaryIO, count: int) -> Optional[bytes]:
    """Read exactly count bytes, or None if the stream ends first."""
    if count == 0:
        return b""
    chunks = []
    remaining = count
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            return None
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_frame(stream: BinaryIO, max_payload: Optional[int] = None) -> Optional[Frame]:
    """
    Read and decode one frame from a blocking binary stream.

    Args:
        stream: Buffered binary stream (e.g. socket.makefile("rb"))
        max_payload: Upper bound on payload length, or None for no bound

    Returns:
        The decoded Frame, or None if the stream ended mid-frame

    Raises:
        FrameTooLarge: If a 64-bit length uses its upper 32 bits, or the
            length exceeds max_payload
    """
    header = _read_exact(stream, 2)
    if header is None:
        return None

    first_byte, second_byte = header[0], header[1]
    fin = bool(first_byte & 0x80)
    rsv = (first_byte >> 4) & 0x07
    opcode = first_byte & 0x0F
    masked = bool(second_byte & 0x80)
    payload_len = second_byte & 0x7F

    if payload_len == 126:
        ext = _read_exact(stream, 2)
        if ext is None:
            return None
        payload_len = struct.unpack('!H', ext)[0]
    elif payload_len == 127:
        ext = _read_exact(stream, 8)
        if ext is None:
            return None
        high, low = struct.unpack('!II', ext)
        if high:
            raise FrameTooLarge(f"64-bit payload length uses upper bits: {(high << 32) | low}")
        payload_len = low

    if max_payload is not None and payload_len > max_payload:
        raise FrameTooLarge(f"Payload length {payload_len} exceeds limit {max_payload}")

    mask_key = None
    if masked:
        mask_key = _read_exact(stream, 4)
        if mask_key is None:
            return None

    payload = _read_exact(stream, payload_len)
    if payload is None:
        return None

    if mask_key is not None:
        payload = apply_mask(payload, mask_key)

    return Frame(fin=fin, opcode=opcode, payload=payload, rsv=rsv)
