"""
Contract tests for the WebSocket handshake helpers and frame codec.

See RFC 6455 sections 1.3 (accept key) and 5.2 (framing).
"""

import io
import struct

import pytest

from switchboard.http.request import Request
from switchboard.http.websocket import (
    Frame,
    FrameTooLarge,
    Opcode,
    apply_mask,
    create_close_frame,
    encode_frame,
    generate_accept_key,
    is_sendable_close_code,
    is_upgrade_request,
    read_frame,
)
from switchboard.tests.websocket_client import encode_client_frame


def _stream(raw: bytes) -> io.BufferedReader:
    return io.BufferedReader(io.BytesIO(raw))


class _TrickleStream:
    """Returns at most one byte per read() to exercise short reads."""

    def __init__(self, data: bytes):
        self._data = data

    def read(self, n: int) -> bytes:
        chunk, self._data = self._data[:1], self._data[1:]
        return chunk


class TestHandshake:

    def test_rfc6455_accept_key_vector(self):
        assert generate_accept_key("dGhlIHNhbXBsZSBub25jZQ==") == "s3pPLMBiTxaQ9kYGzzhZRbK+xOo="

    def _request(self, **headers):
        return Request("GET", "/chat", headers=headers)

    def test_valid_upgrade(self):
        request = self._request(**{
            "connection": "keep-alive, Upgrade",
            "upgrade": "WebSocket",
            "sec-websocket-key": "dGhlIHNhbXBsZSBub25jZQ==",
            "sec-websocket-version": "13",
        })
        assert is_upgrade_request(request)

    @pytest.mark.parametrize("missing", ["connection", "upgrade", "sec-websocket-key", "sec-websocket-version"])
    def test_each_header_required(self, missing):
        headers = {
            "connection": "Upgrade",
            "upgrade": "websocket",
            "sec-websocket-key": "k",
            "sec-websocket-version": "13",
        }
        del headers[missing]
        assert not is_upgrade_request(Request("GET", "/", headers=headers))

    def test_version_must_be_exactly_13(self):
        headers = {
            "connection": "Upgrade",
            "upgrade": "websocket",
            "sec-websocket-key": "k",
            "sec-websocket-version": "8",
        }
        assert not is_upgrade_request(Request("GET", "/", headers=headers))


class TestEncodeFrame:
    """Server-to-client frames: FIN set, never masked."""

    def test_short_text_frame(self):
        assert encode_frame(b"hi", Opcode.TEXT) == b"\x81\x02hi"

    def test_125_byte_payload_uses_7_bit_length(self):
        frame = encode_frame(b"a" * 125)
        assert frame[1] == 125
        assert len(frame) == 2 + 125

    def test_126_byte_payload_uses_16_bit_length(self):
        frame = encode_frame(b"a" * 126)
        assert frame[1] == 126
        assert struct.unpack("!H", frame[2:4])[0] == 126
        assert len(frame) == 4 + 126

    def test_65536_byte_payload_uses_64_bit_length(self):
        frame = encode_frame(b"a" * 65536, Opcode.BINARY)
        assert frame[0] == 0x82
        assert frame[1] == 127
        assert struct.unpack("!Q", frame[2:10])[0] == 65536

    def test_pong_opcode(self):
        assert encode_frame(b"x", Opcode.PONG)[0] == 0x8A

    def test_close_frame_carries_status_code(self):
        frame = create_close_frame(1000, "bye")
        assert frame[0] == 0x88
        assert frame[2:4] == b"\x03\xe8"
        assert frame[4:] == b"bye"


class TestReadFrame:
    """Client-to-server frames."""

    def test_masked_text_frame(self):
        raw = encode_client_frame(b"ping", opcode=0x1, mask_key=b"\x01\x02\x03\x04")
        assert read_frame(_stream(raw)) == Frame(fin=True, opcode=Opcode.TEXT, payload=b"ping")

    def test_unmasked_frame(self):
        assert read_frame(_stream(b"\x89\x03abc")) == Frame(True, Opcode.PING, b"abc")

    def test_masking_is_xor_with_key_index_mod_4(self):
        key = b"\xff\x00\xff\x00"
        assert apply_mask(b"\x00\x00\x00\x00\x00", key) == b"\xff\x00\xff\x00\xff"

    def test_16_bit_length(self):
        payload = b"z" * 300
        assert read_frame(_stream(encode_client_frame(payload))).payload == payload

    def test_64_bit_length(self):
        payload = b"q" * 70000
        assert read_frame(_stream(encode_client_frame(payload, opcode=0x2))).payload == payload

    def test_upper_32_bits_of_length_rejected(self):
        raw = b"\x82\x7f" + struct.pack("!Q", 1 << 32) + b"data"
        with pytest.raises(FrameTooLarge):
            read_frame(_stream(raw))

    def test_max_payload_enforced(self):
        raw = encode_client_frame(b"x" * 200)
        with pytest.raises(FrameTooLarge):
            read_frame(_stream(raw), max_payload=100)

    def test_fin_clear_and_rsv_bits_accepted(self):
        raw = b"\x70\x01x"  # FIN=0, RSV1-3 set, continuation
        frame = read_frame(_stream(raw))
        assert frame.fin is False
        assert frame.rsv == 0x7
        assert frame.opcode == Opcode.CONTINUATION
        assert frame.payload == b"x"

    def test_unknown_opcode_decoded(self):
        assert read_frame(_stream(b"\x83\x00")).opcode == 0x3

    def test_short_reads_are_retried(self):
        raw = encode_client_frame(b"trickle" * 40)
        assert read_frame(_TrickleStream(raw)).payload == b"trickle" * 40

    @pytest.mark.parametrize("cut", [0, 1, 3, 6, 8])
    def test_stream_end_mid_frame_returns_none(self, cut):
        raw = encode_client_frame(b"hello", mask_key=b"abcd")
        assert read_frame(_stream(raw[:cut])) is None

    def test_consecutive_frames(self):
        stream = _stream(encode_client_frame(b"one") + encode_client_frame(b"two"))
        assert read_frame(stream).payload == b"one"
        assert read_frame(stream).payload == b"two"
        assert read_frame(stream) is None


class TestCloseCodes:

    @pytest.mark.parametrize("code", [1000, 1001, 1009, 1011, 3000, 4999])
    def test_sendable(self, code):
        assert is_sendable_close_code(code)

    @pytest.mark.parametrize("code", [0, 999, 1004, 1005, 1006, 1015, 1016, 2999, 5000, 65535])
    def test_reserved_or_out_of_range(self, code):
        assert not is_sendable_close_code(code)
