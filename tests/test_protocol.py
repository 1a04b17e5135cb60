"""Unit tests for the Rewind packet codec."""

import hashlib
import struct

import pytest

from relay_interface import FormatError, RecoverableError
from rewind.protocol import (
    HEADER_SIZE,
    MAX_PAYLOAD_LENGTH,
    PACKET_TYPE_NAMES,
    PROTOCOL_SIGN,
    SESSION_TYPE_GROUP_VOICE,
    SERVICE_SIMPLE_APPLICATION,
    TYPE_CHALLENGE,
    TYPE_DMR_AUDIO_FRAME,
    TYPE_KEEP_ALIVE,
    TYPE_REPORT,
    challenge_digest,
    decode,
    encode,
    has_signature,
    keepalive_payload,
    packet_type_name,
    parse_subscription_payload,
    payload_text,
    subscription_payload,
)
from rewind.transport import DEFAULT_RECV_SIZE


class TestHeaderLayout:
    def test_header_is_eighteen_bytes(self) -> None:
        assert HEADER_SIZE == 18

    def test_encode_writes_little_endian_fields(self) -> None:
        data = encode(TYPE_REPORT, b"abc", flags=0x0004, sequence=0x01020304)

        assert data[:8] == PROTOCOL_SIGN
        assert data[8:10] == b"\x00\x01"  # 0x0100
        assert data[10:12] == b"\x04\x00"
        assert data[12:16] == b"\x04\x03\x02\x01"
        assert data[16:18] == b"\x03\x00"
        assert data[18:] == b"abc"

    def test_encode_rejects_oversized_payload(self) -> None:
        with pytest.raises(ValueError):
            encode(TYPE_DMR_AUDIO_FRAME, b"\x00" * (MAX_PAYLOAD_LENGTH + 1))


class TestDecodeRejects:
    @pytest.mark.parametrize("length", range(HEADER_SIZE))
    def test_buffers_shorter_than_header(self, length: int) -> None:
        data = encode(TYPE_KEEP_ALIVE)[:length]
        with pytest.raises(FormatError):
            decode(data)

    def test_format_error_is_recoverable(self) -> None:
        with pytest.raises(RecoverableError):
            decode(b"")

    def test_declared_length_past_end(self) -> None:
        data = encode(TYPE_DMR_AUDIO_FRAME, b"\x01\x02\x03\x04")
        with pytest.raises(FormatError, match="payload length"):
            decode(data[:-1])

    def test_bad_signature(self) -> None:
        data = b"REWIND02" + encode(TYPE_KEEP_ALIVE)[8:]
        with pytest.raises(FormatError, match="signature"):
            decode(data)

    def test_header_claims_max_length_with_no_payload(self) -> None:
        data = struct.pack("<8sHHIH", PROTOCOL_SIGN, TYPE_REPORT, 0, 0, 0xFFFF)
        with pytest.raises(FormatError):
            decode(data)


class TestDecodeAccepts:
    def test_trailing_bytes_are_ignored(self) -> None:
        data = encode(TYPE_REPORT, b"hi") + b"\xff\xff"
        frame = decode(data)
        assert frame.payload == b"hi"

    def test_header_fields_survive(self) -> None:
        frame = decode(encode(TYPE_CHALLENGE, b"xyz", flags=2, sequence=77))
        assert frame.packet_type == TYPE_CHALLENGE
        assert frame.flags == 2
        assert frame.sequence == 77
        assert frame.type_name == "CHALLENGE"

    @pytest.mark.parametrize("packet_type", sorted(PACKET_TYPE_NAMES))
    def test_round_trip_every_type(self, packet_type: int) -> None:
        payload = bytes(range(27))
        frame = decode(encode(packet_type, payload))
        assert (frame.packet_type, frame.payload) == (packet_type, payload)

    def test_round_trip_up_to_receive_capacity(self) -> None:
        for size in range(DEFAULT_RECV_SIZE - HEADER_SIZE + 1):
            payload = bytes((i * 7) & 0xFF for i in range(size))
            frame = decode(encode(TYPE_DMR_AUDIO_FRAME, payload))
            assert frame.payload == payload

    def test_accepts_memoryview(self) -> None:
        frame = decode(memoryview(encode(TYPE_REPORT, b"ok")))
        assert frame.payload == b"ok"


class TestSignature:
    def test_has_signature(self) -> None:
        assert has_signature(b"REWIND01")
        assert has_signature(encode(TYPE_KEEP_ALIVE))

    def test_missing_signature(self) -> None:
        assert not has_signature(b"")
        assert not has_signature(b"REWIND0")
        assert not has_signature(b"XEWIND01" + b"\x00" * 10)


class TestPayloadHelpers:
    def test_keepalive_payload(self) -> None:
        assert keepalive_payload(0x01020304) == b"\x04\x03\x02\x01" + bytes([SERVICE_SIMPLE_APPLICATION])

    def test_subscription_payload(self) -> None:
        payload = subscription_payload(91)
        assert payload == struct.pack("<II", SESSION_TYPE_GROUP_VOICE, 91)
        assert parse_subscription_payload(payload) == (SESSION_TYPE_GROUP_VOICE, 91)

    def test_parse_short_subscription(self) -> None:
        assert parse_subscription_payload(b"\x07\x00") is None

    def test_challenge_digest(self) -> None:
        challenge = b"\x10\x20\x30\x40"
        assert challenge_digest(challenge, "secret") == hashlib.sha256(challenge + b"secret").digest()

    def test_payload_text_strips_nuls(self) -> None:
        assert payload_text(b"Hello world\x00\x00") == "Hello world"

    def test_unknown_type_name(self) -> None:
        assert packet_type_name(0x0ABC) == "UNKNOWN(0x0abc)"
