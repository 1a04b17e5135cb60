# rewind/protocol.py
"""
Packet codec for the BrandMeister Rewind UDP protocol.

Every datagram on the wire is one frame:

    offset  size  field
    0       8     signature   ASCII 'REWIND01'
    8       2     type        packet type tag
    10      2     flags
    12      4     sequence    sender's running counter
    16      2     length      payload length
    18      n     payload

All integers are little-endian. Bytes after 'length' payload bytes are ignored.
"""

from __future__ import annotations
import hashlib
import struct
from dataclasses import dataclass

from relay_interface import FormatError

PROTOCOL_SIGN = b"REWIND01"

HEADER_FMT = "<8sHHIH"
HEADER_SIZE = struct.calcsize(HEADER_FMT)  # 18
MAX_PAYLOAD_LENGTH = 0xFFFF

KEEP_ALIVE_INTERVAL = 5.0

# Packet classes
CLASS_REWIND_CONTROL = 0x0000
CLASS_SYSTEM_CONSOLE = 0x0100
CLASS_APPLICATION = 0x0900

# Packet types
TYPE_KEEP_ALIVE = CLASS_REWIND_CONTROL + 0
TYPE_CLOSE = CLASS_REWIND_CONTROL + 1
TYPE_CHALLENGE = CLASS_REWIND_CONTROL + 2
TYPE_AUTHENTICATION = CLASS_REWIND_CONTROL + 3
TYPE_REPORT = CLASS_SYSTEM_CONSOLE + 0
TYPE_CONFIGURATION = CLASS_APPLICATION + 0x00
TYPE_SUBSCRIPTION = CLASS_APPLICATION + 0x01
TYPE_DMR_AUDIO_FRAME = CLASS_APPLICATION + 0x20
TYPE_SUPER_HEADER = CLASS_APPLICATION + 0x28
TYPE_FAILURE_CODE = CLASS_APPLICATION + 0x29

PACKET_TYPE_NAMES = {
    TYPE_KEEP_ALIVE: "KEEP_ALIVE",
    TYPE_CLOSE: "CLOSE",
    TYPE_CHALLENGE: "CHALLENGE",
    TYPE_AUTHENTICATION: "AUTHENTICATION",
    TYPE_REPORT: "REPORT",
    TYPE_CONFIGURATION: "CONFIGURATION",
    TYPE_SUBSCRIPTION: "SUBSCRIPTION",
    TYPE_DMR_AUDIO_FRAME: "DMR_AUDIO_FRAME",
    TYPE_SUPER_HEADER: "SUPER_HEADER",
    TYPE_FAILURE_CODE: "FAILURE_CODE",
}

# Header flags
FLAG_NONE = 0
FLAG_REAL_TIME_1 = 1 << 0
FLAG_REAL_TIME_2 = 1 << 1
FLAG_CONNECTION = 1 << 2

# Service id carried in our keepalives
SERVICE_SIMPLE_APPLICATION = 0x20

# Subscription session types
SESSION_TYPE_PRIVATE_VOICE = 5
SESSION_TYPE_GROUP_VOICE = 7

KEEP_ALIVE_FMT = "<IB"
SUBSCRIPTION_FMT = "<II"


@dataclass(frozen=True)
class Frame:
    packet_type: int
    payload: bytes = b""
    flags: int = FLAG_NONE
    sequence: int = 0

    @property
    def type_name(self) -> str:
        return packet_type_name(self.packet_type)


def packet_type_name(packet_type: int) -> str:
    return PACKET_TYPE_NAMES.get(packet_type, f"UNKNOWN(0x{packet_type:04x})")


def has_signature(data: bytes) -> bool:
    """Cheap pre-check used before a datagram is handed to decode()."""
    return len(data) >= len(PROTOCOL_SIGN) and data[:len(PROTOCOL_SIGN)] == PROTOCOL_SIGN


def encode(packet_type: int, payload: bytes = b"", *, flags: int = FLAG_NONE, sequence: int = 0) -> bytes:
    payload = bytes(payload)
    if len(payload) > MAX_PAYLOAD_LENGTH:
        raise ValueError(f"payload too large: {len(payload)} > {MAX_PAYLOAD_LENGTH} bytes")
    header = struct.pack(
        HEADER_FMT,
        PROTOCOL_SIGN,
        packet_type & 0xFFFF,
        flags & 0xFFFF,
        sequence & 0xFFFFFFFF,
        len(payload),
    )
    return header + payload


def decode(data: bytes) -> Frame:
    """
    Parse one datagram into a Frame.

    Raises FormatError when the buffer is shorter than the header, when the
    signature is wrong, or when the declared payload length runs past the
    end of the buffer. Never reads out of bounds.
    """
    if len(data) < HEADER_SIZE:
        raise FormatError(f"short datagram: {len(data)} bytes, header needs {HEADER_SIZE}")

    sign, packet_type, flags, sequence, length = struct.unpack_from(HEADER_FMT, data, 0)
    if sign != PROTOCOL_SIGN:
        raise FormatError(f"bad signature {sign!r}")

    available = len(data) - HEADER_SIZE
    if length > available:
        raise FormatError(f"invalid payload length: declared {length}, available {available}")

    payload = bytes(data[HEADER_SIZE:HEADER_SIZE + length])
    return Frame(packet_type=packet_type, payload=payload, flags=flags, sequence=sequence)


# ----------- Payload helpers -----------

def keepalive_payload(app_id: int, service: int = SERVICE_SIMPLE_APPLICATION) -> bytes:
    return struct.pack(KEEP_ALIVE_FMT, app_id & 0xFFFFFFFF, service & 0xFF)


def subscription_payload(talkgroup_id: int, session_type: int = SESSION_TYPE_GROUP_VOICE) -> bytes:
    return struct.pack(SUBSCRIPTION_FMT, session_type & 0xFFFFFFFF, talkgroup_id & 0xFFFFFFFF)


def parse_subscription_payload(payload: bytes):
    """Return (session_type, talkgroup_id) or None when the body is too short."""
    if len(payload) < struct.calcsize(SUBSCRIPTION_FMT):
        return None
    return struct.unpack_from(SUBSCRIPTION_FMT, payload, 0)


def challenge_digest(challenge: bytes, password: str) -> bytes:
    """sha256(challenge ++ password), the body of the AUTHENTICATION reply."""
    return hashlib.sha256(bytes(challenge) + password.encode("utf-8")).digest()


def payload_text(payload: bytes) -> str:
    """Report and failure payloads are C strings; strip NULs and whitespace."""
    return payload.replace(b"\x00", b"").decode("utf-8", errors="replace").strip()
