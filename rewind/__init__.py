# rewind/__init__.py
"""
BrandMeister Rewind protocol client package.

Exports:
- SessionEngine, Session, SessionState (protocol state machine and timers)
- FrameSender (keepalive, subscription, challenge response, close)
- UdpTransport (connected UDP socket with receiver thread)
- Frame, encode, decode (packet codec)
"""

from .protocol import Frame, encode, decode, PROTOCOL_SIGN, HEADER_SIZE
from .sender import FrameSender
from .session import Session, SessionEngine, SessionState
from .transport import UdpTransport, ReceiverFailed

__version__ = "1.0.0"

__all__ = [
    "Frame",
    "encode",
    "decode",
    "PROTOCOL_SIGN",
    "HEADER_SIZE",
    "FrameSender",
    "Session",
    "SessionEngine",
    "SessionState",
    "UdpTransport",
    "ReceiverFailed",
    "__version__",
]
