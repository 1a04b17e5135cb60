import threading
from typing import Callable

from loghandler import get_logger

from .protocol import (
    TYPE_KEEP_ALIVE, TYPE_SUBSCRIPTION, TYPE_AUTHENTICATION, TYPE_CLOSE,
    SESSION_TYPE_GROUP_VOICE,
    encode, keepalive_payload, subscription_payload, packet_type_name,
)


class FrameSender:
    """
    Builds the four frames a listening client sends and hands them to the
    transport. Owns the outgoing sequence counter.

    Sends are fire-and-forget: the transport raises TransportError on a local
    failure and it propagates unchanged.
    """

    def __init__(self, transport_send: Callable[[bytes], None], app_id: int):
        self._send = transport_send
        self.app_id = int(app_id)
        self._logger = get_logger()

        self._seq = 0
        # Close may be sent from the signal path while the engine runs.
        self._seq_lock = threading.Lock()
        self.sent_count = 0

    def _next_seq(self) -> int:
        with self._seq_lock:
            s = self._seq
            self._seq = (self._seq + 1) & 0xFFFFFFFF
            return s

    def _send_frame(self, packet_type: int, payload: bytes = b"") -> bytes:
        datagram = encode(packet_type, payload, sequence=self._next_seq())
        self._send(datagram)
        self.sent_count += 1
        self._logger.debug(f"[SEND] {packet_type_name(packet_type)} payload={len(payload)} bytes")
        return datagram

    def send_keepalive(self):
        return self._send_frame(TYPE_KEEP_ALIVE, keepalive_payload(self.app_id))

    def send_subscription(self, talkgroup_id: int, session_type: int = SESSION_TYPE_GROUP_VOICE):
        self._logger.info(f"[SESSION] Subscribing to talkgroup {talkgroup_id} (session type {session_type})")
        return self._send_frame(TYPE_SUBSCRIPTION, subscription_payload(talkgroup_id, session_type))

    def send_challenge_response(self, digest: bytes):
        return self._send_frame(TYPE_AUTHENTICATION, digest)

    def send_close(self):
        return self._send_frame(TYPE_CLOSE)
