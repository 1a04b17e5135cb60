import queue
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from loghandler import get_logger
from relay_interface import (
    BaseAudioSink, FormatError, RelayError, ServerClosed, SessionTimeout, TransportError,
)
from utils import pretty_duration, hexdump

from .protocol import (
    TYPE_KEEP_ALIVE, TYPE_CLOSE, TYPE_CHALLENGE, TYPE_REPORT, TYPE_CONFIGURATION,
    TYPE_SUBSCRIPTION, TYPE_DMR_AUDIO_FRAME, TYPE_FAILURE_CODE,
    KEEP_ALIVE_INTERVAL,
    Frame, decode, has_signature, challenge_digest, payload_text, parse_subscription_payload,
)
from .sender import FrameSender
from .transport import ReceiverFailed

DEFAULT_POLL_INTERVAL = 5.0


class SessionState(Enum):
    UNAUTHENTICATED = "unauthenticated"
    AWAITING_SUBSCRIPTION_ACK = "awaiting-subscription-ack"
    AUTHENTICATED = "authenticated"
    TERMINATED = "terminated"


@dataclass
class Session:
    """The one logical connection to a relay server for one talkgroup."""
    password: str
    app_id: int
    talkgroup_id: int
    timeout_s: float
    state: SessionState = SessionState.UNAUTHENTICATED
    last_keepalive_sent_at: Optional[float] = None
    last_valid_frame_at: Optional[float] = None
    started_at: Optional[float] = None
    frames_received: int = 0
    frames_dropped: int = 0
    audio_frames: int = 0
    challenges: int = 0

    @property
    def authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    @property
    def terminated(self) -> bool:
        return self.state is SessionState.TERMINATED


class SessionEngine:
    """
    Rewind protocol state machine and timer loop.

    Composition:
      - inbound: queue fed by the transport listener (bytes or ReceiverFailed).
      - FrameSender: keepalive, subscription, challenge response, close.
      - BaseAudioSink: receives DMR audio payloads verbatim.

    The handshake is server driven. The engine only sends keepalives on its
    own; a KEEP_ALIVE or CONFIGURATION from the server while unauthenticated
    triggers the subscription request, and the SUBSCRIPTION ack completes it.
    A CHALLENGE at any time drops back to unauthenticated and is answered with
    sha256(challenge ++ password).

    Only this engine mutates the Session. Fatal conditions are raised
    (TransportError, SessionTimeout, ServerClosed, SinkError); exiting the
    process is the caller's decision.
    """

    def __init__(
        self,
        session: Session,
        sender: FrameSender,
        sink: BaseAudioSink,
        inbound,
        *,
        clock: Callable[[], float] = time.monotonic,
        keepalive_interval: float = KEEP_ALIVE_INTERVAL,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_frame: Optional[Callable[[Frame, str], None]] = None,
    ):
        self.session = session
        self.sender = sender
        self.sink = sink
        self.inbound = inbound
        self._clock = clock
        self.keepalive_interval = float(keepalive_interval)
        self.poll_interval = float(poll_interval)
        self._on_frame = on_frame
        self._logger = get_logger()

        self._handlers: Dict[int, Callable[[Frame], None]] = {
            TYPE_KEEP_ALIVE: self._on_keepalive,
            TYPE_CONFIGURATION: self._on_configuration,
            TYPE_SUBSCRIPTION: self._on_subscription,
            TYPE_CHALLENGE: self._on_challenge,
            TYPE_REPORT: self._on_report,
            TYPE_FAILURE_CODE: self._on_failure_code,
            TYPE_DMR_AUDIO_FRAME: self._on_audio_frame,
            TYPE_CLOSE: self._on_close,
        }

    # ------------- State helpers -------------

    @property
    def state(self) -> SessionState:
        return self.session.state

    def _set_state(self, new_state: SessionState):
        old = self.session.state
        if old is new_state:
            return
        self.session.state = new_state
        self._logger.debug(f"[SESSION] state {old.value} -> {new_state.value}")

    def _request_subscription(self):
        self.sender.send_subscription(self.session.talkgroup_id)
        self._set_state(SessionState.AWAITING_SUBSCRIPTION_ACK)

    # ------------- Packet handlers -------------

    def _on_keepalive(self, frame: Frame):
        if not self.session.authenticated:
            self._request_subscription()

    def _on_configuration(self, frame: Frame):
        self._logger.info("[SESSION] got configuration ack")
        if not self.session.authenticated:
            self._request_subscription()

    def _on_subscription(self, frame: Frame):
        self._logger.info("[SESSION] got subscription ack")
        parsed = parse_subscription_payload(frame.payload)
        if parsed and parsed[1] != self.session.talkgroup_id:
            self._logger.debug(
                f"[SESSION] subscription ack for talkgroup {parsed[1]}, expected {self.session.talkgroup_id}"
            )
        if not self.session.authenticated:
            self._set_state(SessionState.AUTHENTICATED)
            self._logger.info(f"[SESSION] logged in, listening to talkgroup {self.session.talkgroup_id}")

    def _on_challenge(self, frame: Frame):
        self._logger.info("[SESSION] got challenge")
        self.session.challenges += 1
        self._set_state(SessionState.UNAUTHENTICATED)
        self.sender.send_challenge_response(challenge_digest(frame.payload, self.session.password))

    def _on_report(self, frame: Frame):
        self._logger.info(f"[SESSION] server report: {payload_text(frame.payload)}")

    def _on_failure_code(self, frame: Frame):
        code = int.from_bytes(frame.payload[:4], "little") if len(frame.payload) >= 4 else None
        self._logger.warning(f"[SESSION] got failure code: {code} ({hexdump(frame.payload)})")

    def _on_audio_frame(self, frame: Frame):
        self.sink.write(frame.payload)
        self.session.audio_frames += 1

    def _on_close(self, frame: Frame):
        self._set_state(SessionState.TERMINATED)
        self._logger.error("[SESSION] got close request")
        raise ServerClosed("Server sent a close request")

    # ------------- Inbound path -------------

    def handle_datagram(self, data: bytes) -> bool:
        """
        Validate and dispatch one datagram. Returns True if it was a valid frame.

        Unsigned datagrams are dropped quietly; malformed ones with a log line.
        Neither refreshes the timeout clock.
        """
        if self.session.terminated:
            return False

        if not has_signature(data):
            self.session.frames_dropped += 1
            self._logger.debug(f"[RECV] no protocol signature, dropping {len(data)} bytes")
            return False

        try:
            frame = decode(data)
        except FormatError as e:
            self.session.frames_dropped += 1
            self._logger.warning(f"[RECV] {e}, dropping packet")
            return False

        handler = self._handlers.get(frame.packet_type)
        if handler is None:
            self.session.frames_dropped += 1
            self._logger.debug(f"[RECV] ignoring {frame.type_name}, {len(frame.payload)} bytes")
            return False

        handler(frame)

        self.session.last_valid_frame_at = self._clock()
        self.session.frames_received += 1
        if self._on_frame:
            self._on_frame(frame, self.session.state.value)
        return True

    # ------------- Timers -------------

    def start(self):
        """Arm the timers. The first keepalive goes out on the next check."""
        now = self._clock()
        self.session.started_at = now
        self.session.last_valid_frame_at = now
        self.session.last_keepalive_sent_at = None

    def check_keepalive(self, now: Optional[float] = None):
        if self.session.terminated:
            return
        now = self._clock() if now is None else now
        last = self.session.last_keepalive_sent_at
        if last is None or now - last >= self.keepalive_interval:
            self.sender.send_keepalive()
            self.session.last_keepalive_sent_at = now

    def check_timeout(self, now: Optional[float] = None):
        if self.session.terminated:
            return
        now = self._clock() if now is None else now
        if self.session.last_valid_frame_at is None:
            self.session.last_valid_frame_at = now
        idle = now - self.session.last_valid_frame_at
        if idle >= self.session.timeout_s:
            self._set_state(SessionState.TERMINATED)
            self._logger.error(f"[SESSION] timeout, disconnected: no valid frame for {pretty_duration(idle)}")
            raise SessionTimeout(f"No valid frame for {pretty_duration(idle)}")

    def check_timers(self, now: Optional[float] = None):
        now = self._clock() if now is None else now
        self.check_keepalive(now)
        self.check_timeout(now)

    def _next_wait(self, now: float) -> float:
        """Bounded by poll_interval, shortened to the nearest timer deadline."""
        wait = self.poll_interval
        last_ka = self.session.last_keepalive_sent_at
        if last_ka is not None:
            wait = min(wait, last_ka + self.keepalive_interval - now)
        if self.session.last_valid_frame_at is not None:
            wait = min(wait, self.session.last_valid_frame_at + self.session.timeout_s - now)
        return max(0.0, wait)

    # ------------- Loop -------------

    def step(self):
        """One loop iteration: keepalive, bounded wait, dispatch, timeout."""
        self.check_keepalive()

        try:
            item = self.inbound.get(timeout=self._next_wait(self._clock()))
        except queue.Empty:
            item = None

        if isinstance(item, ReceiverFailed):
            self._set_state(SessionState.TERMINATED)
            raise TransportError(f"Receive failed: {item.error}") from item.error
        if item is not None:
            self.handle_datagram(item)

        self.check_timeout()

    def run(self, stop_event=None):
        """Run until a fatal error, a server close or stop_event is set."""
        self._logger.info("[SESSION] starting listening loop")
        self.start()
        while not self.session.terminated:
            if stop_event is not None and stop_event.is_set():
                break
            self.step()

    def shutdown(self):
        """Best-effort Close to the server. Never raises."""
        if not self.session.terminated:
            try:
                self.sender.send_close()
                self._logger.info("[SESSION] close sent")
            except RelayError as e:
                self._logger.debug(f"[SESSION] close send failed (ignored): {e}")
        self._set_state(SessionState.TERMINATED)

    def summary(self) -> str:
        s = self.session
        uptime = 0.0 if s.started_at is None else self._clock() - s.started_at
        return (
            f"uptime {pretty_duration(uptime)}, {s.frames_received} valid frames, "
            f"{s.audio_frames} audio frames, {s.frames_dropped} dropped, {s.challenges} challenges"
        )
