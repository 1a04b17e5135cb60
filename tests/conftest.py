"""Shared fixtures: logging, a controllable clock and a wired session engine."""

from __future__ import annotations

import queue

import pytest

from loghandler import setup_logging
from relay_interface import BaseAudioSink
from rewind.protocol import decode
from rewind.sender import FrameSender
from rewind.session import Session, SessionEngine

TEST_PASSWORD = "secret"
TEST_APP_ID = 2161234
TEST_TALKGROUP = 91
TEST_TIMEOUT_S = 30.0


@pytest.fixture(scope="session", autouse=True)
def _logging(tmp_path_factory):
    """Modules fetch the logger via get_logger(); initialize it once."""
    setup_logging(log_dir=str(tmp_path_factory.mktemp("logs")), debug=True)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSink(BaseAudioSink):
    def __init__(self):
        self.payloads = []
        self.closed = False

    @property
    def data(self) -> bytes:
        return b"".join(self.payloads)

    def write(self, payload: bytes) -> None:
        self.payloads.append(bytes(payload))

    def close(self) -> None:
        self.closed = True


class FakeInbound:
    """Queue stand-in: get() pops scripted items, or advances the clock and times out."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.items = []
        self.waits = []

    def get(self, timeout=None):
        self.waits.append(timeout)
        if self.items:
            return self.items.pop(0)
        self.clock.advance(timeout or 0.0)
        raise queue.Empty


class EngineHarness:
    def __init__(self, timeout_s: float = TEST_TIMEOUT_S):
        self.sent = []
        self.clock = FakeClock()
        self.sink = RecordingSink()
        self.inbound = FakeInbound(self.clock)
        self.sender = FrameSender(self.sent.append, app_id=TEST_APP_ID)
        self.session = Session(
            password=TEST_PASSWORD,
            app_id=TEST_APP_ID,
            talkgroup_id=TEST_TALKGROUP,
            timeout_s=timeout_s,
        )
        self.engine = SessionEngine(
            self.session, self.sender, self.sink, self.inbound, clock=self.clock
        )
        self.engine.start()

    def sent_frames(self):
        return [decode(d) for d in self.sent]

    def sent_types(self):
        return [f.packet_type for f in self.sent_frames()]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def harness():
    return EngineHarness()
