# audio_sinks.py
# Byte sinks for DMR audio frame payloads.

from __future__ import annotations
import sys
from typing import BinaryIO, Optional

from loghandler import get_logger
from relay_interface import BaseAudioSink, SinkError


class StreamSink(BaseAudioSink):
    """
    Writes raw payloads to an already open binary stream.

    Payloads are concatenated with no framing, one write per frame, and the
    stream is flushed after each frame so a downstream decoder sees audio in
    real time instead of in pipe-buffer sized bursts.
    """

    def __init__(self, stream: BinaryIO, *, name: str = "stream", owns_stream: bool = False):
        self._stream: Optional[BinaryIO] = stream
        self.name = name
        self._owns_stream = owns_stream
        self.bytes_written = 0
        self.frames_written = 0

    def write(self, payload: bytes) -> None:
        if self._stream is None:
            raise SinkError(f"Audio sink '{self.name}' is closed")
        try:
            self._stream.write(payload)
            self._stream.flush()
        except (OSError, ValueError) as e:
            # ValueError: write to a stream closed behind our back
            raise SinkError(f"Audio sink '{self.name}' write failed: {e}") from e
        self.bytes_written += len(payload)
        self.frames_written += 1

    def flush(self) -> None:
        if self._stream is None:
            return
        try:
            self._stream.flush()
        except (OSError, ValueError) as e:
            raise SinkError(f"Audio sink '{self.name}' flush failed: {e}") from e

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.flush()
        except (OSError, ValueError) as e:
            get_logger().debug(f"[AUDIO] flush on close failed (ignored): {e}")
        if self._owns_stream:
            stream.close()
        get_logger().debug(
            f"[AUDIO] {self.name} closed after {self.frames_written} frames, {self.bytes_written} bytes"
        )


class StdoutSink(StreamSink):
    """Audio payloads to stdout, for piping into a decoder."""

    def __init__(self):
        super().__init__(sys.stdout.buffer, name="stdout", owns_stream=False)


class FileSink(StreamSink):
    """Audio payloads appended to a binary file."""

    def __init__(self, path: str):
        try:
            stream = open(path, "ab")
        except OSError as e:
            raise SinkError(f"Cannot open audio output file {path}: {e}") from e
        super().__init__(stream, name=path, owns_stream=True)
        self.path = path
