"""Unit tests for audio sinks and the sink registry."""

import io
from unittest.mock import MagicMock

import pytest

from audio_sinks import FileSink, StdoutSink, StreamSink
from relay_interface import SinkError
from sink_registry import AUDIO_SINKS, create_sink, describe_sink


class TestStreamSink:
    def test_payloads_concatenated_without_framing(self) -> None:
        buf = io.BytesIO()
        sink = StreamSink(buf)
        sink.write(b"\x01\x02")
        sink.write(b"\x03")

        assert buf.getvalue() == b"\x01\x02\x03"
        assert sink.frames_written == 2
        assert sink.bytes_written == 3

    def test_write_after_close(self) -> None:
        sink = StreamSink(io.BytesIO())
        sink.close()
        with pytest.raises(SinkError, match="closed"):
            sink.write(b"\x01")

    def test_close_is_idempotent_and_keeps_borrowed_stream(self) -> None:
        buf = io.BytesIO()
        sink = StreamSink(buf)
        sink.close()
        sink.close()
        assert not buf.closed

    def test_broken_pipe_is_sink_error(self) -> None:
        stream = MagicMock()
        stream.write.side_effect = BrokenPipeError(32, "Broken pipe")
        sink = StreamSink(stream, name="pipe")

        with pytest.raises(SinkError) as excinfo:
            sink.write(b"\x01")
        assert isinstance(excinfo.value.__cause__, BrokenPipeError)

    def test_flush_on_every_write(self) -> None:
        stream = MagicMock()
        StreamSink(stream).write(b"\x01")
        stream.flush.assert_called_once()


class TestFileSink:
    def test_appends_to_file(self, tmp_path) -> None:
        path = tmp_path / "tg91.ambe"
        path.write_bytes(b"\xff")

        sink = FileSink(str(path))
        sink.write(b"\x01\x02\x03")
        sink.close()

        assert path.read_bytes() == b"\xff\x01\x02\x03"

    def test_unopenable_path(self, tmp_path) -> None:
        with pytest.raises(SinkError, match="Cannot open"):
            FileSink(str(tmp_path / "missing-dir" / "out.ambe"))


class TestRegistry:
    def test_dash_selects_stdout(self) -> None:
        assert isinstance(create_sink("-"), StdoutSink)
        assert isinstance(create_sink(""), StdoutSink)

    def test_path_selects_file(self, tmp_path) -> None:
        sink = create_sink(str(tmp_path / "out.ambe"))
        try:
            assert isinstance(sink, FileSink)
        finally:
            sink.close()

    def test_entries_carry_class_and_description(self) -> None:
        for entry in AUDIO_SINKS.values():
            assert set(entry) == {"class", "description"}

    def test_descriptions(self) -> None:
        assert describe_sink("-") == AUDIO_SINKS["stdout"]["description"]
        assert "out.ambe" in describe_sink("out.ambe")
