# sink_registry.py
"""
Registry of available audio sinks for Rewind-Listener.
"""

from typing import Dict, Any

from audio_sinks import StdoutSink, FileSink
from relay_interface import BaseAudioSink

STDOUT_SELECTOR = "-"

AUDIO_SINKS: Dict[str, Dict[str, Any]] = {
    "stdout": {
        "class": StdoutSink,
        "description": "Raw payload bytes to stdout, for piping into a decoder",
    },
    "file": {
        "class": FileSink,
        "description": "Raw payload bytes appended to a file",
    },
}


def create_sink(audio_output: str) -> BaseAudioSink:
    """Build the sink selected by the AudioOutput setting ('-' or a file path)."""
    if not audio_output or audio_output == STDOUT_SELECTOR:
        return AUDIO_SINKS["stdout"]["class"]()
    return AUDIO_SINKS["file"]["class"](audio_output)


def describe_sink(audio_output: str) -> str:
    if not audio_output or audio_output == STDOUT_SELECTOR:
        return AUDIO_SINKS["stdout"]["description"]
    return f"{AUDIO_SINKS['file']['description']} ({audio_output})"


__all__ = ["AUDIO_SINKS", "STDOUT_SELECTOR", "create_sink", "describe_sink"]
