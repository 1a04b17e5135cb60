# relay_interface.py

"""
REWIND-LISTENER relay interface contract: error tiers and the audio sink

This module defines the exceptions the session engine raises and the minimal
interface an audio sink must implement. Every failure the client can meet falls
into exactly one of two tiers:

1) RECOVERABLE  (frame dropped, session continues)
   --------------------------------------------------------------
   What it is:
     A datagram that cannot be turned into a valid frame:
       • shorter than the fixed 18 byte header
       • missing the 'REWIND01' signature
       • declaring a payload longer than the bytes that actually arrived
     Decoding raises FormatError (a RecoverableError).

   How it's used:
     The engine logs one line, counts the drop and keeps going. A dropped
     frame does NOT refresh the session timeout clock.

2) FATAL  (process exits non-zero)
   --------------------------------------------------------------
   What it is:
       • TransportError  socket connect/read/write failure
       • SessionTimeout  no valid frame within ServerTimeoutSeconds
       • ServerClosed    the server sent a Close frame
       • SinkError       the audio consumer went away (broken pipe, disk full)

   How it's used:
     The engine raises, it never exits the process itself. main.py logs a
     '[FATAL]' line, closes the transport and exits with status 1. There is
     no reconnect; restarting is left to the operator or a supervisor.

Audio sink contract
-------------------
• write(payload)  called once per DMR audio frame, in receipt order, with the
                  payload bytes exactly as received. No framing is added.
• flush()         push buffered bytes downstream.
• close()         release the underlying stream; must be idempotent.
• write() raises SinkError on any I/O failure.

Developer checklist for new sinks
---------------------------------
[ ] Implement write(), flush(), close()
[ ] Wrap OSError from the stream into SinkError
[ ] Never reorder or merge payloads
[ ] Register the sink in sink_registry.AUDIO_SINKS
"""

from abc import ABC, abstractmethod


class RelayError(Exception):
    """Generic relay client error (superclass for all session errors)."""
    pass


class RecoverableError(RelayError):
    """The current frame is dropped; the session carries on."""
    pass


class FormatError(RecoverableError):
    """Raised when a datagram does not decode into a well-formed frame."""
    pass


class FatalError(RelayError):
    """The session cannot continue; the driver must exit the process."""
    pass


class TransportError(FatalError):
    """Socket connect, read or write failure."""
    pass


class SessionTimeout(FatalError):
    """No valid frame received within the configured timeout."""
    pass


class ServerClosed(FatalError):
    """The relay server requested the session to be closed."""
    pass


class SinkError(FatalError):
    """Audio payload could not be delivered to the output stream."""
    pass


class BaseAudioSink(ABC):
    @abstractmethod
    def write(self, payload: bytes) -> None:
        """Deliver one audio frame payload, verbatim."""
    ...

    @abstractmethod
    def close(self) -> None: ...

    def flush(self) -> None:
        """Optional; sinks without buffering can keep the no-op."""
        pass
