import socket
import threading
import queue
from typing import Optional, Union

from loghandler import get_logger
from relay_interface import TransportError
from utils import hexdump

DEFAULT_RECV_SIZE = 128


class ReceiverFailed:
    """Queue marker published by the listener when a read fails."""

    __slots__ = ("error",)

    def __init__(self, error: BaseException):
        self.error = error

    def __repr__(self) -> str:
        return f"ReceiverFailed({self.error!r})"


Inbound = Union[bytes, ReceiverFailed]


class UdpTransport:
    """
    Connected UDP transport for the Rewind relay protocol.

    Responsibilities:
      - Resolve the server and open a connected datagram socket.
      - Background listener that reads one datagram at a time and publishes
        the raw bytes on a bounded queue, in receipt order.
      - Raw send for frames built by the sender.

    This class does not look at the bytes it moves; signature checks and
    decoding belong to the session engine. On a read error the listener
    publishes a ReceiverFailed marker and stops; it never exits the process.
    """

    def __init__(
        self,
        host: str,
        port: int,
        *,
        recv_size: int = DEFAULT_RECV_SIZE,
        recv_timeout: float = 0.5,
        queue_size: int = 256,
        debug: bool = False,
    ):
        self.host = host
        self.port = int(port)
        self.recv_size = int(recv_size)
        self.recv_timeout = float(recv_timeout)
        self.debug = debug

        self._logger = get_logger()
        self._sock: Optional[socket.socket] = None
        self._sock_lock = threading.Lock()
        self._connected = False

        self.inbound: "queue.Queue[Inbound]" = queue.Queue(maxsize=queue_size)

        self._listener: Optional[threading.Thread] = None
        self._stop_evt = threading.Event()

        self.datagrams_received = 0
        self.datagrams_sent = 0

    # ---------- Public properties ----------

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def local_address(self):
        s = self._sock
        return s.getsockname() if s else None

    # ---------- Socket setup ----------

    def connect(self):
        """Resolve the server, open the socket, start the listener thread."""
        try:
            infos = socket.getaddrinfo(self.host, self.port, type=socket.SOCK_DGRAM)
        except socket.gaierror as e:
            self._logger.error(f"[NET] Cannot resolve {self.host}:{self.port}: {e}")
            raise TransportError(f"Cannot resolve {self.host}:{self.port}: {e}") from e

        family, socktype, proto, _, addr = infos[0]
        s = socket.socket(family, socktype, proto)
        try:
            s.connect(addr)
        except OSError as e:
            s.close()
            self._logger.error(f"[NET] Connect error to {self.host}:{self.port}: {e}")
            raise TransportError(f"Connect error to {self.host}:{self.port}: {e}") from e

        # Short read timeout so the listener notices the stop event.
        s.settimeout(self.recv_timeout)
        with self._sock_lock:
            self._sock = s
        self._connected = True
        self._logger.info(f"[NET] UDP socket {s.getsockname()} -> {addr}")

        self._stop_evt.clear()
        self._listener = threading.Thread(target=self._listener_loop, name="rewind-receiver", daemon=True)
        self._listener.start()

    def disconnect(self):
        """Stop the listener and close the socket."""
        self._stop_evt.set()
        if self._listener and self._listener.is_alive() and self._listener is not threading.current_thread():
            self._listener.join(timeout=1.0)

        with self._sock_lock:
            try:
                if self._sock:
                    self._sock.close()
            finally:
                self._sock = None
                self._connected = False

    close = disconnect

    # ---------- Datagram I/O ----------

    def _listener_loop(self):
        """Read datagrams and publish them on the inbound queue."""
        while not self._stop_evt.is_set():
            s = self._sock
            if s is None:
                break
            try:
                data = s.recv(self.recv_size)
            except socket.timeout:
                continue
            except OSError as e:
                if self._stop_evt.is_set():
                    break
                self._logger.error(f"[NET] Receive failed: {e}")
                self._publish(ReceiverFailed(e))
                break

            self.datagrams_received += 1
            if self.debug:
                self._logger.debug(f"[RECV] {len(data)} bytes {hexdump(data)}")
            self._publish(data)

    def _publish(self, item: Inbound):
        # Blocks when the engine falls behind; ordering matters more than the
        # listener's latency. Wakes up periodically to honour the stop event.
        while not self._stop_evt.is_set():
            try:
                self.inbound.put(item, timeout=self.recv_timeout)
                return
            except queue.Full:
                continue

    def send(self, datagram: bytes):
        """Send one datagram. Raises TransportError; no retry."""
        try:
            with self._sock_lock:
                s = self._sock
                if not s:
                    raise TransportError("Socket is closed")
                if self.debug:
                    self._logger.debug(f"[SEND] {len(datagram)} bytes {hexdump(datagram)}")
                s.send(datagram)
        except OSError as e:
            self._logger.error(f"[NET] Send failed: {e}")
            raise TransportError(f"Send failed: {e}") from e
        self.datagrams_sent += 1
