"""One client connection: its socket, read and write buffers, and request handling."""

from __future__ import annotations

import logging
import socket
import threading
from typing import ClassVar, Tuple

from .buffer import Buffer
from .protocol import ProtocolError, Request, RequestHandler, make_response

_log = logging.getLogger(__name__)

Address = Tuple[str, int]

# Keep writing in one call while more than this many bytes are pending.
_LARGE_PENDING = 10240


class ConnectionClosed(ConnectionError):
    """Raised when the peer has closed its end of the connection."""


class Connection:
    """A connected socket with buffered reads and writes."""

    user_count: ClassVar[int] = 0
    _count_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, sock: socket.socket, addr: Address, edge_triggered: bool = False) -> None:
        if sock.fileno() < 0:
            raise ValueError("socket is closed")
        self._sock = sock
        self.addr = addr
        self.edge_triggered = edge_triggered
        self._read_buf = Buffer()
        self._write_buf = Buffer()
        self._needs_send = False
        self.closed = False
        with Connection._count_lock:
            Connection.user_count += 1

    def ip(self) -> str:
        return self.addr[0]

    def port(self) -> int:
        return self.addr[1]

    def fd(self) -> int:
        """The socket's descriptor, or -1 once closed."""
        return self._sock.fileno()

    def read(self) -> int:
        """Read available data into the read buffer and return the byte count.

        In edge-triggered mode reading continues until the socket would block,
        so the socket must be non-blocking. Raises ConnectionClosed at end of stream.
        """
        total = 0
        while True:
            try:
                count = self._read_buf.read_from(self._sock)
            except BlockingIOError:
                return total
            if count == 0:
                raise ConnectionClosed(f"{self.ip()}:{self.port()} closed the connection")
            total += count
            if not self.edge_triggered:
                return total

    def write(self) -> int:
        """Send pending output and return the byte count sent."""
        total = 0
        while self._write_buf.readable_bytes():
            try:
                sent = self._write_buf.write_to(self._sock)
            except BlockingIOError:
                break
            total += sent
            if sent == 0:
                break
            if not (self.edge_triggered or self.pending_bytes() > _LARGE_PENDING):
                break
        if not self._write_buf.readable_bytes():
            self._write_buf.retrieve_all()
        return total

    def close(self) -> None:
        """Close the socket; later calls do nothing."""
        if self.closed:
            return
        self.closed = True
        with Connection._count_lock:
            Connection.user_count -= 1
        self._sock.close()

    def handle(self, handler: RequestHandler) -> bool:
        """Process buffered input; True if a response is now waiting to be sent."""
        self._needs_send = False
        if self._read_buf.readable_bytes() == 0:
            return False
        try:
            accepted = Request(handler).parse(self._read_buf, self.addr)
        except ProtocolError as exc:
            _log.warning("bad request from %s:%s: %s", self.ip(), self.port(), exc)
            return False
        if not accepted:
            _log.warning("unhandled request from %s:%s", self.ip(), self.port())
            return False
        return self._needs_send

    def send(self, msg: str) -> None:
        """Queue ``msg`` for sending."""
        self._needs_send = True
        make_response(self._write_buf, msg)

    def pending_bytes(self) -> int:
        """Bytes queued but not yet sent."""
        return self._write_buf.readable_bytes()

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Connection({self.ip()}:{self.port()}, fd={self.fd()})"