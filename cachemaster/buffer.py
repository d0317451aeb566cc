"""Growable byte buffer with separate read and write positions."""

from __future__ import annotations

import socket
from typing import Union

BytesLike = Union[bytes, bytearray, memoryview, str, "Buffer"]

# Size of the spill-over area used when reading from a socket.
_EXTRA_READ = 65536


class Buffer:
    """A byte buffer that is appended at the write position and consumed at the read position."""

    def __init__(self, initial_size: int = 1024) -> None:
        if initial_size < 0:
            raise ValueError("initial_size must not be negative")
        self._buf = bytearray(initial_size)
        self._read = 0
        self._write = 0

    def readable_bytes(self) -> int:
        """Number of bytes waiting to be read."""
        return self._write - self._read

    def writable_bytes(self) -> int:
        """Number of bytes that can be written without growing or compacting."""
        return len(self._buf) - self._write

    def prependable_bytes(self) -> int:
        """Number of bytes already consumed in front of the read position."""
        return self._read

    def peek(self) -> bytes:
        """Return the readable bytes without consuming them."""
        return bytes(self._buf[self._read:self._write])

    def retrieve(self, length: int) -> None:
        """Consume ``length`` readable bytes."""
        if length < 0 or length > self.readable_bytes():
            raise ValueError(
                f"cannot retrieve {length} bytes, {self.readable_bytes()} readable"
            )
        self._read += length

    def retrieve_all(self) -> None:
        """Discard everything and reset both positions."""
        self._buf[:] = bytes(len(self._buf))
        self._read = 0
        self._write = 0

    def retrieve_all_as_str(self) -> str:
        """Consume all readable bytes and return them decoded as UTF-8."""
        text = self.peek().decode("utf-8", errors="replace")
        self.retrieve_all()
        return text

    def _make_space(self, length: int) -> None:
        if self.writable_bytes() + self.prependable_bytes() < length:
            self._buf.extend(bytes(self._write + length + 1 - len(self._buf)))
        else:
            readable = self.readable_bytes()
            self._buf[0:readable] = self._buf[self._read:self._write]
            self._read = 0
            self._write = readable

    def ensure_writable(self, length: int) -> None:
        """Make sure at least ``length`` bytes can be written."""
        if self.writable_bytes() < length:
            self._make_space(length)

    def append(self, data: BytesLike) -> None:
        """Append bytes, text (UTF-8) or the readable part of another buffer."""
        if isinstance(data, Buffer):
            chunk = data.peek()
        elif isinstance(data, str):
            chunk = data.encode("utf-8")
        elif isinstance(data, (bytes, bytearray, memoryview)):
            chunk = bytes(data)
        else:
            raise TypeError(f"cannot append {type(data).__name__}")
        self.ensure_writable(len(chunk))
        self._buf[self._write:self._write + len(chunk)] = chunk
        self._write += len(chunk)

    def read_from(self, sock: socket.socket) -> int:
        """Receive from ``sock`` into the buffer; return the byte count (0 at end of stream)."""
        data = sock.recv(self.writable_bytes() + _EXTRA_READ)
        if data:
            self.append(data)
        return len(data)

    def write_to(self, sock: socket.socket) -> int:
        """Send readable bytes to ``sock`` and consume what was sent."""
        sent = sock.send(self.peek())
        self.retrieve(sent)
        return sent

    def __len__(self) -> int:
        return self.readable_bytes()

    def __repr__(self) -> str:
        return (
            f"Buffer(readable={self.readable_bytes()}, "
            f"writable={self.writable_bytes()}, "
            f"prependable={self.prependable_bytes()})"
        )