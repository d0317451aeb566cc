"""Readiness polling over file descriptors, with epoll-style event flags."""

from __future__ import annotations

import enum
import select
import selectors
import time
from typing import Any, Dict, List, Tuple, Union

FileLike = Union[int, Any]


class Event(enum.IntFlag):
    """Event bits, numerically equal to the epoll flags."""

    IN = 0x001
    OUT = 0x004
    ERR = 0x008
    HUP = 0x010
    RDHUP = 0x2000
    ONESHOT = 1 << 30
    ET = 1 << 31


def _fileno(fileobj: FileLike) -> int:
    fd = fileobj if isinstance(fileobj, int) else fileobj.fileno()
    if fd < 0:
        raise ValueError(f"invalid file descriptor {fd}")
    return fd


class Poller:
    """Watches descriptors for readiness; uses epoll where the system has it."""

    def __init__(self, max_events: int = 1024) -> None:
        if max_events < 1:
            raise ValueError("max_events must be at least 1")
        self.max_events = max_events
        self._epoll = select.epoll() if hasattr(select, "epoll") else None
        self._selector = None if self._epoll else selectors.DefaultSelector()
        self._interest: Dict[int, int] = {}
        self._armed: Dict[int, bool] = {}

    def add(self, fileobj: FileLike, events: int) -> None:
        """Start watching ``fileobj`` for ``events``."""
        fd = _fileno(fileobj)
        if self._epoll is not None:
            self._epoll.register(fd, int(events))
            return
        if fd in self._interest:
            raise FileExistsError(f"descriptor {fd} already registered")
        self._interest[fd] = int(events)
        self._armed[fd] = True
        self._sync(fd)

    def modify(self, fileobj: FileLike, events: int) -> None:
        """Change the events watched for ``fileobj`` (re-arms one-shot descriptors)."""
        fd = _fileno(fileobj)
        if self._epoll is not None:
            self._epoll.modify(fd, int(events))
            return
        if fd not in self._interest:
            raise FileNotFoundError(f"descriptor {fd} not registered")
        self._interest[fd] = int(events)
        self._armed[fd] = True
        self._sync(fd)

    def remove(self, fileobj: FileLike) -> None:
        """Stop watching ``fileobj``."""
        fd = _fileno(fileobj)
        if self._epoll is not None:
            self._epoll.unregister(fd)
            return
        if fd not in self._interest:
            raise FileNotFoundError(f"descriptor {fd} not registered")
        del self._interest[fd]
        del self._armed[fd]
        if fd in self._selector.get_map():
            self._selector.unregister(fd)

    def wait(self, timeout_ms: int = -1) -> List[Tuple[int, Event]]:
        """Wait for readiness; a negative timeout waits indefinitely."""
        if self._epoll is not None:
            timeout = -1 if timeout_ms < 0 else timeout_ms / 1000.0
            return [
                (fd, Event(mask))
                for fd, mask in self._epoll.poll(timeout, self.max_events)
            ]
        return self._select_wait(timeout_ms)

    def close(self) -> None:
        """Release the underlying poll object."""
        if self._epoll is not None:
            self._epoll.close()
        else:
            self._selector.close()
            self._interest.clear()
            self._armed.clear()

    def __enter__(self) -> "Poller":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _sync(self, fd: int) -> None:
        events = self._interest[fd] if self._armed[fd] else 0
        mask = 0
        if events & Event.IN:
            mask |= selectors.EVENT_READ
        if events & Event.OUT:
            mask |= selectors.EVENT_WRITE
        registered = fd in self._selector.get_map()
        if not mask:
            if registered:
                self._selector.unregister(fd)
        elif registered:
            self._selector.modify(fd, mask)
        else:
            self._selector.register(fd, mask)

    def _select_wait(self, timeout_ms: int) -> List[Tuple[int, Event]]:
        timeout = None if timeout_ms < 0 else timeout_ms / 1000.0
        if not self._selector.get_map():
            if timeout is not None:
                time.sleep(timeout)
            return []
        ready = []
        for key, mask in self._selector.select(timeout)[: self.max_events]:
            fd = key.fd
            events = Event(0)
            if mask & selectors.EVENT_READ:
                events |= Event.IN
            if mask & selectors.EVENT_WRITE:
                events |= Event.OUT
            ready.append((fd, events))
            if self._interest[fd] & Event.ONESHOT:
                self._armed[fd] = False
                self._sync(fd)
        return ready