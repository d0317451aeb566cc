"""Thread-safe queues: a bounded blocking queue and an unbounded one."""

from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Generic, Optional, TypeVar

T = TypeVar("T")


class BoundedQueue(Generic[T]):
    """Fixed-capacity FIFO; push blocks while full and pop blocks while empty."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._items: Deque[T] = deque()
        self._lock = threading.Lock()
        self._not_full = threading.Condition(self._lock)
        self._not_empty = threading.Condition(self._lock)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def push(self, item: T) -> None:
        """Append ``item``, waiting for room if the queue is full."""
        with self._not_full:
            while len(self._items) >= self.capacity:
                self._not_full.wait()
            self._items.append(item)
            self._not_empty.notify()

    def pop(self) -> T:
        """Remove and return the oldest item, waiting if the queue is empty."""
        with self._not_empty:
            while not self._items:
                self._not_empty.wait()
            item = self._items.popleft()
            self._not_full.notify()
            return item


class LinkedQueue(Generic[T]):
    """Unbounded FIFO with non-blocking and blocking pops."""

    def __init__(self) -> None:
        self._items: Deque[T] = deque()
        self._cond = threading.Condition()

    def push(self, value: T) -> None:
        """Append ``value`` and wake one waiter."""
        with self._cond:
            self._items.append(value)
            self._cond.notify()

    def try_pop(self) -> Optional[T]:
        """Return the oldest value, or None when the queue is empty."""
        with self._cond:
            return self._items.popleft() if self._items else None

    def wait_and_pop(self) -> T:
        """Return the oldest value, waiting until one is available."""
        with self._cond:
            self._cond.wait_for(lambda: bool(self._items))
            return self._items.popleft()

    def empty(self) -> bool:
        with self._cond:
            return not self._items