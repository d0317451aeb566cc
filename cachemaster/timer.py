"""Min-heap of timers keyed by id, with millisecond timeouts."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

TimeoutCallback = Callable[[], None]


@dataclass
class _TimerNode:
    timer_id: int
    expire: float
    callback: TimeoutCallback


class TimerManager:
    """Timers that fire callbacks once their timeout has elapsed."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._heap: list[_TimerNode] = []
        self._index: dict[int, int] = {}

    def _deadline(self, timeout_ms: int) -> float:
        return self._clock() + timeout_ms / 1000.0

    def add_timer(self, timer_id: int, timeout_ms: int, callback: TimeoutCallback) -> None:
        """Add a timer, or reset the deadline and callback of an existing one."""
        if timer_id < 0:
            raise ValueError("timer_id must not be negative")
        if timer_id in self._index:
            i = self._index[timer_id]
            self._heap[i].expire = self._deadline(timeout_ms)
            self._heap[i].callback = callback
            self._resift(i)
        else:
            i = len(self._heap)
            self._index[timer_id] = i
            self._heap.append(_TimerNode(timer_id, self._deadline(timeout_ms), callback))
            self._sift_up(i)

    def _remaining_ms(self, node: _TimerNode) -> int:
        return int((node.expire - self._clock()) * 1000)

    def handle_expired(self) -> None:
        """Fire and remove every timer whose deadline has passed."""
        while self._heap:
            node = self._heap[0]
            if self._remaining_ms(node) > 0:
                break
            node.callback()
            if self._index.get(node.timer_id) is not None and self._heap[
                self._index[node.timer_id]
            ] is node:
                self._delete(self._index[node.timer_id])

    def next_timeout(self) -> int:
        """Fire expired timers, then return milliseconds to the next deadline, or -1."""
        self.handle_expired()
        if not self._heap:
            return -1
        return max(0, self._remaining_ms(self._heap[0]))

    def update(self, timer_id: int, timeout_ms: int) -> None:
        """Move the deadline of an existing timer."""
        if timer_id not in self._index:
            raise KeyError(timer_id)
        i = self._index[timer_id]
        self._heap[i].expire = self._deadline(timeout_ms)
        self._resift(i)

    def work(self, timer_id: int) -> None:
        """Fire a timer immediately and remove it; unknown ids are ignored."""
        if timer_id not in self._index:
            return
        node = self._heap[self._index[timer_id]]
        node.callback()
        if self._index.get(timer_id) is not None and self._heap[self._index[timer_id]] is node:
            self._delete(self._index[timer_id])

    def pop(self) -> None:
        """Remove the earliest timer without firing it."""
        if not self._heap:
            raise IndexError("pop from empty timer heap")
        self._delete(0)

    def clear(self) -> None:
        self._heap.clear()
        self._index.clear()

    def __len__(self) -> int:
        return len(self._heap)

    def __contains__(self, timer_id: object) -> bool:
        return timer_id in self._index

    def _delete(self, i: int) -> None:
        last = len(self._heap) - 1
        if i < last:
            self._swap(i, last)
        node = self._heap.pop()
        del self._index[node.timer_id]
        if i < last:
            self._resift(i)

    def _resift(self, i: int) -> None:
        if not self._sift_down(i):
            self._sift_up(i)

    def _sift_up(self, i: int) -> None:
        while i > 0:
            parent = (i - 1) // 2
            if self._heap[parent].expire <= self._heap[i].expire:
                break
            self._swap(i, parent)
            i = parent

    def _sift_down(self, index: int) -> bool:
        n = len(self._heap)
        i = index
        child = 2 * i + 1
        while child < n:
            if child + 1 < n and self._heap[child + 1].expire < self._heap[child].expire:
                child += 1
            if self._heap[i].expire < self._heap[child].expire:
                break
            self._swap(i, child)
            i = child
            child = 2 * i + 1
        return i > index

    def _swap(self, i: int, j: int) -> None:
        heap = self._heap
        heap[i], heap[j] = heap[j], heap[i]
        self._index[heap[i].timer_id] = i
        self._index[heap[j].timer_id] = j