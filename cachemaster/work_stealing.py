"""Thread pool where idle workers steal tasks from each other's queues."""

from __future__ import annotations

import threading
import time
from collections import deque
from concurrent.futures import Future
from typing import Any, Callable, Deque, Optional

_IDLE_PAUSE = 0.0005


class _Job:
    """A callable bound to the future that receives its outcome."""

    def __init__(self, fn: Callable[[], Any]) -> None:
        self.fn = fn
        self.future: Future = Future()

    def __call__(self) -> None:
        if not self.future.set_running_or_notify_cancel():
            return
        try:
            result = self.fn()
        except BaseException as exc:
            self.future.set_exception(exc)
        else:
            self.future.set_result(result)


class WorkStealingQueue:
    """Deque whose owner takes from the front while thieves take from the back."""

    def __init__(self) -> None:
        self._items: Deque[Callable[[], Any]] = deque()
        self._lock = threading.Lock()

    def push(self, task: Callable[[], Any]) -> None:
        with self._lock:
            self._items.appendleft(task)

    def empty(self) -> bool:
        with self._lock:
            return not self._items

    def try_pop(self) -> Optional[Callable[[], Any]]:
        """Take the most recently pushed task, or None."""
        with self._lock:
            return self._items.popleft() if self._items else None

    def try_steal(self) -> Optional[Callable[[], Any]]:
        """Take the oldest task, or None."""
        with self._lock:
            return self._items.pop() if self._items else None


class WorkStealingPool:
    """Fixed set of workers, one queue each; tasks are dealt out round robin."""

    def __init__(self, thread_count: int = 6) -> None:
        if thread_count < 1:
            raise ValueError("thread_count must be at least 1")
        self._done = threading.Event()
        self._queues = [WorkStealingQueue() for _ in range(thread_count)]
        self._local = threading.local()
        self._task_count = 0
        self._count_lock = threading.Lock()
        self._threads = [
            threading.Thread(target=self._worker, args=(i,), daemon=True)
            for i in range(thread_count)
        ]
        for thread in self._threads:
            thread.start()

    def submit(self, fn: Callable[[], Any]) -> Future:
        """Schedule ``fn`` and return a future for its result."""
        if self._done.is_set():
            raise RuntimeError("pool is shut down")
        job = _Job(fn)
        with self._count_lock:
            self._task_count += 1
            index = self._task_count % len(self._queues)
        self._queues[index].push(job)
        return job.future

    def run_pending_task(self) -> bool:
        """Run one task from the local queue or a stolen one; False if none was found."""
        task = self._pop_local() or self._steal()
        if task is None:
            time.sleep(_IDLE_PAUSE)
            return False
        task()
        return True

    def shutdown(self) -> None:
        """Stop the workers and cancel tasks that never started."""
        self._done.set()
        current = threading.current_thread()
        for thread in self._threads:
            if thread is not current:
                thread.join()
        for queue in self._queues:
            while (job := queue.try_pop()) is not None:
                job.future.cancel()

    def __enter__(self) -> "WorkStealingPool":
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    def _worker(self, index: int) -> None:
        self._local.index = index
        while not self._done.is_set():
            self.run_pending_task()

    def _pop_local(self) -> Optional[Callable[[], Any]]:
        index = getattr(self._local, "index", None)
        if index is None:
            return None
        return self._queues[index].try_pop()

    def _steal(self) -> Optional[Callable[[], Any]]:
        mine = getattr(self._local, "index", 0)
        count = len(self._queues)
        for offset in range(count):
            task = self._queues[(mine + offset + 1) % count].try_steal()
            if task is not None:
                return task
        return None