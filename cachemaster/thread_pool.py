"""Thread pool that grows and shrinks between a minimum and a maximum size."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .safe_queue import BoundedQueue

_log = logging.getLogger(__name__)

# How many threads the manager adds or retires in one round.
_STEP = 2


@dataclass
class Task:
    """A callable together with the single argument it is called with."""

    function: Optional[Callable[[Any], Any]] = None
    arg: Any = None

    def __call__(self) -> Any:
        if self.function is None:
            raise ValueError("task has no function")
        return self.function(self.arg)


class ThreadPool:
    """Workers take tasks from a bounded queue; a manager thread resizes the pool."""

    def __init__(
        self,
        min_threads: int,
        max_threads: int,
        queue_capacity: int = 100,
        manage_interval: float = 5.0,
    ) -> None:
        if min_threads < 1:
            raise ValueError("min_threads must be at least 1")
        if max_threads < min_threads:
            raise ValueError("max_threads must not be less than min_threads")
        self.min_threads = min_threads
        self.max_threads = max_threads
        self._manage_interval = manage_interval
        self._queue: BoundedQueue[Task] = BoundedQueue(queue_capacity)
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._busy = 0
        self._alive = 0
        self._exit_count = 0
        self._stopping = threading.Event()
        self._threads: set[threading.Thread] = set()
        with self._lock:
            for _ in range(min_threads):
                self._spawn_worker()
        self._manager = threading.Thread(
            target=self._manage, name="pool-manager", daemon=True
        )
        self._manager.start()

    def add_task(self, task: Task) -> bool:
        """Queue ``task``; returns False once the pool is shutting down."""
        if self._stopping.is_set():
            return False
        self._queue.push(task)
        with self._not_empty:
            self._not_empty.notify()
        return True

    def busy_count(self) -> int:
        """Number of workers currently running a task."""
        with self._lock:
            return self._busy

    def alive_count(self) -> int:
        """Number of live worker threads."""
        with self._lock:
            return self._alive

    def shutdown(self) -> None:
        """Stop the manager and all workers; queued tasks are dropped."""
        if self._stopping.is_set():
            return
        self._stopping.set()
        with self._not_empty:
            self._not_empty.notify_all()
        self._manager.join()
        with self._lock:
            workers = list(self._threads)
        current = threading.current_thread()
        for worker in workers:
            if worker is not current:
                worker.join()

    def __enter__(self) -> "ThreadPool":
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    def _spawn_worker(self) -> None:
        # Caller holds self._lock.
        worker = threading.Thread(target=self._work, name="pool-worker", daemon=True)
        self._threads.add(worker)
        self._alive += 1
        worker.start()

    def _retire(self) -> None:
        # Caller holds self._lock.
        self._alive -= 1
        self._threads.discard(threading.current_thread())

    def _work(self) -> None:
        while True:
            with self._not_empty:
                while len(self._queue) == 0 and not self._stopping.is_set():
                    self._not_empty.wait()
                    if self._exit_count > 0:
                        self._exit_count -= 1
                        if self._alive > self.min_threads:
                            self._retire()
                            return
                if self._stopping.is_set():
                    self._retire()
                    return
                task = self._queue.pop()
                self._busy += 1
            try:
                task()
            except Exception:
                _log.exception("task raised")
            finally:
                with self._lock:
                    self._busy -= 1

    def _manage(self) -> None:
        while not self._stopping.wait(self._manage_interval):
            with self._lock:
                queued = len(self._queue)
                alive = self._alive
                busy = self._busy
                if queued > alive and alive < self.max_threads:
                    for _ in range(_STEP):
                        if self._alive >= self.max_threads:
                            break
                        self._spawn_worker()
                if busy * 2 < alive and alive > self.min_threads:
                    self._exit_count = _STEP
                    self._not_empty.notify(_STEP)