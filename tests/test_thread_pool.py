import threading
import time

import pytest

from cachemaster.thread_pool import Task, ThreadPool


def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_print_tasks_all_run():
    seen = []
    lock = threading.Lock()
    done = threading.Event()

    def record(arg):
        with lock:
            seen.append(arg)
            if len(seen) == 5:
                done.set()

    with ThreadPool(3, 6) as pool:
        for i in range(5):
            assert pool.add_task(Task(record, i)) is True
        assert done.wait(5)
    assert sorted(seen) == [0, 1, 2, 3, 4]


def test_task_calls_function_with_arg():
    assert Task(lambda x: x + 1, 41)() == 42


def test_empty_task_raises():
    with pytest.raises(ValueError):
        Task()()


def test_invalid_sizes():
    with pytest.raises(ValueError):
        ThreadPool(0, 2)
    with pytest.raises(ValueError):
        ThreadPool(3, 2)


def test_busy_and_alive_counts():
    release = threading.Event()
    started = threading.Event()

    def block(_):
        started.set()
        release.wait(5)

    pool = ThreadPool(2, 2, manage_interval=0.05)
    try:
        assert pool.alive_count() == 2
        pool.add_task(Task(block, None))
        assert started.wait(5)
        assert _wait_until(lambda: pool.busy_count() == 1)
        release.set()
        assert _wait_until(lambda: pool.busy_count() == 0)
    finally:
        release.set()
        pool.shutdown()
    assert pool.alive_count() == 0


def test_grows_and_shrinks():
    release = threading.Event()
    pool = ThreadPool(1, 3, manage_interval=0.02)
    try:
        for _ in range(5):
            pool.add_task(Task(lambda _: release.wait(5), None))
        assert _wait_until(lambda: pool.alive_count() == 3)
        assert pool.alive_count() <= 3
        release.set()
        assert _wait_until(lambda: pool.busy_count() == 0)
        assert _wait_until(lambda: pool.alive_count() == 1)
    finally:
        release.set()
        pool.shutdown()


def test_failing_task_does_not_kill_worker():
    done = threading.Event()

    def boom(_):
        raise RuntimeError("boom")

    with ThreadPool(1, 1) as pool:
        pool.add_task(Task(boom, None))
        pool.add_task(Task(lambda _: done.set(), None))
        assert done.wait(5)
        assert pool.alive_count() == 1


def test_add_after_shutdown_rejected():
    pool = ThreadPool(1, 1)
    pool.shutdown()
    assert pool.add_task(Task(lambda _: None, None)) is False