import threading
import time

import pytest

from cachemaster.safe_queue import BoundedQueue, LinkedQueue


def test_bounded_fifo_order_and_size():
    q = BoundedQueue(50)
    for i in range(1, 11):
        q.push(i)
    assert len(q) == 10
    assert [q.pop() for _ in range(10)] == list(range(1, 11))
    assert len(q) == 0


def test_bounded_holds_exactly_capacity():
    q = BoundedQueue(3)
    for i in range(3):
        q.push(i)
    assert len(q) == 3

    done = threading.Event()

    def producer():
        q.push(99)
        done.set()

    t = threading.Thread(target=producer)
    t.start()
    assert not done.wait(0.1)
    assert q.pop() == 0
    assert done.wait(2)
    t.join(2)
    assert [q.pop() for _ in range(3)] == [1, 2, 99]


def test_bounded_pop_blocks_until_push():
    q = BoundedQueue(5)
    result = []
    t = threading.Thread(target=lambda: result.append(q.pop()))
    t.start()
    time.sleep(0.05)
    assert result == []
    assert len(q) == 0
    q.push(5)
    t.join(2)
    assert result == [5]
    assert len(q) == 0
    q.push(6)
    assert q.pop() == 6


def test_bounded_many_producers_and_consumers():
    q = BoundedQueue(50)
    received = []
    lock = threading.Lock()
    per_producer = 100
    producers = 10

    def produce():
        for i in range(1, per_producer + 1):
            q.push(i)

    def consume(n):
        for _ in range(n):
            value = q.pop()
            with lock:
                received.append(value)

    consumers = [threading.Thread(target=consume, args=(per_producer,)) for _ in range(producers)]
    makers = [threading.Thread(target=produce) for _ in range(producers)]
    for t in consumers + makers:
        t.start()
    for t in consumers + makers:
        t.join(10)
    assert len(received) == producers * per_producer
    assert sorted(received) == sorted(list(range(1, per_producer + 1)) * producers)
    assert len(q) == 0


def test_bounded_invalid_capacity():
    with pytest.raises(ValueError):
        BoundedQueue(0)


def test_linked_queue_try_pop():
    q = LinkedQueue()
    assert q.empty()
    assert q.try_pop() is None
    q.push("a")
    q.push("b")
    assert not q.empty()
    assert q.try_pop() == "a"
    assert q.try_pop() == "b"
    assert q.empty()


def test_linked_queue_wait_and_pop():
    q = LinkedQueue()
    result = []
    t = threading.Thread(target=lambda: result.append(q.wait_and_pop()))
    t.start()
    time.sleep(0.05)
    assert result == []
    q.push(7)
    t.join(2)
    assert result == [7]
    assert q.empty()