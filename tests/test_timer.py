import pytest

from cachemaster.timer import TimerManager


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance_ms(self, ms):
        self.now += ms / 1000.0


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers(clock):
    return TimerManager(clock)


def test_empty_next_timeout_is_minus_one(timers):
    assert timers.next_timeout() == -1
    assert len(timers) == 0


def test_expired_fire_in_deadline_order(timers, clock):
    fired = []
    timers.add_timer(1, 300, lambda: fired.append(1))
    timers.add_timer(2, 100, lambda: fired.append(2))
    timers.add_timer(3, 200, lambda: fired.append(3))
    assert len(timers) == 3
    clock.advance_ms(250)
    timers.handle_expired()
    assert fired == [2, 3]
    assert 1 in timers
    assert 2 not in timers
    clock.advance_ms(100)
    timers.handle_expired()
    assert fired == [2, 3, 1]
    assert len(timers) == 0


def test_next_timeout_reports_earliest(timers, clock):
    timers.add_timer(5, 500, lambda: None)
    timers.add_timer(6, 200, lambda: None)
    assert timers.next_timeout() == 200
    clock.advance_ms(50)
    assert timers.next_timeout() == 150


def test_add_existing_resets_deadline_and_callback(timers, clock):
    fired = []
    timers.add_timer(1, 100, lambda: fired.append("old"))
    timers.add_timer(1, 400, lambda: fired.append("new"))
    assert len(timers) == 1
    clock.advance_ms(200)
    timers.handle_expired()
    assert fired == []
    clock.advance_ms(300)
    timers.handle_expired()
    assert fired == ["new"]


def test_update_extends_deadline(timers, clock):
    fired = []
    timers.add_timer(1, 100, lambda: fired.append(1))
    timers.add_timer(2, 200, lambda: fired.append(2))
    timers.update(1, 1000)
    clock.advance_ms(300)
    timers.handle_expired()
    assert fired == [2]
    assert 1 in timers


def test_update_shortens_deadline(timers, clock):
    fired = []
    timers.add_timer(1, 500, lambda: fired.append(1))
    timers.add_timer(2, 400, lambda: fired.append(2))
    timers.update(1, 100)
    clock.advance_ms(150)
    timers.handle_expired()
    assert fired == [1]


def test_update_unknown_raises(timers):
    with pytest.raises(KeyError):
        timers.update(42, 100)


def test_work_fires_immediately(timers):
    fired = []
    timers.add_timer(7, 10000, lambda: fired.append(7))
    timers.work(7)
    assert fired == [7]
    assert 7 not in timers
    timers.work(7)
    assert fired == [7]


def test_pop_removes_earliest_without_firing(timers):
    fired = []
    timers.add_timer(1, 200, lambda: fired.append(1))
    timers.add_timer(2, 100, lambda: fired.append(2))
    timers.pop()
    assert fired == []
    assert 2 not in timers
    assert 1 in timers


def test_pop_empty_raises(timers):
    with pytest.raises(IndexError):
        timers.pop()


def test_negative_id_rejected(timers):
    with pytest.raises(ValueError):
        timers.add_timer(-1, 100, lambda: None)


def test_clear(timers):
    timers.add_timer(1, 100, lambda: None)
    timers.add_timer(2, 100, lambda: None)
    timers.clear()
    assert len(timers) == 0
    assert timers.next_timeout() == -1


def test_heap_order_survives_many_operations(timers, clock):
    fired = []
    for i in range(20):
        timers.add_timer(i, (i * 37) % 50 + 1, lambda i=i: fired.append(i))
    for i in range(0, 20, 3):
        timers.work(i)
    fired.clear()
    clock.advance_ms(100)
    timers.handle_expired()
    expected = sorted(
        (i for i in range(20) if i % 3 != 0), key=lambda i: ((i * 37) % 50 + 1, i)
    )
    assert sorted(fired) == sorted(expected)
    assert len(timers) == 0