import socket
import threading
import time

import pytest

from cachemaster.net_server import NetServer, event_modes
from cachemaster.poller import Event
from cachemaster.protocol import Req


def free_port():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class Recorder:
    def __init__(self):
        self.server = None
        self.keep_alive = []
        self.deleted = []
        self.got_keep_alive = threading.Event()
        self.got_delete = threading.Event()

    def cache_server_keep_alive(self, addr):
        self.keep_alive.append(addr)
        self.got_keep_alive.set()

    def client_get_distribution(self, addr):
        with self.server.lock:
            conns = [c for c in self.server.users.values() if c.addr == addr]
        for conn in conns:
            conn.send("hello")

    def delete_one_machine(self, addr):
        self.deleted.append(addr)
        self.got_delete.set()


def _serve(timeout_ms):
    recorder = Recorder()
    port = free_port()
    server = NetServer(port, 3, timeout_ms, False, 1, "127.0.0.1", recorder)
    recorder.server = server
    thread = threading.Thread(target=server.start, daemon=True)
    thread.start()
    return server, recorder, thread, port


@pytest.fixture
def running():
    server, recorder, thread, port = _serve(10000)
    yield server, recorder, port
    server.stop()
    thread.join(5)


def _connect(port):
    client = socket.create_connection(("127.0.0.1", port), timeout=5)
    client.settimeout(5)
    return client


@pytest.mark.parametrize(
    "mode, listen, conn",
    [
        (0, Event.RDHUP, Event.ONESHOT | Event.RDHUP),
        (1, Event.RDHUP, Event.ONESHOT | Event.RDHUP | Event.ET),
        (2, Event.RDHUP | Event.ET, Event.ONESHOT | Event.RDHUP),
        (3, Event.RDHUP | Event.ET, Event.ONESHOT | Event.RDHUP | Event.ET),
        (9, Event.RDHUP | Event.ET, Event.ONESHOT | Event.RDHUP | Event.ET),
    ],
)
def test_event_modes(mode, listen, conn):
    assert event_modes(mode) == (listen, conn)


@pytest.mark.parametrize("port", [80, 1023, 70000])
def test_port_out_of_range_is_rejected(port):
    with pytest.raises(ValueError):
        NetServer(port, 3, 2000, False, 1, "127.0.0.1")


def test_address(running):
    server, _, port = running
    assert server.address() == ("127.0.0.1", port)


def test_keep_alive_reaches_handler(running):
    _, recorder, port = running
    with _connect(port) as client:
        client.sendall(Req(0, 0).to_json().encode())
        assert recorder.got_keep_alive.wait(5)
        assert recorder.keep_alive == [client.getsockname()[:2]]


def test_distribution_reply_is_sent(running):
    _, _, port = running
    with _connect(port) as client:
        client.sendall(Req(1, 0).to_json().encode())
        assert client.recv(1024) == b"hello"


def test_client_close_removes_connection(running):
    server, recorder, port = running
    client = _connect(port)
    addr = client.getsockname()[:2]
    client.sendall(Req(0, 0).to_json().encode())
    assert recorder.got_keep_alive.wait(5)
    client.close()
    assert recorder.got_delete.wait(5)
    assert recorder.deleted == [addr]
    with server.lock:
        assert server.users == {}


def test_idle_connection_times_out():
    server, recorder, thread, port = _serve(200)
    try:
        with _connect(port) as client:
            addr = client.getsockname()[:2]
            assert client.recv(1024) == b""
            assert recorder.got_delete.wait(5)
            assert recorder.deleted == [addr]
    finally:
        server.stop()
        thread.join(5)


def test_run_once_accepts_without_start():
    port = free_port()
    server = NetServer(port, 3, 10000, False, 1, "127.0.0.1")
    try:
        with _connect(port):
            deadline = time.monotonic() + 5
            while not server.users and time.monotonic() < deadline:
                server.run_once(200)
            assert len(server.users) == 1
    finally:
        server.stop()