"""Event-driven TCP server that hands connection I/O to a thread pool."""

from __future__ import annotations

import logging
import socket
import struct
import threading
from typing import Any, Dict, Optional, Tuple

from .connection import Connection, ConnectionClosed
from .poller import Event, Poller
from .thread_pool import Task, ThreadPool
from .timer import TimerManager

_log = logging.getLogger(__name__)

MASTER_IP = "127.0.0.1"
MASTER_PORT = 7000
SLAVEMASTER_IP = "127.0.0.1"
SLAVEMASTER_PORT = 7001

MAX_FD = 65536
_LISTEN_BACKLOG = 6
# Longest single wait of the serving loop, so that stop() is noticed promptly.
_START_POLL_MS = 100

Address = Tuple[str, int]


def event_modes(trig_mode: int) -> Tuple[Event, Event]:
    """Return the (listen, connection) event flags for a trigger mode.

    0: level-triggered everywhere; 1: edge-triggered connections;
    2: edge-triggered listener; anything else: edge-triggered everywhere.
    """
    listen = Event.RDHUP
    conn = Event.ONESHOT | Event.RDHUP
    if trig_mode == 0:
        pass
    elif trig_mode == 1:
        conn |= Event.ET
    elif trig_mode == 2:
        listen |= Event.ET
    else:
        listen |= Event.ET
        conn |= Event.ET
    return listen, conn


class _IgnoreRequests:
    """Handler used until a real one is attached."""

    def cache_server_keep_alive(self, addr: Address) -> None:
        _log.debug("keep-alive from %s ignored", addr)

    def client_get_distribution(self, addr: Address) -> None:
        _log.debug("distribution request from %s ignored", addr)

    def delete_one_machine(self, addr: Address) -> None:
        return None


class NetServer:
    """Accepts TCP connections and processes their requests on a thread pool."""

    def __init__(
        self,
        port: int = MASTER_PORT,
        trig_mode: int = 3,
        timeout_ms: int = 2000,
        linger: bool = False,
        thread_num: int = 4,
        host: str = "",
        handler: Optional[Any] = None,
    ) -> None:
        if not 1024 <= port <= 65535:
            raise ValueError(f"port number {port} out of range 1024-65535")
        self.port = port
        self.timeout_ms = timeout_ms
        self.handler = handler if handler is not None else _IgnoreRequests()
        self.listen_events, self.connection_events = event_modes(trig_mode)
        self.edge_triggered = bool(self.connection_events & Event.ET)
        self.lock = threading.RLock()
        self.timer = TimerManager()
        self.users: Dict[int, Connection] = {}
        self._stop_event = threading.Event()
        self._running = False
        self._cleaned = False
        self._poller = Poller()
        try:
            self._listener = self._open_listener(host, linger)
        except BaseException:
            self._poller.close()
            raise
        self._pool = ThreadPool(thread_num, thread_num)

    def _open_listener(self, host: str, linger: bool) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            if linger:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 1))
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, self.port))
            sock.listen(_LISTEN_BACKLOG)
            sock.setblocking(False)
            self._poller.add(sock, self.listen_events | Event.IN)
        except BaseException:
            sock.close()
            raise
        return sock

    def address(self) -> Address:
        """The address the server listens on."""
        host, port = self._listener.getsockname()[:2]
        return host, port

    def start(self) -> None:
        """Serve until :meth:`stop` is called, then release everything."""
        if self._cleaned:
            raise RuntimeError("server is stopped")
        self._running = True
        _log.info("server listening on %s:%s", *self.address())
        try:
            while not self._stop_event.is_set():
                self.run_once(_START_POLL_MS)
        finally:
            self._running = False
            self._cleanup()

    def stop(self) -> None:
        """Ask the server to stop; releases resources at once if it is not serving."""
        self._stop_event.set()
        if not self._running:
            self._cleanup()

    def run_once(self, timeout_ms: int = -1) -> int:
        """Fire due timers, wait for events at most ``timeout_ms`` and dispatch them."""
        wait_ms = timeout_ms
        if self.timeout_ms > 0:
            with self.lock:
                next_ms = self.timer.next_timeout()
            if next_ms >= 0 and (wait_ms < 0 or next_ms < wait_ms):
                wait_ms = next_ms
        ready = self._poller.wait(wait_ms)
        for fd, events in ready:
            self._dispatch(fd, events)
        return len(ready)

    def close_connection(self, conn: Connection) -> None:
        """Forget ``conn``, tell the handler, and close its socket."""
        with self.lock:
            fd = conn.fd()
            if fd < 0 or self.users.get(fd) is not conn:
                return
            del self.users[fd]
            try:
                self._poller.remove(fd)
            except (OSError, ValueError):
                pass
        remove = getattr(self.handler, "delete_one_machine", None)
        if remove is not None:
            remove(conn.addr)
        conn.close()

    def __enter__(self) -> "NetServer":
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()

    def _dispatch(self, fd: int, events: Event) -> None:
        if fd == self._listener.fileno():
            self._handle_listen()
            return
        with self.lock:
            conn = self.users.get(fd)
        if conn is None:
            return
        if events & (Event.RDHUP | Event.HUP | Event.ERR):
            self.close_connection(conn)
        elif events & Event.IN:
            self._extend_time(conn)
            self._pool.add_task(Task(self._on_read, conn))
        elif events & Event.OUT:
            self._extend_time(conn)
            self._pool.add_task(Task(self._on_write, conn))

    def _handle_listen(self) -> None:
        while True:
            try:
                sock, addr = self._listener.accept()
            except (BlockingIOError, InterruptedError):
                return
            except OSError as exc:
                _log.warning("accept failed: %s", exc)
                return
            if Connection.user_count >= MAX_FD:
                self._send_error(sock, "server busy")
                _log.warning("client is full")
                return
            self._add_connection(sock, (addr[0], addr[1]))
            if not self.listen_events & Event.ET:
                return

    def _add_connection(self, sock: socket.socket, addr: Address) -> None:
        sock.setblocking(False)
        conn = Connection(sock, addr, self.edge_triggered)
        fd = conn.fd()
        with self.lock:
            self.users[fd] = conn
            if self.timeout_ms > 0:
                self.timer.add_timer(fd, self.timeout_ms, lambda: self.close_connection(conn))
            self._poller.add(fd, Event.IN | self.connection_events)

    def _on_read(self, conn: Connection) -> None:
        try:
            conn.read()
        except (ConnectionClosed, OSError):
            self.close_connection(conn)
            return
        self._on_process(conn)

    def _on_write(self, conn: Connection) -> None:
        try:
            conn.write()
        except OSError:
            self.close_connection(conn)
            return
        if conn.pending_bytes() == 0:
            self._on_process(conn)
        else:
            self._rearm(conn, Event.OUT)

    def _on_process(self, conn: Connection) -> None:
        try:
            wants_send = conn.handle(self.handler)
        except Exception:
            _log.exception("handling request from %s failed", conn.addr)
            wants_send = False
        if wants_send or conn.pending_bytes():
            self._rearm(conn, Event.OUT)
        else:
            self._rearm(conn, Event.IN)

    def _rearm(self, conn: Connection, events: Event) -> None:
        fd = conn.fd()
        if fd < 0:
            return
        try:
            self._poller.modify(fd, self.connection_events | events)
        except (OSError, ValueError):
            pass

    def _extend_time(self, conn: Connection) -> None:
        if self.timeout_ms <= 0:
            return
        with self.lock:
            fd = conn.fd()
            if fd in self.timer:
                self.timer.update(fd, self.timeout_ms)

    @staticmethod
    def _send_error(sock: socket.socket, info: str) -> None:
        try:
            sock.send(info.encode("utf-8"))
        except OSError as exc:
            _log.warning("sending error to client failed: %s", exc)
        finally:
            sock.close()

    def _cleanup(self) -> None:
        with self.lock:
            if self._cleaned:
                return
            self._cleaned = True
            conns = list(self.users.values())
            self.users.clear()
            self.timer.clear()
        self._pool.shutdown()
        for conn in conns:
            conn.close()
        self._listener.close()
        self._poller.close()