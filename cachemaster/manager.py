"""Master node: tracks live cache servers and tells clients and servers about them."""

from __future__ import annotations

import argparse
import json
import logging
import threading
from typing import Any, List, Optional, Sequence, Tuple

from .connection import Connection
from .consistent_hash import HashRing
from .net_server import MASTER_PORT, NetServer
from .protocol import CacheServerResponse, ClientReqType, MachineType

_log = logging.getLogger(__name__)

Address = Tuple[str, int]

KEEP_ALIVE_TIMEOUT_MS = 2500


def ip_port(addr: Sequence[Any]) -> str:
    """Format an (ip, port) address as ``ip:port``."""
    return f"{addr[0]}:{addr[1]}"


def _same_addr(a: Sequence[Any], b: Sequence[Any]) -> bool:
    return a[0] == b[0] and a[1] == b[1]


class Manager:
    """Keeps the list of cache servers alive by heartbeat and distributes it."""

    def __init__(self, server: Optional[Any] = None) -> None:
        self._lock = threading.Lock()
        self._ip_ports: List[str] = []
        self.ring = HashRing()
        self._owns_server = server is None
        if server is None:
            server = NetServer(MASTER_PORT, 3, 2000, False, 4, handler=self)
        else:
            server.handler = self
        self.server = server

    def get_which_cache_server(self, key: str) -> str:
        """The cache server responsible for ``key``, or "" when none is known."""
        with self._lock:
            if not self.ring.machines():
                return ""
            return self.ring.find(key)

    def cache_server_keep_alive(self, addr: Address) -> None:
        """Register a heartbeat: reset its timer, or add and announce a new server."""
        addr = (addr[0], addr[1])
        key = ip_port(addr)
        fd = self.find_fd(addr)
        with self._lock:
            known = key in self._ip_ports
            if not known:
                self._ip_ports.append(key)
        timer = self.server.timer
        with self.server.lock:
            if fd >= 0:
                if known and fd in timer:
                    timer.update(fd, KEEP_ALIVE_TIMEOUT_MS)
                else:
                    timer.add_timer(
                        fd, KEEP_ALIVE_TIMEOUT_MS, lambda: self.some_cache_server_lost(addr)
                    )
        if not known:
            self.notify_cache_server(CacheServerResponse.ADD_CACHE_SERVER)

    def client_get_distribution(self, addr: Address) -> int:
        """Send the cache server list to the client at ``addr``; return connections sent to."""
        msg = self.distribution_message(ClientReqType.DISTRIBUTION_RESPONSE)
        targets = self._connections_at(addr)
        for conn in targets:
            conn.send(msg)
        return len(targets)

    def distribution_message(self, msg_type: int) -> str:
        """The JSON message listing every cache server."""
        with self._lock:
            servers = list(self._ip_ports)
        return json.dumps(
            {
                "machineType": int(MachineType.MASTER),
                "req_type": int(msg_type),
                "data": {"iplist": servers},
            },
            separators=(",", ":"),
            sort_keys=True,
        )

    def notify_cache_server(self, msg_type: int) -> int:
        """Rebuild the hash ring and send the list to every cache server; return how many."""
        with self._lock:
            servers = list(self._ip_ports)
            self.ring.refresh(servers)
        msg = self.distribution_message(msg_type)
        wanted = set(servers)
        with self.server.lock:
            targets = [c for c in self.server.users.values() if ip_port(c.addr) in wanted]
        _log.info(
            "notify cache servers: type %s, %d servers, %d sent", msg_type, len(servers), len(targets)
        )
        for conn in targets:
            conn.send(msg)
        return len(targets)

    def some_cache_server_lost(self, addr: Address) -> None:
        """Drop a server whose heartbeat stopped and announce the new list."""
        self.delete_one_machine(addr)
        self.notify_cache_server(CacheServerResponse.REFLESH_IP)

    def shut_down_one_machine(self, addr: Address) -> None:
        """Drop a server that shut down and announce the new list."""
        self.delete_one_machine(addr)
        self.notify_cache_server(CacheServerResponse.SHUTDOWN_CACHE)

    def delete_one_machine(self, addr: Address) -> bool:
        """Forget the server at ``addr``; False if it was not known."""
        key = ip_port(addr)
        with self._lock:
            if key not in self._ip_ports:
                return False
            self._ip_ports.remove(key)
            return True

    def find_fd(self, addr: Address) -> int:
        """Descriptor of the connection from ``addr``, or -1."""
        with self.server.lock:
            for conn in self.server.users.values():
                if _same_addr(conn.addr, addr):
                    return conn.fd()
        return -1

    def cache_servers(self) -> List[str]:
        """Known cache servers as ``ip:port`` strings, oldest first."""
        with self._lock:
            return list(self._ip_ports)

    def _connections_at(self, addr: Address) -> List[Connection]:
        with self.server.lock:
            return [c for c in self.server.users.values() if _same_addr(c.addr, addr)]


_instance: Optional[Manager] = None
_instance_lock = threading.Lock()


def get_manager() -> Manager:
    """The process-wide manager, created on first use."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = Manager()
        return _instance


def reset_manager() -> None:
    """Discard the process-wide manager, stopping the server it created."""
    global _instance
    with _instance_lock:
        inst, _instance = _instance, None
    if inst is not None and inst._owns_server:
        inst.server.stop()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="cachemaster", description="Master node of a distributed cache."
    )
    parser.add_argument("--host", default="", help="address to listen on (default: all)")
    parser.add_argument("--port", type=int, default=MASTER_PORT)
    parser.add_argument("--threads", type=int, default=4)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    server = NetServer(args.port, 3, 2000, False, args.threads, args.host)
    Manager(server)
    try:
        server.start()
    except KeyboardInterrupt:
        server.stop()
    return 0