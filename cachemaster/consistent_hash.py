"""Consistent hashing ring mapping keys onto cache servers."""

from __future__ import annotations

import bisect
from typing import Iterable

_MASK = 0xFFFFFFFF
_FNV_PRIME = 16777619
_FNV_OFFSET = 2166136261


def fnv_hash(key: str) -> int:
    """32-bit Fowler-Noll-Vo hash with an extra avalanche step."""
    h = _FNV_OFFSET
    for byte in key.encode("utf-8"):
        # Bytes are treated as signed chars, so high bytes are sign-extended.
        value = byte if byte < 0x80 else (byte - 0x100) & _MASK
        h = ((h ^ value) * _FNV_PRIME) & _MASK
    h = (h + (h << 13)) & _MASK
    h ^= h >> 7
    h = (h + (h << 3)) & _MASK
    h ^= h >> 17
    h = (h + (h << 5)) & _MASK
    return h


class HashRing:
    """Ring of virtual nodes; a key belongs to the first node clockwise from its hash."""

    def __init__(self, virtual_copies: int = 10) -> None:
        if virtual_copies < 1:
            raise ValueError("virtual_copies must be at least 1")
        self.virtual_copies = virtual_copies
        self._machines: list[str] = []
        self._points: list[int] = []
        self._owners: dict[int, str] = {}

    def _virtual_hashes(self, ip_port: str) -> Iterable[int]:
        return (fnv_hash(f"{ip_port}{i}") for i in range(self.virtual_copies))

    def add_machine(self, ip_port: str) -> None:
        """Add a physical machine and its virtual nodes."""
        self._machines.append(ip_port)
        for point in self._virtual_hashes(ip_port):
            if point not in self._owners:
                bisect.insort(self._points, point)
            self._owners[point] = ip_port

    def remove_machine(self, ip_port: str) -> None:
        """Remove a physical machine and its virtual nodes."""
        self._machines = [m for m in self._machines if m != ip_port]
        for point in self._virtual_hashes(ip_port):
            if self._owners.pop(point, None) is not None:
                index = bisect.bisect_left(self._points, point)
                del self._points[index]

    def find(self, key: str) -> str:
        """Return the machine responsible for ``key``."""
        if not self._points:
            raise LookupError("hash ring is empty")
        index = bisect.bisect_left(self._points, fnv_hash(key))
        if index == len(self._points):
            index = 0
        return self._owners[self._points[index]]

    def refresh(self, ip_ports: Iterable[str]) -> None:
        """Replace all machines with ``ip_ports``."""
        self._machines.clear()
        self._points.clear()
        self._owners.clear()
        for ip_port in ip_ports:
            self.add_machine(ip_port)

    def machines(self) -> list[str]:
        """The physical machines on the ring, in insertion order."""
        return list(self._machines)

    def __len__(self) -> int:
        return len(self._points)