"""Consistent hashing ring used to route keys to database servers."""

import bisect
import threading
import zlib
from collections.abc import Iterable


def hash_key(key: str) -> int:
    """Return the CRC-32 (IEEE) checksum of ``key`` encoded as UTF-8."""
    return zlib.crc32(key.encode("utf-8"))


class ConsistentHasher:
    """A thread-safe hash ring with one point per node."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._nodes: set[str] = set()
        self._ring: list[int] = []
        self._owners: dict[int, str] = {}

    def _drop(self, node: str) -> None:
        self._nodes.discard(node)
        point = hash_key(node)
        self._owners.pop(point, None)
        self._ring = [value for value in self._ring if value != point]

    def _insert(self, node: str) -> None:
        self._nodes.add(node)
        point = hash_key(node)
        self._owners[point] = node
        bisect.insort(self._ring, point)

    def add_node(self, node: str) -> None:
        """Place ``node`` on the ring; adding a known node does nothing."""
        with self._lock:
            if node not in self._nodes:
                self._insert(node)

    def remove_node(self, node: str) -> None:
        """Take ``node`` off the ring; removing an unknown node does nothing."""
        with self._lock:
            if node in self._nodes:
                self._drop(node)

    def get_node(self, key: str) -> str | None:
        """Return the node owning ``key``, or None when the ring is empty."""
        with self._lock:
            if not self._ring:
                return None
            index = bisect.bisect_left(self._ring, hash_key(key))
            if index == len(self._ring):
                index = 0
            return self._owners.get(self._ring[index])

    def reconcile(self, nodes: Iterable[str]) -> None:
        """Make the ring hold exactly the given nodes."""
        wanted = set(nodes)
        with self._lock:
            for node in self._nodes - wanted:
                self._drop(node)
            for node in wanted - self._nodes:
                self._insert(node)

    def nodes(self) -> list[str]:
        """Return the nodes on the ring, sorted by name."""
        with self._lock:
            return sorted(self._nodes)

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)