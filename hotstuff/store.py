"""A small key-value store for consensus data, kept in the client's auxiliary storage."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Optional


class MemoryAuxStore:
    """Auxiliary storage held in memory."""

    def __init__(self) -> None:
        self._data: dict[bytes, bytes] = {}
        self._lock = threading.Lock()

    def get_aux(self, key: bytes) -> Optional[bytes]:
        with self._lock:
            return self._data.get(bytes(key))

    def insert_aux(
        self,
        insert: Iterable[tuple[bytes, bytes]],
        delete: Iterable[bytes],
    ) -> None:
        """Write every pair in ``insert``, then remove every key in ``delete``."""
        with self._lock:
            for key, value in insert:
                self._data[bytes(key)] = bytes(value)
            for key in delete:
                self._data.pop(bytes(key), None)


class Store:
    """Reads and writes values through a backend that offers auxiliary storage."""

    def __init__(self, backend) -> None:
        self.backend = backend

    def get(self, key: bytes) -> Optional[bytes]:
        return self.backend.get_aux(key)

    def set(self, key: bytes, value: bytes) -> None:
        self.backend.insert_aux([(key, value)], [])