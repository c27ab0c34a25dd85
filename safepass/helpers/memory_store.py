"""Key/value store abstraction for the authentication state.

Challenge tokens, sessions and failed-attempt records all live behind this
interface. ``InMemoryKeyValueStore`` serves single-process deployments; a
shared backend (Redis, Postgres) can implement ``KeyValueStore`` when the
single-use, lockout and session invariants must hold across instances.

Every read-modify-write goes through :meth:`KeyValueStore.update`, which is
atomic per key, so two concurrent requests can never lose an update.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Callable, Generic, TypeVar

V = TypeVar("V")
R = TypeVar("R")


class KeyValueStore(ABC, Generic[V]):
    """Abstract base for auth state stores."""

    @abstractmethod
    def get(self, key: str) -> V | None: ...

    @abstractmethod
    def set(self, key: str, value: V) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete *key* if present. Returns whether anything was removed."""

    @abstractmethod
    def update(self, key: str, fn: Callable[[V | None], tuple[V | None, R]]) -> R:
        """Atomically replace the value under *key*.

        *fn* receives the current value (or ``None``) and returns
        ``(new_value, result)``. A ``new_value`` of ``None`` deletes the key.
        """

    @abstractmethod
    def sweep(self, predicate: Callable[[V], bool]) -> int:
        """Remove every value matching *predicate*; return how many were removed."""

    @abstractmethod
    def values(self) -> list[V]: ...

    @abstractmethod
    def __len__(self) -> int: ...


class InMemoryKeyValueStore(KeyValueStore[V]):
    """Thread-safe in-memory store for single-instance deployments."""

    def __init__(self) -> None:
        self._data: dict[str, V] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> V | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: V) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def update(self, key: str, fn: Callable[[V | None], tuple[V | None, R]]) -> R:
        with self._lock:
            new_value, result = fn(self._data.get(key))
            if new_value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = new_value
            return result

    def sweep(self, predicate: Callable[[V], bool]) -> int:
        with self._lock:
            doomed = [k for k, v in self._data.items() if predicate(v)]
            for k in doomed:
                self._data.pop(k, None)
            return len(doomed)

    def values(self) -> list[V]:
        with self._lock:
            return list(self._data.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
