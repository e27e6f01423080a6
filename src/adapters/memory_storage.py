"""In-memory storage adapter — implements StoragePort with a dict.

Used by tests and for ephemeral runs (STORAGE_PATH=":memory:").
Several stores may share one instance to simulate two sessions.
"""

from __future__ import annotations


class MemoryStorage:
    """Dict-backed implementation of StoragePort."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)
