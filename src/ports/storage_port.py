"""Storage port — abstract interface for durable key/value persistence.

The CampStore and NotificationStore depend on this protocol, never on a
specific backend. Each logical collection lives under one key as a
serialized string.
"""

from __future__ import annotations

from typing import Protocol


class StorageError(Exception):
    """Raised when any storage backend operation fails."""


class StoragePort(Protocol):
    """Abstract key/value storage used by the stores."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...
