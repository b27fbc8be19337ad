"""In-process registry of managed gateway connections.

The host application owns the connections and registers them here; health
checks only ever read a snapshot.
"""

from __future__ import annotations

import threading
from typing import Mapping, Protocol

OPEN_STATE = "open"


class ManagedConnection(Protocol):
    """Anything exposing the connection state of one gateway instance."""

    @property
    def connection_state(self) -> str | None:
        """Current state, e.g. "open", "connecting" or "close"."""
        ...


class InstanceRegistry:
    """Thread-safe name -> connection map."""

    def __init__(self, connections: Mapping[str, ManagedConnection] | None = None) -> None:
        self._lock = threading.RLock()
        self._connections: dict[str, ManagedConnection] = dict(connections or {})

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def register(self, name: str, connection: ManagedConnection) -> None:
        if not name:
            raise ValueError("name must be a non-empty string")
        with self._lock:
            self._connections[name] = connection

    def unregister(self, name: str) -> None:
        with self._lock:
            self._connections.pop(name, None)

    def snapshot(self) -> dict[str, ManagedConnection]:
        """Return a shallow copy safe to iterate without holding the lock."""
        with self._lock:
            return dict(self._connections)
