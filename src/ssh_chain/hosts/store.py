"""Store protocols and in-memory implementations.

Persistence belongs to the embedding application. The in-memory stores
back the tests and small embeddings.
"""

import threading
from collections.abc import Iterable
from typing import Generic, Protocol, TypeVar

from ..graph.models import TunnelProfile
from .models import HostRecord, PortForwardingProfile, ProxyJumpProfile


class HostStore(Protocol):
    """Read-only host lookup."""

    def get_by_id(self, host_id: str) -> HostRecord | None:
        """Get host by ID."""
        ...


class ProxyJumpProfileStore(Protocol):
    """Read-only jump profile lookup."""

    def get_by_id(self, profile_id: str) -> ProxyJumpProfile | None:
        """Get jump profile by ID, hops included."""
        ...


class TunnelProfileStore(Protocol):
    """Tunnel profile persistence."""

    def get_by_id(self, profile_id: str) -> TunnelProfile | None: ...

    def list_all(self) -> list[TunnelProfile]: ...

    def save(self, profile: TunnelProfile) -> None: ...

    def delete(self, profile_id: str) -> bool: ...


class _Identified(Protocol):
    @property
    def id(self) -> str: ...


T = TypeVar("T", bound=_Identified)


class _MemoryStore(Generic[T]):
    def __init__(self, items: Iterable[T] = ()) -> None:
        self._items: dict[str, T] = {}
        self._lock = threading.Lock()
        for item in items:
            self._items[item.id] = item

    def get_by_id(self, item_id: str) -> T | None:
        with self._lock:
            return self._items.get(item_id)

    def list_all(self) -> list[T]:
        with self._lock:
            return list(self._items.values())

    def save(self, item: T) -> None:
        with self._lock:
            self._items[item.id] = item

    def delete(self, item_id: str) -> bool:
        with self._lock:
            return self._items.pop(item_id, None) is not None

    def __len__(self) -> int:
        return len(self._items)


class InMemoryHostStore(_MemoryStore[HostRecord]):
    """Host store kept in a dict."""


class InMemoryProxyJumpProfileStore(_MemoryStore[ProxyJumpProfile]):
    """Jump profile store kept in a dict."""


class InMemoryTunnelProfileStore(_MemoryStore[TunnelProfile]):
    """Tunnel profile store kept in a dict."""


class InMemoryPortForwardingProfileStore(_MemoryStore[PortForwardingProfile]):
    """Saved port forwards kept in a dict."""

    def get_by_host_id(self, host_id: str) -> list[PortForwardingProfile]:
        return [profile for profile in self.list_all() if profile.host_id == host_id]
