"""Host records, jump profiles and their stores."""

from .models import (
    AuthType,
    HopConnectionInfo,
    HostRecord,
    PortForwardingProfile,
    ProxyJumpHop,
    ProxyJumpProfile,
)
from .store import (
    HostStore,
    InMemoryHostStore,
    InMemoryPortForwardingProfileStore,
    InMemoryProxyJumpProfileStore,
    InMemoryTunnelProfileStore,
    ProxyJumpProfileStore,
    TunnelProfileStore,
)

__all__ = [
    "AuthType",
    "HostRecord",
    "HopConnectionInfo",
    "ProxyJumpHop",
    "ProxyJumpProfile",
    "PortForwardingProfile",
    "HostStore",
    "ProxyJumpProfileStore",
    "TunnelProfileStore",
    "InMemoryHostStore",
    "InMemoryProxyJumpProfileStore",
    "InMemoryTunnelProfileStore",
    "InMemoryPortForwardingProfileStore",
]
