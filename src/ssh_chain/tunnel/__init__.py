"""Chain connection, port forwarding and active tunnel management."""

from .builder import TunnelBuilderService
from .config import TunnelConfig
from .connection import ChainedConnection, release_chain_resources
from .connector import ChainConnector, allocate_ephemeral_port
from .forwarding import ForwardingManager
from .models import (
    ActiveTunnel,
    ExecutionResult,
    ForwardHandle,
    ForwardingStatus,
    TunnelStatusInfo,
)
from .registry import ActiveTunnelRegistry

__all__ = [
    "TunnelConfig",
    "ChainConnector",
    "ChainedConnection",
    "allocate_ephemeral_port",
    "release_chain_resources",
    "ForwardingManager",
    "ForwardHandle",
    "ForwardingStatus",
    "ActiveTunnelRegistry",
    "ActiveTunnel",
    "TunnelStatusInfo",
    "ExecutionResult",
    "TunnelBuilderService",
]
