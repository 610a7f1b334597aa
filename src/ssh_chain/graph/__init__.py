"""Tunnel graph model, validation, resolution and command rendering."""

from .models import (
    FORWARDING_NODE_TYPES,
    SIDE_NODE_TYPES,
    ForwardDirective,
    ForwardType,
    ResolvedChain,
    TunnelEdge,
    TunnelGraph,
    TunnelNode,
    TunnelNodeType,
    TunnelProfile,
)
from .renderer import NO_HOSTS_COMMAND, CommandRenderer
from .resolver import DEFAULT_TARGET_HOST, ChainResolver, resolve_remote_target
from .validator import GraphValidator, ValidationResult, has_cycle, reachable_from

__all__ = [
    "TunnelNodeType",
    "TunnelNode",
    "TunnelEdge",
    "TunnelProfile",
    "TunnelGraph",
    "ForwardType",
    "ForwardDirective",
    "ResolvedChain",
    "FORWARDING_NODE_TYPES",
    "SIDE_NODE_TYPES",
    "GraphValidator",
    "ValidationResult",
    "has_cycle",
    "reachable_from",
    "ChainResolver",
    "resolve_remote_target",
    "DEFAULT_TARGET_HOST",
    "CommandRenderer",
    "NO_HOSTS_COMMAND",
]
