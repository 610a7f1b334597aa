"""ssh-chain - multi-hop SSH tunnel orchestration."""

from . import graph, hosts, jump, transport, tunnel
from .api import managed_connection, managed_tunnel, render_command
from .common.cancellation import CancellationToken

# Common utilities
from .common.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ConnectionError,
    ForwardingError,
    GraphValidationError,
    HostKeyVerificationError,
    HostNotFoundError,
    OperationCancelledError,
    SSHChainError,
    TeardownError,
    TunnelRegistryError,
    UnsafeIdentifierError,
)
from .common.logging import get_logger, setup_logging
from .common.utils import mask_sensitive_data, sanitize_ssh_identifier, validate_port

# Graph model
from .graph import (
    ChainResolver,
    CommandRenderer,
    ForwardDirective,
    ForwardType,
    GraphValidator,
    ResolvedChain,
    TunnelEdge,
    TunnelNode,
    TunnelNodeType,
    TunnelProfile,
    ValidationResult,
)
from .hosts import (
    AuthType,
    HopConnectionInfo,
    HostRecord,
    InMemoryHostStore,
    InMemoryProxyJumpProfileStore,
    PortForwardingProfile,
    ProxyJumpHop,
    ProxyJumpProfile,
)
from .jump import JumpChainResolver, JumpValidationResult
from .transport import ParamikoTransport, compute_fingerprint

# Tunnel management
from .tunnel import (
    ActiveTunnelRegistry,
    ChainConnector,
    ChainedConnection,
    ExecutionResult,
    ForwardingManager,
    TunnelBuilderService,
    TunnelConfig,
    TunnelStatusInfo,
)

# Setup logging on package initialization
setup_logging(level="INFO")

# Package level logger
logger = get_logger(__name__)

__version__ = "0.1.0"


__all__ = [
    # High-level API
    "render_command",
    "managed_tunnel",
    "managed_connection",
    # Graph
    "TunnelNodeType",
    "TunnelNode",
    "TunnelEdge",
    "TunnelProfile",
    "ForwardType",
    "ForwardDirective",
    "ResolvedChain",
    "GraphValidator",
    "ValidationResult",
    "ChainResolver",
    "CommandRenderer",
    # Hosts
    "AuthType",
    "HostRecord",
    "HopConnectionInfo",
    "ProxyJumpHop",
    "ProxyJumpProfile",
    "PortForwardingProfile",
    "InMemoryHostStore",
    "InMemoryProxyJumpProfileStore",
    # Jump chains
    "JumpChainResolver",
    "JumpValidationResult",
    # Transport
    "ParamikoTransport",
    "compute_fingerprint",
    # Tunnel management
    "TunnelConfig",
    "ChainConnector",
    "ChainedConnection",
    "ForwardingManager",
    "ActiveTunnelRegistry",
    "TunnelBuilderService",
    "ExecutionResult",
    "TunnelStatusInfo",
    "CancellationToken",
    # Exceptions
    "SSHChainError",
    "ConfigurationError",
    "GraphValidationError",
    "UnsafeIdentifierError",
    "HostNotFoundError",
    "ConnectionError",
    "HostKeyVerificationError",
    "AuthenticationError",
    "ForwardingError",
    "TeardownError",
    "OperationCancelledError",
    "TunnelRegistryError",
    # Utilities
    "get_logger",
    "setup_logging",
    "validate_port",
    "sanitize_ssh_identifier",
    "mask_sensitive_data",
    "graph",
    "hosts",
    "jump",
    "transport",
    "tunnel",
]
