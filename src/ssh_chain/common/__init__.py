"""Common utilities and shared functionality."""

from .cancellation import CancellationToken, check_cancelled
from .context import run_with_timeout
from .exceptions import (
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
from .logging import get_logger, setup_logging
from .resources import release_quietly
from .utils import (
    MAX_PORT,
    MIN_PORT,
    format_endpoint,
    is_blank,
    is_valid_hostname_or_ip,
    is_valid_port,
    mask_sensitive_data,
    sanitize_ssh_identifier,
    validate_port,
)

__all__ = [
    # Cancellation
    "CancellationToken",
    "check_cancelled",
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
    # Logging
    "get_logger",
    "setup_logging",
    # Resources
    "release_quietly",
    "run_with_timeout",
    # Utils
    "validate_port",
    "is_valid_port",
    "is_blank",
    "is_valid_hostname_or_ip",
    "sanitize_ssh_identifier",
    "mask_sensitive_data",
    "format_endpoint",
    "MIN_PORT",
    "MAX_PORT",
]
