"""Custom exceptions for ssh-chain."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..graph.validator import ValidationResult


class SSHChainError(Exception):
    """Base exception for all ssh-chain errors."""

    pass


class ConfigurationError(SSHChainError):
    """Raised when configuration or a profile is unusable."""

    pass


class GraphValidationError(ConfigurationError):
    """Raised when an operation needs a valid tunnel graph and gets an invalid one."""

    def __init__(self, result: ValidationResult) -> None:
        self.result = result
        super().__init__(
            "Tunnel profile is invalid. Errors: " + ", ".join(result.errors)
        )


class UnsafeIdentifierError(ConfigurationError):
    """Raised when a username or hostname contains characters unsafe for a command line."""

    def __init__(self, value: str, character: str) -> None:
        self.value = value
        self.character = character
        super().__init__(
            f"Invalid character {character!r} detected in SSH identifier {value!r}. "
            "Only alphanumeric characters, dots, hyphens, underscores, @ symbols, "
            "colons and IPv6 brackets are allowed."
        )


class HostNotFoundError(SSHChainError):
    """Raised when a host record referenced by a profile does not exist."""

    def __init__(self, host_id: str, context: str | None = None) -> None:
        self.host_id = host_id
        message = f"Host not found: {host_id}"
        if context:
            message = f"{message} ({context})"
        super().__init__(message)


class ConnectionError(SSHChainError):
    """Raised when a hop of a connection chain cannot be established.

    Attributes:
        hop_index: Zero based position of the failing hop in the chain
        host: Hostname of the failing hop, when known
        cause: Underlying exception
    """

    def __init__(
        self, hop_index: int, host: str | None = None, cause: BaseException | None = None
    ) -> None:
        self.hop_index = hop_index
        self.host = host
        self.cause = cause
        target = f" ({host})" if host else ""
        reason = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to connect hop {hop_index}{target}{reason}")


class HostKeyVerificationError(SSHChainError):
    """Raised when a server host key is rejected."""

    def __init__(self, host: str, port: int, fingerprint: str | None = None) -> None:
        self.host = host
        self.port = port
        self.fingerprint = fingerprint
        super().__init__(
            f"Connection rejected: host key verification failed for {host}:{port}"
        )


class AuthenticationError(SSHChainError):
    """Raised when authentication against a hop fails."""

    pass


class ForwardingError(SSHChainError):
    """Raised when a single port forward cannot be started."""

    def __init__(self, message: str, directive: Any | None = None) -> None:
        self.directive = directive
        super().__init__(message)


class TeardownError(SSHChainError):
    """Wraps a failure that happened while releasing a resource.

    Never raised out of cleanup code; collected and logged instead.
    """

    def __init__(self, resource: str, cause: BaseException) -> None:
        self.resource = resource
        self.cause = cause
        super().__init__(f"Error releasing {resource}: {cause}")


class OperationCancelledError(SSHChainError):
    """Raised when a cancellation token fires between two steps."""

    pass


class TunnelRegistryError(SSHChainError):
    """Exception raised for tunnel registry operations."""

    pass
