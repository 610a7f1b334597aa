"""Utility functions for ssh-chain."""

import ipaddress
import re
from functools import lru_cache
from typing import Any

from .exceptions import UnsafeIdentifierError

# Port range constants
MIN_PORT = 1
MAX_PORT = 65535

MAX_HOSTNAME_LENGTH = 253
MAX_LABEL_LENGTH = 63

_HOSTNAME_LABEL = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$")

# Characters allowed in a username or hostname placed on a command line.
_IDENTIFIER_PUNCTUATION = frozenset(".-_@:[]")


def is_valid_port(port: Any) -> bool:
    """Check that a value is an int inside 1-65535."""
    return isinstance(port, int) and not isinstance(port, bool) and MIN_PORT <= port <= MAX_PORT


def validate_port(port: int, port_name: str = "Port") -> None:
    """Validate port number range.

    Args:
        port: Port number to validate
        port_name: Name of the port for error messages

    Raises:
        ValueError: If port is not in valid range (1-65535)
    """
    if not is_valid_port(port):
        raise ValueError(
            f"{port_name} must be between {MIN_PORT} and {MAX_PORT}. Got: {port}"
        )


def is_blank(value: str | None) -> bool:
    """True for None, empty and whitespace-only strings."""
    return value is None or not value.strip()


@lru_cache(maxsize=256)
def is_valid_hostname_or_ip(hostname: str) -> bool:
    """Validate a hostname (RFC 1123) or an IPv4/IPv6 literal.

    Args:
        hostname: Candidate hostname or IP address

    Returns:
        True if the value is usable as a connection target
    """
    if is_blank(hostname):
        return False

    try:
        ipaddress.ip_address(hostname)
        return True
    except ValueError:
        pass

    if len(hostname) > MAX_HOSTNAME_LENGTH:
        return False

    return all(
        label and len(label) <= MAX_LABEL_LENGTH and _HOSTNAME_LABEL.match(label)
        for label in hostname.split(".")
    )


def sanitize_ssh_identifier(value: str | None) -> str | None:
    """Reject SSH identifiers that could inject into a command line.

    Only alphanumerics, dots, hyphens, underscores, ``@``, ``:`` and IPv6
    brackets are accepted. Offending values are rejected, never stripped.

    Args:
        value: Username, hostname or label

    Returns:
        The unchanged value

    Raises:
        UnsafeIdentifierError: If any other character is present
    """
    if value is None or not value.strip():
        return value

    for char in value:
        if not char.isalnum() and char not in _IDENTIFIER_PUNCTUATION:
            raise UnsafeIdentifierError(value, char)
    return value


def mask_sensitive_data(
    value: str | None, mask_char: str = "*", show_chars: int = 4
) -> str:
    """Mask sensitive data for logging while preserving some characters for debugging.

    Args:
        value: Sensitive string to mask (e.g., password, passphrase)
        mask_char: Character to use for masking
        show_chars: Number of characters to show at the end

    Returns:
        Masked string safe for logging
    """
    if not value:
        return "<None>"

    if len(value) <= show_chars:
        return mask_char * len(value)

    if show_chars <= 0:
        return mask_char * len(value)

    masked_length = len(value) - show_chars
    return mask_char * masked_length + value[-show_chars:]


def format_endpoint(host: str, port: int) -> str:
    """Render ``host:port``, bracketing IPv6 literals."""
    if ":" in host and not host.startswith("["):
        return f"[{host}]:{port}"
    return f"{host}:{port}"
