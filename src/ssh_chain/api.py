"""High-level API for ssh-chain.

This module provides simple functions for the common cases: showing the
OpenSSH command of a tunnel profile, and running a tunnel or a chained
connection for the duration of a ``with`` block.
"""

from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from .common.exceptions import SSHChainError
from .common.logging import get_logger
from .graph.models import TunnelProfile
from .hosts.models import HostRecord, ProxyJumpProfile
from .hosts.store import HostStore, InMemoryHostStore, InMemoryProxyJumpProfileStore
from .transport.interfaces import HostKeyVerifier, InteractiveAuthHandler, SSHTransport
from .tunnel.builder import TunnelBuilderService
from .tunnel.config import TunnelConfig
from .tunnel.connection import ChainedConnection
from .tunnel.models import TunnelStatusInfo

logger = get_logger(__name__)


def _host_store(hosts: HostStore | Iterable[HostRecord]) -> HostStore:
    if callable(getattr(hosts, "get_by_id", None)):
        return hosts  # type: ignore[return-value]
    return InMemoryHostStore(hosts)  # type: ignore[arg-type]


def render_command(profile: TunnelProfile, hosts: HostStore | Iterable[HostRecord]) -> str:
    """Return the OpenSSH command equivalent to ``profile``.

    Args:
        profile: Tunnel profile
        hosts: Host store, or the host records the profile refers to

    Returns:
        str: Command line such as ``ssh -J bastion user@db -L 5432:localhost:5432``

    Raises:
        GraphValidationError: If the profile is invalid

    Example:
        >>> print(render_command(profile, [bastion, db]))
        ssh -J admin@bastion.example.com dba@db.internal -L 5432:localhost:5432
    """
    service = TunnelBuilderService(_host_store(hosts))
    return service.generate_command(profile)


@contextmanager
def managed_tunnel(
    profile: TunnelProfile,
    hosts: HostStore | Iterable[HostRecord],
    *,
    transport: SSHTransport | None = None,
    config: TunnelConfig | None = None,
    host_key_verifier: HostKeyVerifier | None = None,
    interactive_auth_handler: InteractiveAuthHandler | None = None,
) -> Iterator[TunnelStatusInfo]:
    """Run a tunnel profile with automatic cleanup.

    The tunnel is stopped when the block exits, even if an exception occurs.

    Yields:
        TunnelStatusInfo: Status of the running tunnel

    Raises:
        SSHChainError: If the tunnel cannot be started

    Example:
        >>> with managed_tunnel(profile, hosts, host_key_verifier=verify) as status:
        ...     print(status.forwards)
    """
    service = TunnelBuilderService(_host_store(hosts), transport=transport, config=config)
    result = service.execute(profile, host_key_verifier, interactive_auth_handler)
    if not result.success:
        raise SSHChainError(result.error_message or "Failed to start tunnel")
    if result.error_message:
        logger.warning("Tunnel started with errors", profile_id=profile.id, error=result.error_message)

    try:
        yield service.get_active_tunnels()[profile.id]
    finally:
        service.stop(profile.id)
        logger.info("Managed tunnel cleaned up", profile_id=profile.id)


@contextmanager
def managed_connection(
    host_id: str,
    hosts: HostStore | Iterable[HostRecord],
    jump_profiles: Iterable[ProxyJumpProfile] = (),
    *,
    transport: SSHTransport | None = None,
    config: TunnelConfig | None = None,
    host_key_verifier: HostKeyVerifier | None = None,
    interactive_auth_handler: InteractiveAuthHandler | None = None,
) -> Iterator[ChainedConnection]:
    """Connect a saved host, through its jump profile if it has one, for one block.

    Yields:
        ChainedConnection: Connection to the host, closed on exit
    """
    service = TunnelBuilderService(
        _host_store(hosts),
        transport=transport,
        config=config,
        jump_profile_store=InMemoryProxyJumpProfileStore(jump_profiles),
    )
    with service.connect_host(host_id, host_key_verifier, interactive_auth_handler) as connection:
        yield connection
