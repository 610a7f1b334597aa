"""Tunnel builder service: validate, render, execute and stop tunnel profiles."""

import uuid
from collections.abc import Mapping

from ..common.cancellation import CancellationToken, check_cancelled
from ..common.context import run_with_timeout
from ..common.exceptions import (
    ConfigurationError,
    ConnectionError,
    GraphValidationError,
    HostNotFoundError,
    OperationCancelledError,
    TunnelRegistryError,
)
from ..common.logging import get_logger
from ..graph.models import ResolvedChain, TunnelProfile
from ..graph.renderer import CommandRenderer
from ..graph.resolver import ChainResolver
from ..graph.validator import GraphValidator, ValidationResult
from ..hosts.models import HopConnectionInfo
from ..hosts.store import HostStore, ProxyJumpProfileStore
from ..jump.resolver import JumpChainResolver
from ..transport.interfaces import HostKeyVerifier, InteractiveAuthHandler, SSHTransport
from ..transport.paramiko_transport import ParamikoTransport
from .config import TunnelConfig
from .connection import ChainedConnection
from .connector import ChainConnector
from .forwarding import ForwardingManager
from .models import ActiveTunnel, ExecutionResult, ForwardHandle, TunnelStatusInfo
from .registry import ActiveTunnelRegistry

logger = get_logger(__name__)


class TunnelBuilderService:
    """Runs tunnel profiles end to end.

    Execute goes validator, resolver, connector, forwarding manager and
    finally the registry, which becomes the only owner of the tunnel's
    resources. Stop detaches the registry entry before tearing anything down.
    """

    def __init__(
        self,
        host_store: HostStore,
        transport: SSHTransport | None = None,
        config: TunnelConfig | None = None,
        jump_profile_store: ProxyJumpProfileStore | None = None,
        registry: ActiveTunnelRegistry | None = None,
        forwarding_manager: ForwardingManager | None = None,
    ) -> None:
        self.config = config or TunnelConfig()
        self.host_store = host_store
        self.transport = transport if transport is not None else ParamikoTransport(self.config)
        self.validator = GraphValidator(max_nodes=self.config.max_graph_nodes)
        self.resolver = ChainResolver()
        self.renderer = CommandRenderer()
        self.connector = ChainConnector(self.transport, self.config)
        self.forwarding = (
            forwarding_manager if forwarding_manager is not None else ForwardingManager(self.config)
        )
        self.registry = (
            registry if registry is not None else ActiveTunnelRegistry(self.config.max_active_tunnels)
        )
        self.jump_resolver = (
            JumpChainResolver(jump_profile_store, host_store)
            if jump_profile_store is not None
            else None
        )

    def validate(self, profile: TunnelProfile) -> ValidationResult:
        return self.validator.validate(profile)

    def generate_command(self, profile: TunnelProfile) -> str:
        """Render the equivalent OpenSSH command of a valid profile.

        Raises:
            GraphValidationError: If the profile is invalid
            UnsafeIdentifierError: If a host field is unsafe to interpolate
        """
        result = self.validate(profile)
        if not result.is_valid:
            raise GraphValidationError(result)
        return self.renderer.render(self.resolver.resolve(profile), self.host_store)

    def execute(
        self,
        profile: TunnelProfile,
        host_key_verifier: HostKeyVerifier | None = None,
        interactive_auth_handler: InteractiveAuthHandler | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ExecutionResult:
        """Connect the profile's hop path and start its forwards.

        Expected failures come back as an unsuccessful result. A tunnel whose
        connection is up counts as started even if forwards fail; when every
        directive fails the result carries an error message naming them.
        """
        result = self.validate(profile)
        if not result.is_valid:
            message = f"Tunnel validation failed: {', '.join(result.errors)}"
            logger.error("Tunnel validation failed", profile_id=profile.id, errors=list(result.errors))
            return ExecutionResult.failure(message)

        if profile.id in self.registry:
            logger.warning("Tunnel already active", profile_id=profile.id)
            return ExecutionResult.failure(f"Tunnel '{_profile_name(profile)}' is already active")

        session_id = str(uuid.uuid4())
        logger.info(
            "Executing tunnel profile",
            profile_id=profile.id,
            profile=_profile_name(profile),
            session_id=session_id,
        )

        try:
            chain = self.resolver.resolve(profile)
            if chain.is_empty:
                return ExecutionResult.failure("No SSH hosts found in tunnel chain")
            hops = self._materialise(chain)
            connection = self.connector.connect(
                hops, host_key_verifier, interactive_auth_handler, cancel_token
            )
        except OperationCancelledError:
            logger.info("Tunnel execution cancelled", profile_id=profile.id, session_id=session_id)
            return ExecutionResult.failure("Tunnel execution was cancelled")
        except (ConfigurationError, HostNotFoundError, ConnectionError) as exc:
            logger.error("Tunnel execution failed", profile_id=profile.id, error=str(exc))
            return ExecutionResult.failure(str(exc))

        try:
            started, failed = self.forwarding.start_all(
                connection, chain.directives, session_id, cancel_token
            )
        except OperationCancelledError:
            connection.close()
            logger.info("Tunnel execution cancelled", profile_id=profile.id, session_id=session_id)
            return ExecutionResult.failure("Tunnel execution was cancelled")

        tunnel = ActiveTunnel(
            profile_id=profile.id,
            profile_name=_profile_name(profile),
            session_id=session_id,
            connection=connection,
            forwards=tuple(started),
        )

        try:
            added = self.registry.try_add(profile.id, tunnel)
        except TunnelRegistryError as exc:
            self._discard(tunnel)
            logger.error("Cannot register tunnel", profile_id=profile.id, error=str(exc))
            return ExecutionResult.failure(str(exc))

        if not added:
            self._discard(tunnel)
            logger.warning("Tunnel became active concurrently", profile_id=profile.id)
            return ExecutionResult.failure(f"Tunnel '{_profile_name(profile)}' is already active")

        error_message = None
        if chain.directives and not started:
            error_message = "All port forwards failed to start: " + "; ".join(
                f"{handle.describe()} ({handle.error_message})" for handle in failed
            )
            logger.warning("All port forwards failed", profile_id=profile.id, session_id=session_id)

        logger.info(
            "Tunnel started",
            profile_id=profile.id,
            session_id=session_id,
            hops=connection.hop_count,
            forwards=len(started),
            failed_forwards=len(failed),
        )
        return ExecutionResult(
            success=True,
            error_message=error_message,
            session_id=session_id,
            failed_directives=tuple(handle.describe() for handle in failed),
        )

    def stop(self, profile_id: str, cancel_token: CancellationToken | None = None) -> bool:
        """Stop an active tunnel.

        The registry entry is removed first, so status queries never see a
        tunnel that is being torn down. Stopping an inactive profile is a
        logged no-op.

        Returns:
            True if a tunnel was stopped

        Raises:
            OperationCancelledError: If cancelled between teardown steps
        """
        check_cancelled(cancel_token, "stopping tunnel")
        tunnel = self.registry.remove(profile_id)
        if tunnel is None:
            logger.info("Tunnel not active, nothing to stop", profile_id=profile_id)
            return False

        for handle in reversed(tunnel.forwards):
            check_cancelled(cancel_token, f"stopping {handle.describe()}")
            self.forwarding.stop(handle)

        check_cancelled(cancel_token, "closing connection")
        finished = run_with_timeout(
            tunnel.connection.close,
            self.config.dispose_timeout,
            name=f"ssh-chain-dispose-{tunnel.session_id}",
        )
        if not finished:
            logger.warning(
                "Tunnel disposal timed out; transport resources may linger",
                profile_id=profile_id,
                timeout=self.config.dispose_timeout,
            )

        logger.info("Tunnel stopped", profile_id=profile_id, session_id=tunnel.session_id)
        return True

    def get_active_tunnels(self) -> dict[str, TunnelStatusInfo]:
        return self.registry.snapshot()

    def is_active(self, profile_id: str) -> bool:
        return profile_id in self.registry

    def shutdown_all(self) -> int:
        """Stop every active tunnel. Returns how many were stopped."""
        stopped = 0
        for profile_id in self.registry.profile_ids():
            if self.stop(profile_id):
                stopped += 1
        return stopped

    def connect_host(
        self,
        host_id: str,
        host_key_verifier: HostKeyVerifier | None = None,
        interactive_auth_handler: InteractiveAuthHandler | None = None,
        cancel_token: CancellationToken | None = None,
        passwords: Mapping[str, str] | None = None,
    ) -> ChainedConnection:
        """Connect a saved host, through its jump profile when it has one.

        The caller owns the returned connection.

        Raises:
            HostNotFoundError: If the host or one of its jump hosts is missing
            ConfigurationError: If a host cannot be used as a hop
            ConnectionError: If a hop fails
            OperationCancelledError: If cancelled between steps
        """
        host = self.host_store.get_by_id(host_id)
        if host is None:
            raise HostNotFoundError(host_id)

        hops: list[HopConnectionInfo] = []
        if self.jump_resolver is not None:
            hops = self.jump_resolver.resolve_connection_chain(host, passwords)
        if not hops:
            password = (passwords or {}).get(host.id)
            hops = [HopConnectionInfo.from_host(host, password)]

        return self.connector.connect(hops, host_key_verifier, interactive_auth_handler, cancel_token)

    def _materialise(self, chain: ResolvedChain) -> list[HopConnectionInfo]:
        hops = []
        for node in chain.ssh_hosts:
            if not node.host_id:
                raise ConfigurationError(f"SSH host node '{node.display_name}' has no HostId")
            host = self.host_store.get_by_id(node.host_id)
            if host is None:
                raise HostNotFoundError(node.host_id, f"SSH host node '{node.display_name}'")
            hops.append(HopConnectionInfo.from_host(host))
        return hops

    def _discard(self, tunnel: ActiveTunnel) -> None:
        handles: tuple[ForwardHandle, ...] = tunnel.forwards
        for handle in reversed(handles):
            self.forwarding.stop(handle)
        tunnel.connection.close()


def _profile_name(profile: TunnelProfile) -> str:
    return profile.display_name or profile.id
