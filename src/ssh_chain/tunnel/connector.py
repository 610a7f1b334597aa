"""Sequential multi-hop connection establishment."""

import socket
from collections.abc import Callable, Sequence

from ..common.cancellation import CancellationToken, check_cancelled
from ..common.exceptions import ConfigurationError, ConnectionError, OperationCancelledError
from ..common.logging import get_logger
from ..hosts.models import HopConnectionInfo
from ..transport.interfaces import (
    CredentialMaterial,
    ForwardedPort,
    HostKeyVerifier,
    InteractiveAuthHandler,
    SSHClientHandle,
    SSHTransport,
)
from .config import TunnelConfig
from .connection import ChainedConnection, release_chain_resources

logger = get_logger(__name__)


def allocate_ephemeral_port(host: str = "127.0.0.1") -> int:
    """Ask the OS for a free port by binding ``host:0`` and releasing it.

    The port is free when this returns but nothing reserves it; another
    process can take it before the forward binds.
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    with socket.socket(family, socket.SOCK_STREAM) as probe:
        probe.bind((host, 0))
        return int(probe.getsockname()[1])


class ChainConnector:
    """Connects a chain of hops, each one through a forward on the previous.

    Hop 0 is reached directly. For every later hop the previous client
    starts a local forward from a fresh loopback port to the hop's real
    address, and the hop is connected through that port. The client of the
    last hop is the target of the returned connection.
    """

    def __init__(
        self,
        transport: SSHTransport,
        config: TunnelConfig | None = None,
        port_allocator: Callable[[str], int] = allocate_ephemeral_port,
    ) -> None:
        self.transport = transport
        self.config = config or TunnelConfig()
        self._allocate_port = port_allocator

    def connect(
        self,
        chain: Sequence[HopConnectionInfo],
        host_key_verifier: HostKeyVerifier | None = None,
        interactive_auth_handler: InteractiveAuthHandler | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ChainedConnection:
        """Connect every hop of ``chain`` in order.

        Args:
            chain: Hops from first jump host to target
            host_key_verifier: Called once per hop with the server key
            interactive_auth_handler: Answers keyboard-interactive prompts
            cancel_token: Checked before each hop and each forward

        Returns:
            Connection owning every client and forward that was created

        Raises:
            ConfigurationError: If ``chain`` is empty
            ConnectionError: If a hop fails; everything created so far has
                been torn down
            OperationCancelledError: If cancelled between steps; everything
                created so far has been torn down
        """
        if not chain:
            raise ConfigurationError("Connection chain is empty")

        loopback = self.config.loopback_host
        intermediates: list[SSHClientHandle] = []
        forwards: list[ForwardedPort] = []
        auxiliary: list[CredentialMaterial] = []
        last = len(chain) - 1

        logger.info(
            "Connecting chain",
            hops=len(chain),
            route=" -> ".join(f"{hop.hostname}:{hop.port}" for hop in chain),
        )

        hop_index = 0
        endpoint = chain[0].endpoint
        try:
            for hop_index, hop in enumerate(chain):
                check_cancelled(cancel_token, f"connecting hop {hop_index}")
                client = self._connect_hop(
                    hop, endpoint, host_key_verifier, interactive_auth_handler, auxiliary
                )
                logger.debug("Hop connected", hop_index=hop_index, hop=str(hop))

                if hop_index == last:
                    connection = ChainedConnection(
                        client, chain, intermediates, forwards, auxiliary
                    )
                    break

                intermediates.append(client)
                next_hop = chain[hop_index + 1]

                check_cancelled(cancel_token, f"forwarding to hop {hop_index + 1}")
                port = self._allocate_port(loopback)
                forward = client.start_local_forward(
                    loopback, port, next_hop.hostname, next_hop.port
                )
                forwards.append(forward)
                endpoint = (loopback, forward.bound_port)
                logger.debug(
                    "Inter-hop forward started",
                    hop_index=hop_index,
                    local_port=forward.bound_port,
                    next_hop=f"{next_hop.hostname}:{next_hop.port}",
                )

        except OperationCancelledError:
            logger.info("Chain connection cancelled", hop_index=hop_index)
            release_chain_resources(None, forwards, intermediates, auxiliary)
            raise
        except Exception as exc:
            failed = chain[hop_index]
            logger.error(
                "Chain connection failed",
                hop_index=hop_index,
                host=failed.hostname,
                error=str(exc),
            )
            release_chain_resources(None, forwards, intermediates, auxiliary)
            raise ConnectionError(hop_index, failed.hostname, exc) from exc

        logger.info("Chain connected", hops=len(chain))
        return connection

    def _connect_hop(
        self,
        hop: HopConnectionInfo,
        endpoint: tuple[str, int],
        host_key_verifier: HostKeyVerifier | None,
        interactive_auth_handler: InteractiveAuthHandler | None,
        auxiliary: list[CredentialMaterial],
    ) -> SSHClientHandle:
        credentials = self.transport.load_credentials(hop)
        if credentials is not None:
            auxiliary.append(credentials)

        return self.transport.connect(
            hop,
            endpoint,
            credentials,
            host_key_verifier,
            interactive_auth_handler,
            hop.timeout or self.config.connect_timeout,
        )
