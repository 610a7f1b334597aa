"""paramiko backed transport provider."""

import socket
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

import paramiko

from ..common.exceptions import AuthenticationError, HostKeyVerificationError
from ..common.logging import get_logger
from ..common.utils import mask_sensitive_data
from ..hosts.models import AuthType, HopConnectionInfo
from .forwards import (
    DynamicPortForward,
    LocalPortForward,
    RemoteForwardDispatcher,
    RemotePortForward,
)
from .interfaces import (
    ForwardedPort,
    HostKeyVerifier,
    InteractiveAuthHandler,
    compute_fingerprint,
    resolve_awaitable,
    resolve_verdict,
)

if TYPE_CHECKING:
    from ..tunnel.config import TunnelConfig

logger = get_logger(__name__)


class ParamikoCredentials:
    """Key material for one hop: a loaded private key or an agent connection."""

    def __init__(
        self, pkey: paramiko.PKey | None = None, agent: paramiko.Agent | None = None
    ) -> None:
        self.pkey = pkey
        self.agent = agent

    def keys(self) -> list[paramiko.PKey]:
        if self.pkey is not None:
            return [self.pkey]
        if self.agent is not None:
            return list(self.agent.get_keys())
        return []

    def close(self) -> None:
        self.pkey = None
        if self.agent is not None:
            agent, self.agent = self.agent, None
            agent.close()


class ParamikoClient:
    """Authenticated paramiko transport to one hop."""

    def __init__(self, transport: paramiko.Transport, hop: HopConnectionInfo, config: "TunnelConfig") -> None:
        self._transport = transport
        self._hop = hop
        self._config = config
        self._dispatcher = RemoteForwardDispatcher()
        self._forwards: list[Any] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def hop(self) -> HopConnectionInfo:
        return self._hop

    @property
    def description(self) -> str:
        return str(self._hop)

    @property
    def is_connected(self) -> bool:
        return not self._closed and self._transport.is_active()

    def open_channel(self, destination: tuple[str, int], origin: tuple[str, int]) -> paramiko.Channel:
        """Open a ``direct-tcpip`` channel to ``destination`` through this hop."""
        return self._transport.open_channel(
            "direct-tcpip", destination, origin, timeout=self._config.connect_timeout
        )

    def start_local_forward(
        self, bind_address: str, bind_port: int, remote_host: str, remote_port: int
    ) -> ForwardedPort:
        forward = LocalPortForward(
            self.open_channel,
            bind_address,
            bind_port,
            remote_host,
            remote_port,
            buffer_size=self._config.buffer_size,
        )
        return self._track(forward.start())

    def start_remote_forward(
        self, bind_address: str, remote_port: int, target_host: str, target_port: int
    ) -> ForwardedPort:
        forward = RemotePortForward(
            self._transport,
            self._dispatcher,
            bind_address,
            remote_port,
            target_host,
            target_port,
            buffer_size=self._config.buffer_size,
            connect_timeout=self._config.connect_timeout,
        )
        return self._track(forward.start())

    def start_dynamic_forward(self, bind_address: str, bind_port: int) -> ForwardedPort:
        forward = DynamicPortForward(
            self.open_channel, bind_address, bind_port, buffer_size=self._config.buffer_size
        )
        return self._track(forward.start())

    def _track(self, forward: Any) -> Any:
        with self._lock:
            self._forwards.append(forward)
        return forward

    def disconnect(self) -> None:
        self._transport.close()

    def close(self) -> None:
        """Stop forwards opened through this client and close the transport."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            forwards = list(reversed(self._forwards))
            self._forwards.clear()

        for forward in forwards:
            try:
                forward.close()
            except Exception as exc:
                logger.debug("Error closing forward", client=self.description, error=str(exc))
        self._transport.close()

    def __repr__(self) -> str:
        state = "connected" if self.is_connected else "closed"
        return f"ParamikoClient({self.description}, {state})"


class ParamikoTransport:
    """Opens paramiko connections for the chain connector.

    The TCP socket is opened here, so a hop can be reached at any endpoint:
    its own address or a loopback forward of the previous hop.
    """

    def __init__(self, config: "TunnelConfig") -> None:
        self._config = config

    def load_credentials(self, hop: HopConnectionInfo) -> ParamikoCredentials | None:
        """Load the private key or open the agent connection ``hop`` needs.

        Raises:
            AuthenticationError: If the key file cannot be read or decrypted
        """
        if hop.auth_type == AuthType.PRIVATE_KEY:
            if not hop.private_key_path:
                raise AuthenticationError(f"No private key configured for {hop}")
            path = Path(hop.private_key_path).expanduser()
            passphrase = hop.passphrase.get_secret_value() if hop.passphrase else None
            try:
                pkey = paramiko.PKey.from_path(path, passphrase)
            except (OSError, paramiko.SSHException) as exc:
                raise AuthenticationError(f"Cannot load private key {path}: {exc}") from exc
            return ParamikoCredentials(pkey=pkey)

        if hop.auth_type == AuthType.AGENT:
            return ParamikoCredentials(agent=paramiko.Agent())

        return None

    def connect(
        self,
        hop: HopConnectionInfo,
        endpoint: tuple[str, int],
        credentials: ParamikoCredentials | None,
        host_key_verifier: HostKeyVerifier | None,
        interactive_auth_handler: InteractiveAuthHandler | None,
        timeout: float,
    ) -> ParamikoClient:
        logger.debug("Opening SSH transport", hop=str(hop), endpoint=f"{endpoint[0]}:{endpoint[1]}")
        sock = socket.create_connection(endpoint, timeout=timeout)
        transport: paramiko.Transport | None = None
        try:
            transport = paramiko.Transport(sock)
            transport.banner_timeout = timeout
            transport.handshake_timeout = timeout
            transport.auth_timeout = timeout

            transport.start_client(timeout=timeout)
            self._verify_host_key(hop, transport, host_key_verifier)
            self._authenticate(hop, transport, credentials, interactive_auth_handler)

            keepalive = hop.keepalive_interval
            if keepalive is None:
                keepalive = self._config.keepalive_interval
            if keepalive:
                transport.set_keepalive(int(keepalive))
        except Exception:
            if transport is not None:
                transport.close()
            sock.close()
            raise

        logger.info("SSH hop connected", hop=str(hop))
        return ParamikoClient(transport, hop, self._config)

    def _verify_host_key(
        self,
        hop: HopConnectionInfo,
        transport: paramiko.Transport,
        verifier: HostKeyVerifier | None,
    ) -> None:
        key = transport.get_remote_server_key()
        key_bytes = key.asbytes()
        fingerprint = compute_fingerprint(key_bytes)

        if hop.skip_host_key_verification:
            logger.warning("Host key verification skipped", hop=str(hop), fingerprint=fingerprint)
            return
        if verifier is None:
            logger.warning(
                "No host key verifier supplied, accepting key", hop=str(hop), fingerprint=fingerprint
            )
            return

        accepted = resolve_verdict(
            verifier(hop.hostname, hop.port, key.get_name(), fingerprint, key_bytes)
        )
        if not accepted:
            raise HostKeyVerificationError(hop.hostname, hop.port, fingerprint)

    def _authenticate(
        self,
        hop: HopConnectionInfo,
        transport: paramiko.Transport,
        credentials: ParamikoCredentials | None,
        interactive_auth_handler: InteractiveAuthHandler | None,
    ) -> None:
        try:
            if hop.auth_type == AuthType.PASSWORD:
                password = hop.password.get_secret_value() if hop.password else ""
                logger.debug(
                    "Authenticating with password",
                    hop=str(hop),
                    password=mask_sensitive_data(password, show_chars=0),
                )
                transport.auth_password(hop.username, password)

            elif hop.auth_type in (AuthType.PRIVATE_KEY, AuthType.AGENT):
                self._auth_with_keys(hop, transport, credentials)

            elif hop.auth_type == AuthType.KEYBOARD_INTERACTIVE:
                if interactive_auth_handler is None:
                    raise AuthenticationError(
                        f"Keyboard-interactive authentication needs a handler for {hop}"
                    )

                def answer(title: str, instructions: str, prompts: Sequence[tuple[str, bool]]) -> list[str]:
                    return list(resolve_awaitable(interactive_auth_handler(title, instructions, prompts)))

                transport.auth_interactive(hop.username, answer)

        except paramiko.AuthenticationException as exc:
            raise AuthenticationError(f"Authentication failed for {hop}: {exc}") from exc

        if not transport.is_authenticated():
            raise AuthenticationError(f"Authentication incomplete for {hop}")

    def _auth_with_keys(
        self,
        hop: HopConnectionInfo,
        transport: paramiko.Transport,
        credentials: ParamikoCredentials | None,
    ) -> None:
        keys = credentials.keys() if credentials is not None else []
        if not keys:
            raise AuthenticationError(f"No keys available for {hop}")

        last_error: paramiko.AuthenticationException | None = None
        for key in keys:
            try:
                transport.auth_publickey(hop.username, key)
                return
            except paramiko.AuthenticationException as exc:
                last_error = exc
        raise AuthenticationError(f"Authentication failed for {hop}: {last_error}") from last_error
