"""Port forward implementations over SSH channels.

Local and dynamic forwards run a threaded TCP listener here and open a
``direct-tcpip`` channel per accepted connection. Remote forwards ask the
server to listen and receive ``forwarded-tcpip`` channels back.
"""

import ipaddress
import select
import socket
import socketserver
import struct
import threading
from collections.abc import Callable
from typing import Any

import paramiko

from ..common.logging import get_logger

logger = get_logger(__name__)

DEFAULT_BUFFER_SIZE = 16384

# (destination, origin) -> channel-like object with recv/sendall/fileno/close
ChannelOpener = Callable[[tuple[str, int], tuple[str, int]], Any]

SOCKS_VERSION = 0x05
SOCKS_NO_AUTH = 0x00
SOCKS_NO_ACCEPTABLE_METHODS = 0xFF
SOCKS_CMD_CONNECT = 0x01
SOCKS_ATYP_IPV4 = 0x01
SOCKS_ATYP_DOMAIN = 0x03
SOCKS_ATYP_IPV6 = 0x04

SOCKS_REPLY_SUCCEEDED = 0x00
SOCKS_REPLY_GENERAL_FAILURE = 0x01
SOCKS_REPLY_CONNECTION_REFUSED = 0x05
SOCKS_REPLY_COMMAND_NOT_SUPPORTED = 0x07
SOCKS_REPLY_ADDRESS_TYPE_NOT_SUPPORTED = 0x08


def pump(left: Any, right: Any, stop_event: threading.Event, buffer_size: int = DEFAULT_BUFFER_SIZE) -> None:
    """Copy bytes both ways until either side closes or ``stop_event`` is set.

    Both ends must expose ``fileno`` so they can be multiplexed with select;
    paramiko channels do.
    """
    while not stop_event.is_set():
        readable, _, _ = select.select([left, right], [], [], 1.0)
        if left in readable:
            data = left.recv(buffer_size)
            if not data:
                break
            right.sendall(data)
        if right in readable:
            data = right.recv(buffer_size)
            if not data:
                break
            left.sendall(data)


class SocksError(Exception):
    """SOCKS negotiation failure carrying the reply code to send back."""

    def __init__(self, message: str, reply: int = SOCKS_REPLY_GENERAL_FAILURE) -> None:
        self.reply = reply
        super().__init__(message)


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            raise SocksError("Client closed the connection during SOCKS negotiation")
        data += chunk
    return data


def negotiate_socks5(sock: socket.socket) -> tuple[str, int]:
    """Run the server side of a SOCKS5 handshake up to the CONNECT request.

    Only the no-authentication method and the CONNECT command are supported.
    The method selection reply is sent here; the request reply is left to the
    caller because it depends on whether the channel opens.

    Returns:
        Requested destination host and port

    Raises:
        SocksError: On protocol violations and unsupported requests
    """
    version, method_count = _recv_exact(sock, 2)
    if version != SOCKS_VERSION:
        raise SocksError(f"Unsupported SOCKS version: {version}")

    methods = _recv_exact(sock, method_count)
    if SOCKS_NO_AUTH not in methods:
        sock.sendall(bytes([SOCKS_VERSION, SOCKS_NO_ACCEPTABLE_METHODS]))
        raise SocksError("Client offered no supported authentication method")
    sock.sendall(bytes([SOCKS_VERSION, SOCKS_NO_AUTH]))

    version, command, _, address_type = _recv_exact(sock, 4)
    if version != SOCKS_VERSION:
        raise SocksError(f"Unsupported SOCKS version: {version}")
    if command != SOCKS_CMD_CONNECT:
        raise SocksError(
            f"Unsupported SOCKS command: {command}", SOCKS_REPLY_COMMAND_NOT_SUPPORTED
        )

    if address_type == SOCKS_ATYP_IPV4:
        host = str(ipaddress.IPv4Address(_recv_exact(sock, 4)))
    elif address_type == SOCKS_ATYP_DOMAIN:
        (length,) = _recv_exact(sock, 1)
        raw_host = _recv_exact(sock, length)
        try:
            host = raw_host.decode("idna")
        except UnicodeError as exc:
            raise SocksError(f"Malformed SOCKS domain name: {raw_host!r}") from exc
    elif address_type == SOCKS_ATYP_IPV6:
        host = str(ipaddress.IPv6Address(_recv_exact(sock, 16)))
    else:
        raise SocksError(
            f"Unsupported SOCKS address type: {address_type}",
            SOCKS_REPLY_ADDRESS_TYPE_NOT_SUPPORTED,
        )

    (port,) = struct.unpack("!H", _recv_exact(sock, 2))
    return host, port


def socks5_reply(code: int) -> bytes:
    """Request reply with an all-zero IPv4 bind address."""
    return bytes([SOCKS_VERSION, code, 0x00, SOCKS_ATYP_IPV4, 0, 0, 0, 0, 0, 0])


class _ForwardServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    daemon_threads = True
    allow_reuse_address = True


class _ForwardServer6(_ForwardServer):
    address_family = socket.AF_INET6


class _ListenerForward:
    """Threaded local listener shared by local and dynamic forwards."""

    kind = "listener"

    def __init__(
        self,
        open_channel: ChannelOpener,
        bind_address: str,
        bind_port: int,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        self.bind_address = bind_address
        self.requested_port = bind_port
        self._open_channel = open_channel
        self._buffer_size = buffer_size
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._server: _ForwardServer | None = None
        self._acceptor_thread: threading.Thread | None = None

    @property
    def bound_port(self) -> int:
        if self._server is not None:
            return int(self._server.server_address[1])
        return self.requested_port

    @property
    def is_active(self) -> bool:
        return self._server is not None and not self._stop_event.is_set()

    def start(self) -> "_ListenerForward":
        """Bind the listener and start accepting.

        Raises:
            OSError: If the address cannot be bound
        """
        forward = self

        class ForwardHandler(socketserver.BaseRequestHandler):
            def handle(self) -> None:
                forward._handle(self.request, self.client_address)

        server_class = _ForwardServer6 if ":" in self.bind_address else _ForwardServer
        self._server = server_class((self.bind_address, self.requested_port), ForwardHandler)
        self._acceptor_thread = threading.Thread(
            target=self._server.serve_forever,
            name=f"ssh-chain-{self.kind}-{self.bound_port}",
            daemon=True,
        )
        self._acceptor_thread.start()
        logger.info("Forward listening", kind=self.kind, description=self.description)
        return self

    def stop(self) -> None:
        with self._lock:
            if self._stop_event.is_set():
                return
            self._stop_event.set()
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
        if self._acceptor_thread is not None:
            self._acceptor_thread.join(timeout=3.0)
        logger.info("Forward stopped", kind=self.kind, description=self.description)

    def close(self) -> None:
        self.stop()

    @property
    def description(self) -> str:
        return f"{self.bind_address}:{self.bound_port}"

    def _handle(self, sock: socket.socket, client_address: Any) -> None:
        raise NotImplementedError

    def _relay(self, sock: socket.socket, destination: tuple[str, int], origin: Any) -> bool:
        try:
            channel = self._open_channel(destination, tuple(origin[:2]))
        except Exception as exc:
            logger.warning(
                "Failed to open forwarding channel",
                kind=self.kind,
                destination=f"{destination[0]}:{destination[1]}",
                error=str(exc),
            )
            return False

        self._after_open(sock)
        try:
            pump(sock, channel, self._stop_event, self._buffer_size)
        except OSError as exc:
            logger.debug("Forwarded connection ended", kind=self.kind, error=str(exc))
        finally:
            channel.close()
        return True

    def _after_open(self, sock: socket.socket) -> None:
        pass

    def __enter__(self) -> "_ListenerForward":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "active" if self.is_active else "stopped"
        return f"{type(self).__name__}({self.description}, {state})"


class LocalPortForward(_ListenerForward):
    """Listen here and forward each connection to ``remote_host:remote_port``."""

    kind = "local"

    def __init__(
        self,
        open_channel: ChannelOpener,
        bind_address: str,
        bind_port: int,
        remote_host: str,
        remote_port: int,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        super().__init__(open_channel, bind_address, bind_port, buffer_size)
        self.remote_host = remote_host
        self.remote_port = remote_port

    @property
    def description(self) -> str:
        return f"{self.bind_address}:{self.bound_port} -> {self.remote_host}:{self.remote_port}"

    def _handle(self, sock: socket.socket, client_address: Any) -> None:
        self._relay(sock, (self.remote_host, self.remote_port), client_address)


class DynamicPortForward(_ListenerForward):
    """SOCKS5 listener; each CONNECT request opens its own channel."""

    kind = "dynamic"

    @property
    def description(self) -> str:
        return f"{self.bind_address}:{self.bound_port} (SOCKS5)"

    def _handle(self, sock: socket.socket, client_address: Any) -> None:
        try:
            destination = negotiate_socks5(sock)
        except SocksError as exc:
            logger.debug("SOCKS negotiation failed", client=str(client_address), error=str(exc))
            if exc.reply != SOCKS_REPLY_GENERAL_FAILURE:
                sock.sendall(socks5_reply(exc.reply))
            return

        if not self._relay(sock, destination, client_address):
            sock.sendall(socks5_reply(SOCKS_REPLY_CONNECTION_REFUSED))

    def _after_open(self, sock: socket.socket) -> None:
        sock.sendall(socks5_reply(SOCKS_REPLY_SUCCEEDED))


class RemoteForwardDispatcher:
    """Routes ``forwarded-tcpip`` channels of one transport by server port.

    paramiko keeps a single port-forward handler per transport, so a client
    with several remote forwards installs one dispatcher and registers each
    forward here.
    """

    def __init__(self) -> None:
        self._routes: dict[int, "RemotePortForward"] = {}
        self._lock = threading.Lock()

    def register(self, port: int, forward: "RemotePortForward") -> None:
        with self._lock:
            self._routes[port] = forward

    def unregister(self, port: int) -> None:
        with self._lock:
            self._routes.pop(port, None)

    def __call__(self, channel: Any, origin: tuple[str, int], server: tuple[str, int]) -> None:
        with self._lock:
            forward = self._routes.get(server[1])
        if forward is None:
            logger.debug("No remote forward registered for port", port=server[1])
            channel.close()
            return
        forward.accept(channel, origin)


class RemotePortForward:
    """Server-side listener delivering connections to ``target_host:target_port`` here."""

    kind = "remote"

    def __init__(
        self,
        transport: paramiko.Transport,
        dispatcher: RemoteForwardDispatcher,
        bind_address: str,
        remote_port: int,
        target_host: str,
        target_port: int,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        connect_timeout: float = 10.0,
    ) -> None:
        self.bind_address = bind_address
        self.remote_port = remote_port
        self.target_host = target_host
        self.target_port = target_port
        self._transport = transport
        self._dispatcher = dispatcher
        self._buffer_size = buffer_size
        self._connect_timeout = connect_timeout
        self._bound_port: int | None = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._channels: set[Any] = set()

    @property
    def bound_port(self) -> int:
        return self._bound_port if self._bound_port is not None else self.remote_port

    @property
    def is_active(self) -> bool:
        return self._bound_port is not None and not self._stop_event.is_set()

    @property
    def description(self) -> str:
        return (
            f"remote {self.bind_address}:{self.bound_port} -> "
            f"{self.target_host}:{self.target_port}"
        )

    def start(self) -> "RemotePortForward":
        """Ask the server to listen.

        Raises:
            paramiko.SSHException: If the server refuses the request
        """
        bound = self._transport.request_port_forward(
            self.bind_address, self.remote_port, handler=self._dispatcher
        )
        self._bound_port = bound
        self._dispatcher.register(bound, self)
        logger.info("Forward listening", kind=self.kind, description=self.description)
        return self

    def accept(self, channel: Any, origin: tuple[str, int]) -> None:
        """Serve one forwarded channel on its own thread."""
        if self._stop_event.is_set():
            channel.close()
            return
        threading.Thread(
            target=self._serve_channel,
            args=(channel,),
            name=f"ssh-chain-remote-{self.bound_port}",
            daemon=True,
        ).start()

    def _serve_channel(self, channel: Any) -> None:
        with self._lock:
            self._channels.add(channel)
        try:
            sock = socket.create_connection(
                (self.target_host, self.target_port), timeout=self._connect_timeout
            )
        except OSError as exc:
            logger.warning(
                "Remote forward target unreachable",
                target=f"{self.target_host}:{self.target_port}",
                error=str(exc),
            )
            self._discard(channel)
            return

        try:
            sock.settimeout(None)
            pump(channel, sock, self._stop_event, self._buffer_size)
        except OSError as exc:
            logger.debug("Forwarded connection ended", kind=self.kind, error=str(exc))
        finally:
            sock.close()
            self._discard(channel)

    def _discard(self, channel: Any) -> None:
        with self._lock:
            self._channels.discard(channel)
        channel.close()

    def stop(self) -> None:
        with self._lock:
            if self._stop_event.is_set():
                return
            self._stop_event.set()
            channels = list(self._channels)
            self._channels.clear()

        if self._bound_port is not None:
            self._dispatcher.unregister(self._bound_port)
            try:
                self._transport.cancel_port_forward(self.bind_address, self._bound_port)
            except (paramiko.SSHException, OSError, EOFError) as exc:
                logger.debug("Failed to cancel remote forward", port=self._bound_port, error=str(exc))

        for channel in channels:
            channel.close()
        logger.info("Forward stopped", kind=self.kind, description=self.description)

    def close(self) -> None:
        self.stop()

    def __repr__(self) -> str:
        state = "active" if self.is_active else "stopped"
        return f"RemotePortForward({self.description}, {state})"
