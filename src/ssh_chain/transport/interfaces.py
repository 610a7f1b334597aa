"""Transport provider protocols and callback types.

The chain connector and forwarding manager only talk to these protocols.
``ParamikoTransport`` is the shipped implementation; tests substitute an
in-memory fake.
"""

import asyncio
import base64
import hashlib
import inspect
from collections.abc import Awaitable, Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol, TypeVar, Union, runtime_checkable

from ..hosts.models import HopConnectionInfo

T = TypeVar("T")

# (hostname, port, key type, SHA-256 fingerprint, raw key bytes) -> accept?
HostKeyVerifier = Callable[[str, int, str, str, bytes], Union[bool, Awaitable[bool]]]

# (title, instructions, [(prompt, echo), ...]) -> answers
InteractiveAuthHandler = Callable[
    [str, str, Sequence[tuple[str, bool]]],
    Union[Sequence[str], Awaitable[Sequence[str]]],
]


@runtime_checkable
class CredentialMaterial(Protocol):
    """Per-hop key material that must be released with the connection."""

    def close(self) -> None: ...


@runtime_checkable
class ForwardedPort(Protocol):
    """A running port forward owned by one client."""

    @property
    def bound_port(self) -> int:
        """Port actually bound (differs from the request when it was 0)."""
        ...

    @property
    def is_active(self) -> bool: ...

    def stop(self) -> None:
        """Stop accepting connections. Idempotent."""
        ...

    def close(self) -> None:
        """Release every socket and channel. Idempotent."""
        ...


@runtime_checkable
class SSHClientHandle(Protocol):
    """An authenticated connection to one hop."""

    @property
    def is_connected(self) -> bool: ...

    def start_local_forward(
        self, bind_address: str, bind_port: int, remote_host: str, remote_port: int
    ) -> ForwardedPort: ...

    def start_remote_forward(
        self, bind_address: str, remote_port: int, target_host: str, target_port: int
    ) -> ForwardedPort: ...

    def start_dynamic_forward(self, bind_address: str, bind_port: int) -> ForwardedPort: ...

    def disconnect(self) -> None: ...

    def close(self) -> None: ...


class SSHTransport(Protocol):
    """Factory for client handles."""

    def load_credentials(self, hop: HopConnectionInfo) -> CredentialMaterial | None:
        """Load key material for ``hop``; None when it authenticates without any."""
        ...

    def connect(
        self,
        hop: HopConnectionInfo,
        endpoint: tuple[str, int],
        credentials: CredentialMaterial | None,
        host_key_verifier: HostKeyVerifier | None,
        interactive_auth_handler: InteractiveAuthHandler | None,
        timeout: float,
    ) -> SSHClientHandle:
        """Open a connection to ``hop``, routed to ``endpoint``.

        ``endpoint`` is the hop's own address for the first hop and a
        loopback forward of the previous hop otherwise. The verifier is
        invoked on the calling thread before authentication.

        Raises:
            HostKeyVerificationError: If the verifier rejects the server key
            AuthenticationError: If every configured method is refused
            OSError: On socket level failures
        """
        ...


def compute_fingerprint(key_bytes: bytes) -> str:
    """SHA-256 fingerprint in OpenSSH form, without the ``SHA256:`` prefix."""
    digest = hashlib.sha256(key_bytes).digest()
    return base64.b64encode(digest).decode("ascii").rstrip("=")


async def _await(awaitable: Awaitable[T]) -> T:
    return await awaitable


def resolve_awaitable(value: Union[T, Awaitable[T]]) -> T:
    """Return ``value``, first driving it to completion if it is awaitable.

    Awaitables run under ``asyncio.run`` on a dedicated single-use worker
    thread while the caller blocks. This keeps the wait off any event loop
    the caller may own. Awaitables bound to another running loop (futures,
    tasks) are not supported; pass coroutines.
    """
    if not inspect.isawaitable(value):
        return value  # type: ignore[return-value]

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="ssh-chain-callback") as pool:
        return pool.submit(asyncio.run, _await(value)).result()


def resolve_verdict(result: Union[bool, Awaitable[bool]]) -> bool:
    """Resolve a host key verifier result to a plain bool."""
    return bool(resolve_awaitable(result))
