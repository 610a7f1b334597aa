"""The logical connection produced by the chain connector."""

import threading
from collections.abc import Sequence
from typing import Any

from ..common.exceptions import TeardownError
from ..common.logging import get_logger
from ..common.resources import release_quietly
from ..hosts.models import HopConnectionInfo
from ..transport.interfaces import CredentialMaterial, ForwardedPort, SSHClientHandle

logger = get_logger(__name__)


def release_chain_resources(
    target: SSHClientHandle | None,
    forwards: Sequence[ForwardedPort],
    intermediates: Sequence[SSHClientHandle],
    auxiliary: Sequence[CredentialMaterial],
    stream: Any | None = None,
) -> list[TeardownError]:
    """Tear down chain resources in the order both rollback and close use.

    Stream, target client, forwards newest first, intermediate clients newest
    first, then auxiliary key material. Every step is guarded on its own.

    Returns:
        Failures of individual steps, already logged
    """
    errors: list[TeardownError] = []

    def step(name: str, release: Any) -> None:
        error = release_quietly(name, release, owner="chain")
        if error is not None:
            errors.append(error)

    if stream is not None:
        step("stream", stream.close)

    if target is not None:
        step("target disconnect", target.disconnect)
        step("target close", target.close)

    for index, forward in reversed(list(enumerate(forwards))):
        step(f"forward {index} stop", forward.stop)
        step(f"forward {index} close", forward.close)

    for index, client in reversed(list(enumerate(intermediates))):
        step(f"hop {index} disconnect", client.disconnect)
        step(f"hop {index} close", client.close)

    for index, material in reversed(list(enumerate(auxiliary))):
        step(f"credentials {index}", material.close)

    return errors


class ChainedConnection:
    """Connection to the last hop plus everything that keeps it reachable.

    Owns the target client, the inter-hop forwards, the intermediate clients
    and per-hop key material. ``close`` releases all of them exactly once.
    """

    def __init__(
        self,
        target: SSHClientHandle,
        hops: Sequence[HopConnectionInfo],
        intermediates: Sequence[SSHClientHandle] = (),
        forwards: Sequence[ForwardedPort] = (),
        auxiliary: Sequence[CredentialMaterial] = (),
    ) -> None:
        self.target = target
        self.hops = tuple(hops)
        self.intermediates = tuple(intermediates)
        self.forwards = tuple(forwards)
        self.auxiliary = tuple(auxiliary)
        self._stream: Any | None = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def client(self) -> SSHClientHandle:
        """Client of the final hop; port forwards are started on it."""
        return self.target

    @property
    def hop_count(self) -> int:
        return len(self.hops)

    @property
    def is_connected(self) -> bool:
        return not self._closed and self.target.is_connected

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def stream(self) -> Any | None:
        return self._stream

    def attach_stream(self, stream: Any) -> None:
        """Hand a shell or data stream to the connection so ``close`` releases it first."""
        self._stream = stream

    def close(self) -> list[TeardownError]:
        """Release every owned resource. Later calls do nothing.

        Returns:
            Teardown failures of this call, already logged
        """
        with self._lock:
            if self._closed:
                return []
            self._closed = True

        errors = release_chain_resources(
            self.target, self.forwards, self.intermediates, self.auxiliary, stream=self._stream
        )
        self._stream = None
        if errors:
            logger.warning(
                "Chained connection closed with errors",
                hops=self.hop_count,
                errors=[str(error) for error in errors],
            )
        else:
            logger.debug("Chained connection closed", hops=self.hop_count)
        return errors

    def __enter__(self) -> "ChainedConnection":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        route = " -> ".join(f"{hop.hostname}:{hop.port}" for hop in self.hops)
        state = "closed" if self._closed else "open"
        return f"ChainedConnection({route}, {state})"
