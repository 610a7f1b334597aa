"""Starting and stopping port forwards on established connections."""

import threading
import uuid
from collections.abc import Iterable, Sequence
from typing import Any

from ..common.cancellation import CancellationToken, check_cancelled
from ..common.exceptions import ForwardingError, OperationCancelledError
from ..common.logging import get_logger
from ..common.resources import release_quietly
from ..common.utils import validate_port
from ..graph.models import ForwardDirective, ForwardType
from ..graph.resolver import DEFAULT_TARGET_HOST
from ..hosts.models import PortForwardingProfile
from ..transport.interfaces import SSHClientHandle
from .config import TunnelConfig
from .models import ForwardHandle, ForwardingStatus

logger = get_logger(__name__)

LISTENING_KINDS = frozenset({ForwardType.LOCAL, ForwardType.DYNAMIC})


def _client_of(connection: Any) -> SSHClientHandle:
    """Accept a ChainedConnection or a bare client handle."""
    client = getattr(connection, "client", None)
    return client if client is not None else connection


class ForwardingManager:
    """Starts directives on a connection and tracks the resulting forwards.

    Local and dynamic listeners are unique per local port across every
    forward this manager holds.
    """

    def __init__(self, config: TunnelConfig | None = None) -> None:
        self.config = config or TunnelConfig()
        self._handles: dict[str, ForwardHandle] = {}
        self._lock = threading.Lock()

    def start(
        self, connection: Any, directive: ForwardDirective, session_id: str | None = None
    ) -> ForwardHandle:
        """Start one forward.

        Args:
            connection: ChainedConnection or client handle to start it on
            directive: Forward to start
            session_id: Tunnel session owning the forward

        Returns:
            Handle of the running forward

        Raises:
            ForwardingError: If the directive is invalid, its local port is
                taken by another forward here, or the transport refuses it
        """
        self._validate(directive)

        handle = ForwardHandle(id=str(uuid.uuid4()), session_id=session_id, directive=directive)
        with self._lock:
            if directive.kind in LISTENING_KINDS and self._port_in_use(directive.local_port):
                raise ForwardingError(
                    f"Local port {directive.local_port} is already in use by another forward",
                    directive,
                )
            self._handles[handle.id] = handle

        bind = directive.effective_bind_address(self.config.default_bind_address)
        client = _client_of(connection)
        try:
            if directive.kind == ForwardType.LOCAL:
                forward = client.start_local_forward(
                    bind,
                    directive.local_port,
                    directive.remote_host or DEFAULT_TARGET_HOST,
                    directive.remote_port,
                )
            elif directive.kind == ForwardType.REMOTE:
                forward = client.start_remote_forward(
                    bind,
                    directive.remote_port,
                    directive.remote_host or DEFAULT_TARGET_HOST,
                    directive.local_port,
                )
            else:
                forward = client.start_dynamic_forward(bind, directive.local_port)
        except Exception as exc:
            with self._lock:
                self._handles.pop(handle.id, None)
            handle.status = ForwardingStatus.FAILED
            handle.error_message = str(exc)
            logger.warning(
                "Failed to start port forward",
                session_id=session_id,
                forward=directive.describe(),
                error=str(exc),
            )
            raise ForwardingError(
                f"Failed to start port forward {directive.describe()}: {exc}", directive
            ) from exc

        handle.forward = forward
        handle.status = ForwardingStatus.ACTIVE
        logger.info(
            "Started port forward",
            session_id=session_id,
            kind=directive.kind.value,
            forward=directive.describe(),
        )
        return handle

    def stop(self, handle: ForwardHandle) -> None:
        """Stop a forward. Never raises; stopping twice is a no-op."""
        with self._lock:
            self._handles.pop(handle.id, None)
            if handle.status in (ForwardingStatus.STOPPED, ForwardingStatus.FAILED):
                return
            handle.status = ForwardingStatus.STOPPED

        if handle.forward is not None:
            release_quietly(f"forward {handle.id} stop", handle.forward.stop, owner="forwarding")
            release_quietly(f"forward {handle.id} close", handle.forward.close, owner="forwarding")
        logger.info("Stopped port forward", session_id=handle.session_id, forward=handle.describe())

    def start_all(
        self,
        connection: Any,
        directives: Iterable[ForwardDirective],
        session_id: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> tuple[list[ForwardHandle], list[ForwardHandle]]:
        """Start every directive, skipping the ones that fail.

        Returns:
            Started handles and failed handles (status FAILED, with the error)

        Raises:
            OperationCancelledError: If cancelled between directives; the
                forwards started by this call are stopped first
        """
        started: list[ForwardHandle] = []
        failed: list[ForwardHandle] = []

        for directive in directives:
            try:
                check_cancelled(cancel_token, f"starting {directive.describe()}")
            except OperationCancelledError:
                for handle in reversed(started):
                    self.stop(handle)
                raise

            try:
                started.append(self.start(connection, directive, session_id))
            except ForwardingError as exc:
                failed.append(
                    ForwardHandle(
                        id=str(uuid.uuid4()),
                        session_id=session_id,
                        directive=directive,
                        status=ForwardingStatus.FAILED,
                        error_message=str(exc.__cause__ or exc),
                    )
                )

        return started, failed

    def start_profiles(
        self,
        connection: Any,
        profiles: Sequence[PortForwardingProfile],
        session_id: str | None = None,
        auto_start_only: bool = True,
    ) -> tuple[list[ForwardHandle], list[ForwardHandle]]:
        """Start the enabled saved forwards of a host."""
        directives = [
            profile.to_directive()
            for profile in profiles
            if profile.is_enabled and (profile.auto_start or not auto_start_only)
        ]
        return self.start_all(connection, directives, session_id)

    def list_active(self, session_id: str | None = None) -> list[ForwardHandle]:
        with self._lock:
            handles = list(self._handles.values())
        return [
            handle
            for handle in handles
            if handle.is_active and (session_id is None or handle.session_id == session_id)
        ]

    def stop_all_for_session(self, session_id: str) -> int:
        """Stop every forward of ``session_id``, newest first. Returns how many."""
        handles = self.list_active(session_id)
        for handle in reversed(handles):
            self.stop(handle)
        return len(handles)

    def stop_all(self) -> int:
        handles = self.list_active()
        for handle in reversed(handles):
            self.stop(handle)
        return len(handles)

    def is_local_port_in_use(self, port: int) -> bool:
        """True if a local or dynamic forward managed here listens on ``port``."""
        with self._lock:
            return self._port_in_use(port)

    def _port_in_use(self, port: int | None) -> bool:
        return any(
            handle.directive.kind in LISTENING_KINDS
            and handle.directive.local_port == port
            and handle.status in (ForwardingStatus.STARTING, ForwardingStatus.ACTIVE)
            for handle in self._handles.values()
        )

    def _validate(self, directive: ForwardDirective) -> None:
        required = {
            ForwardType.LOCAL: ("local_port", "remote_port"),
            ForwardType.REMOTE: ("remote_port", "local_port"),
            ForwardType.DYNAMIC: ("local_port",),
        }[directive.kind]

        for field_name in required:
            value = getattr(directive, field_name)
            try:
                validate_port(value, field_name)
            except ValueError as exc:
                raise ForwardingError(
                    f"Invalid {field_name} for {directive.kind.value} forward: {exc}",
                    directive,
                ) from exc
