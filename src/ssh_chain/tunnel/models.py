"""Runtime tunnel models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..graph.models import ForwardDirective


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ForwardingStatus(str, Enum):
    """Port forward lifecycle status."""

    STARTING = "starting"
    ACTIVE = "active"
    FAILED = "failed"
    STOPPED = "stopped"


class ForwardHandle(BaseModel):
    """A port forward started by the forwarding manager.

    Status changes in place as the forward starts and stops; the transport
    forward object is kept out of serialised output.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(min_length=1, description="Handle identifier")
    session_id: str | None = Field(default=None, description="Owning tunnel session")
    directive: ForwardDirective
    status: ForwardingStatus = ForwardingStatus.STARTING
    started_at: datetime = Field(default_factory=_utcnow)
    error_message: str | None = None
    forward: Any = Field(default=None, exclude=True, repr=False)

    @property
    def is_active(self) -> bool:
        return self.status == ForwardingStatus.ACTIVE

    @property
    def bound_port(self) -> int | None:
        """Port the listener actually bound, when it is known."""
        if self.forward is not None:
            return int(self.forward.bound_port)
        return None

    def describe(self) -> str:
        return self.directive.describe()


class TunnelStatusInfo(BaseModel):
    """Snapshot entry describing one active tunnel."""

    model_config = ConfigDict(frozen=True)

    profile_id: str
    profile_name: str = ""
    session_id: str
    started_at: datetime
    hosts: tuple[str, ...] = ()
    forwards: tuple[str, ...] = ()

    @property
    def hop_count(self) -> int:
        return len(self.hosts)


class ActiveTunnel(BaseModel):
    """Everything owned by one running tunnel; held only by the registry."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    profile_id: str = Field(min_length=1)
    profile_name: str = ""
    session_id: str = Field(min_length=1)
    connection: Any = Field(exclude=True, repr=False)
    forwards: tuple[ForwardHandle, ...] = ()
    started_at: datetime = Field(default_factory=_utcnow)

    def status_info(self) -> TunnelStatusInfo:
        hops = getattr(self.connection, "hops", ())
        return TunnelStatusInfo(
            profile_id=self.profile_id,
            profile_name=self.profile_name,
            session_id=self.session_id,
            started_at=self.started_at,
            hosts=tuple(f"{hop.hostname}:{hop.port}" for hop in hops),
            forwards=tuple(handle.describe() for handle in self.forwards if handle.is_active),
        )


class ExecutionResult(BaseModel):
    """Outcome of executing a tunnel profile."""

    model_config = ConfigDict(frozen=True)

    success: bool
    error_message: str | None = None
    session_id: str | None = None
    failed_directives: tuple[str, ...] = ()

    @classmethod
    def failure(cls, message: str) -> "ExecutionResult":
        return cls(success=False, error_message=message)
