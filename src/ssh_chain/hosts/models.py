"""Host records, jump profiles and saved port forwards.

These are read from external stores; this package never persists them.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from ..common.exceptions import ConfigurationError
from ..graph.models import ForwardDirective, ForwardType


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthType(str, Enum):
    """How a hop authenticates."""

    PASSWORD = "password"
    PRIVATE_KEY = "private_key"
    AGENT = "agent"
    KEYBOARD_INTERACTIVE = "keyboard_interactive"


class HostRecord(BaseModel):
    """A saved SSH host."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id, min_length=1)
    display_name: str | None = None
    hostname: str = Field(min_length=1, description="Hostname or IP address")
    port: int = Field(default=22, ge=1, le=65535)
    username: str = Field(default="", description="Login name")
    auth_type: AuthType = AuthType.AGENT
    password: SecretStr | None = None
    private_key_path: str | None = None
    passphrase: SecretStr | None = None
    proxy_jump_profile_id: str | None = None
    keepalive_interval: float | None = Field(default=None, ge=0)
    timeout: float | None = Field(default=None, gt=0)
    skip_host_key_verification: bool = False

    @property
    def name(self) -> str:
        return self.display_name or self.hostname


class HopConnectionInfo(BaseModel):
    """Connection parameters of one hop in a connection chain."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    hostname: str = Field(min_length=1)
    port: int = Field(default=22, ge=1, le=65535)
    username: str = Field(min_length=1)
    auth_type: AuthType = AuthType.AGENT
    password: SecretStr | None = None
    private_key_path: str | None = None
    passphrase: SecretStr | None = None
    timeout: float | None = Field(default=None, gt=0)
    keepalive_interval: float | None = Field(default=None, ge=0)
    skip_host_key_verification: bool = False
    host_id: str | None = None

    @classmethod
    def from_host(cls, host: HostRecord, password: str | None = None) -> "HopConnectionInfo":
        """Build hop parameters from a host record.

        Args:
            host: Saved host
            password: Decrypted password overriding the stored one

        Raises:
            ConfigurationError: If the record cannot be used as a hop (no
                username, for example)
        """
        try:
            return cls(
                hostname=host.hostname,
                port=host.port,
                username=host.username,
                auth_type=host.auth_type,
                password=SecretStr(password) if password is not None else host.password,
                private_key_path=host.private_key_path,
                passphrase=host.passphrase,
                timeout=host.timeout,
                keepalive_interval=host.keepalive_interval,
                skip_host_key_verification=host.skip_host_key_verification,
                host_id=host.id,
            )
        except ValidationError as exc:
            fields = ", ".join(str(error["loc"][0]) for error in exc.errors() if error["loc"])
            raise ConfigurationError(
                f"Host '{host.name}' cannot be used as a hop: invalid {fields or 'settings'}"
            ) from exc

    @property
    def endpoint(self) -> tuple[str, int]:
        return self.hostname, self.port

    def __str__(self) -> str:
        return f"{self.username}@{self.hostname}:{self.port}"


class ProxyJumpHop(BaseModel):
    """One jump host in a jump profile."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    jump_host_id: str = Field(min_length=1)
    sort_order: int = 0


class ProxyJumpProfile(BaseModel):
    """An ordered list of jump hosts shared by any number of target hosts."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id, min_length=1)
    display_name: str = Field(default="", max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    is_enabled: bool = True
    hops: tuple[ProxyJumpHop, ...] = ()

    def ordered_hops(self) -> list[ProxyJumpHop]:
        return sorted(self.hops, key=lambda hop: hop.sort_order)


class PortForwardingProfile(BaseModel):
    """A saved port forward attached to a host."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id, min_length=1)
    display_name: str = Field(default="", max_length=200)
    forwarding_type: ForwardType
    local_bind_address: str = "127.0.0.1"
    local_port: int = Field(ge=1, le=65535)
    remote_host: str | None = None
    remote_port: int | None = Field(default=None, ge=1, le=65535)
    host_id: str | None = None
    is_enabled: bool = True
    auto_start: bool = False
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("remote_host")
    @classmethod
    def validate_remote_host(cls, v: str | None) -> str | None:
        """Blank remote hosts are treated as unset."""
        if v is not None and not v.strip():
            return None
        return v

    def to_directive(self) -> ForwardDirective:
        """Convert to a forward directive.

        For remote forwards the saved profile describes the remote listener
        with ``remote_port`` and delivers to ``local_bind_address:local_port``.
        """
        if self.forwarding_type == ForwardType.REMOTE:
            return ForwardDirective(
                kind=ForwardType.REMOTE,
                remote_port=self.remote_port,
                local_port=self.local_port,
                remote_host=self.local_bind_address,
                label=self.display_name,
            )
        return ForwardDirective(
            kind=self.forwarding_type,
            local_port=self.local_port,
            remote_port=self.remote_port,
            remote_host=self.remote_host,
            bind_address=self.local_bind_address,
            label=self.display_name,
        )
