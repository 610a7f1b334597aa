"""Tunnel configuration model."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..common.utils import is_valid_hostname_or_ip


class TunnelConfig(BaseModel):
    """Settings shared by the chain connector, forwarding manager and builder.

    Passed explicitly to each component; there is no module level default.
    """

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True, extra="forbid")

    connect_timeout: float = Field(
        default=10.0, gt=0, le=300, description="Per-hop connect and handshake timeout in seconds"
    )
    dispose_timeout: float = Field(
        default=30.0, gt=0, le=600, description="Grace period for closing a tunnel on stop"
    )
    keepalive_interval: float = Field(
        default=0, ge=0, le=3600, description="SSH keepalive interval in seconds, 0 disables"
    )
    default_bind_address: str = Field(
        default="127.0.0.1", description="Bind address for forwards that do not set one"
    )
    loopback_host: str = Field(
        default="127.0.0.1", description="Address used for inter-hop forwards"
    )
    max_graph_nodes: int = Field(
        default=64, ge=2, le=1024, description="Largest tunnel graph accepted"
    )
    max_active_tunnels: int = Field(
        default=50, ge=1, le=1000, description="Maximum concurrently active tunnels"
    )
    buffer_size: int = Field(
        default=16384, ge=1024, le=1048576, description="Relay buffer size in bytes"
    )

    @field_validator("default_bind_address", "loopback_host")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Addresses must be hostnames or IP literals."""
        if not is_valid_hostname_or_ip(v):
            raise ValueError(f"Invalid address: {v!r}")
        return v
