"""SSH transport provider protocols and the paramiko implementation."""

from .forwards import (
    DynamicPortForward,
    LocalPortForward,
    RemoteForwardDispatcher,
    RemotePortForward,
    SocksError,
    negotiate_socks5,
    pump,
    socks5_reply,
)
from .interfaces import (
    CredentialMaterial,
    ForwardedPort,
    HostKeyVerifier,
    InteractiveAuthHandler,
    SSHClientHandle,
    SSHTransport,
    compute_fingerprint,
    resolve_awaitable,
    resolve_verdict,
)
from .paramiko_transport import ParamikoClient, ParamikoCredentials, ParamikoTransport

__all__ = [
    "SSHTransport",
    "SSHClientHandle",
    "ForwardedPort",
    "CredentialMaterial",
    "HostKeyVerifier",
    "InteractiveAuthHandler",
    "compute_fingerprint",
    "resolve_awaitable",
    "resolve_verdict",
    "ParamikoTransport",
    "ParamikoClient",
    "ParamikoCredentials",
    "LocalPortForward",
    "RemotePortForward",
    "DynamicPortForward",
    "RemoteForwardDispatcher",
    "SocksError",
    "negotiate_socks5",
    "socks5_reply",
    "pump",
]
