"""Render a resolved chain as an equivalent ``ssh`` command line.

The output is diagnostic: it shows users what the tunnel does in OpenSSH
terms. Every user-controlled identifier goes through
``sanitize_ssh_identifier`` first, so the string stays inert even if it is
pasted into a shell.
"""

from collections.abc import Callable
from typing import TYPE_CHECKING, Union

from ..common.logging import get_logger
from ..common.utils import format_endpoint, sanitize_ssh_identifier
from .models import ForwardDirective, ForwardType, ResolvedChain, TunnelNode

if TYPE_CHECKING:
    from ..hosts.models import HostRecord
    from ..hosts.store import HostStore

logger = get_logger(__name__)

DEFAULT_SSH_PORT = 22
NO_HOSTS_COMMAND = "# No SSH hosts in tunnel chain"

HostLookup = Union["HostStore", Callable[[str], "HostRecord | None"]]


class CommandRenderer:
    """Renders ``ssh -J jump1,jump2 target -L ... -R ... -D ...``."""

    def render(self, chain: ResolvedChain, host_lookup: HostLookup) -> str:
        """Render ``chain``.

        Args:
            chain: Output of ChainResolver.resolve for a valid profile
            host_lookup: Host store, or a callable mapping host ids to records

        Returns:
            The command line

        Raises:
            UnsafeIdentifierError: If a username, hostname or forward host
                contains characters outside the allow-list
        """
        hosts = chain.ssh_hosts
        if not hosts:
            return NO_HOSTS_COMMAND

        lookup = _lookup_function(host_lookup)
        records = [lookup(node.host_id) if node.host_id else None for node in hosts]

        parts = ["ssh"]
        if len(hosts) > 1:
            jumps = [
                self._jump_entry(node, record)
                for node, record in zip(hosts[:-1], records[:-1])
            ]
            parts += ["-J", ",".join(jumps)]

        target_node, target = hosts[-1], records[-1]
        if target is not None and target.port != DEFAULT_SSH_PORT:
            parts += ["-p", str(target.port)]
        parts.append(self._destination(target_node, target))

        for directive in chain.directives:
            parts += self.forward_flag(directive)

        return " ".join(parts)

    def forward_flag(self, directive: ForwardDirective) -> list[str]:
        """Render one directive as an OpenSSH forwarding flag."""
        bind = ""
        if directive.bind_address:
            bind = f"{sanitize_ssh_identifier(directive.bind_address)}:"

        if directive.kind == ForwardType.LOCAL:
            host = sanitize_ssh_identifier(directive.remote_host)
            return ["-L", f"{bind}{directive.local_port}:{host}:{directive.remote_port}"]

        if directive.kind == ForwardType.REMOTE:
            host = sanitize_ssh_identifier(directive.remote_host)
            return ["-R", f"{bind}{directive.remote_port}:{host}:{directive.local_port}"]

        return ["-D", f"{bind}{directive.local_port}"]

    def _destination(self, node: TunnelNode, record: "HostRecord | None") -> str:
        if record is None:
            return sanitize_ssh_identifier(node.display_name) or node.id
        hostname = sanitize_ssh_identifier(record.hostname)
        if record.username:
            return f"{sanitize_ssh_identifier(record.username)}@{hostname}"
        return hostname or ""

    def _jump_entry(self, node: TunnelNode, record: "HostRecord | None") -> str:
        if record is None or record.port == DEFAULT_SSH_PORT:
            return self._destination(node, record)

        user = f"{sanitize_ssh_identifier(record.username)}@" if record.username else ""
        hostname = sanitize_ssh_identifier(record.hostname) or ""
        return f"{user}{format_endpoint(hostname, record.port)}"


def _lookup_function(host_lookup: HostLookup) -> Callable[[str], "HostRecord | None"]:
    get_by_id = getattr(host_lookup, "get_by_id", None)
    if callable(get_by_id):
        return get_by_id  # type: ignore[no-any-return]
    if callable(host_lookup):
        return host_lookup
    raise TypeError("host_lookup must be a host store or a callable")
