"""Tests for OpenSSH command rendering."""

import pytest

from ssh_chain.common.exceptions import UnsafeIdentifierError
from ssh_chain.graph.models import (
    ForwardDirective,
    ForwardType,
    ResolvedChain,
    TunnelNodeType,
)
from ssh_chain.graph.renderer import NO_HOSTS_COMMAND, CommandRenderer
from ssh_chain.graph.resolver import ChainResolver
from ssh_chain.hosts.models import HostRecord
from ssh_chain.hosts.store import InMemoryHostStore


class TestCommandRenderer:
    """Test CommandRenderer.render."""

    def test_three_hop_chain(self, three_hop_profile, host_store):
        chain = ChainResolver().resolve(three_hop_profile)
        command = CommandRenderer().render(chain, host_store)

        assert command == (
            "ssh -J admin@bastion.example.com,ops@10.0.0.5:2222 "
            "dba@db.internal -L 8080:web.internal:80"
        )

    def test_single_hop_with_custom_port(self, node_factory):
        store = InMemoryHostStore(
            [HostRecord(id="h", hostname="box.example.com", port=2200, username="me")]
        )
        chain = ResolvedChain(
            hop_path=(
                node_factory("lm", TunnelNodeType.LOCAL_MACHINE),
                node_factory("n", TunnelNodeType.SSH_HOST, host_id="h"),
            )
        )
        assert CommandRenderer().render(chain, store) == "ssh -p 2200 me@box.example.com"

    def test_no_hosts(self, node_factory):
        chain = ResolvedChain(hop_path=(node_factory("lm", TunnelNodeType.LOCAL_MACHINE),))
        assert CommandRenderer().render(chain, InMemoryHostStore()) == NO_HOSTS_COMMAND

    def test_missing_record_renders_label(self, node_factory):
        chain = ResolvedChain(
            hop_path=(
                node_factory("lm", TunnelNodeType.LOCAL_MACHINE),
                node_factory("n", TunnelNodeType.SSH_HOST, host_id="gone", label="old-box"),
            )
        )
        assert CommandRenderer().render(chain, lambda host_id: None) == "ssh old-box"

    def test_callable_lookup(self, node_factory, hosts):
        chain = ResolvedChain(
            hop_path=(node_factory("n", TunnelNodeType.SSH_HOST, host_id="host-db"),)
        )
        by_id = {record.id: record for record in hosts.values()}
        assert CommandRenderer().render(chain, by_id.get) == "ssh dba@db.internal"

    def test_invalid_lookup(self, node_factory):
        chain = ResolvedChain(
            hop_path=(node_factory("n", TunnelNodeType.SSH_HOST, host_id="h"),)
        )
        with pytest.raises(TypeError):
            CommandRenderer().render(chain, object())

    @pytest.mark.parametrize("hostname", ["evil;rm -rf", "`id`", "$(reboot)"])
    def test_unsafe_hostname_is_rejected(self, node_factory, hostname):
        store = InMemoryHostStore([HostRecord(id="h", hostname=hostname, username="root")])
        chain = ResolvedChain(
            hop_path=(node_factory("n", TunnelNodeType.SSH_HOST, host_id="h"),)
        )
        with pytest.raises(UnsafeIdentifierError):
            CommandRenderer().render(chain, store)

    def test_unsafe_username_is_rejected(self, node_factory):
        store = InMemoryHostStore([HostRecord(id="h", hostname="ok", username="a;b")])
        chain = ResolvedChain(
            hop_path=(node_factory("n", TunnelNodeType.SSH_HOST, host_id="h"),)
        )
        with pytest.raises(UnsafeIdentifierError, match="';'"):
            CommandRenderer().render(chain, store)

    def test_ipv6_jump_host_is_bracketed(self, node_factory):
        store = InMemoryHostStore(
            [
                HostRecord(id="j", hostname="fe80::1", port=2222, username="ops"),
                HostRecord(id="t", hostname="target", username="me"),
            ]
        )
        chain = ResolvedChain(
            hop_path=(
                node_factory("j", TunnelNodeType.SSH_HOST, host_id="j"),
                node_factory("t", TunnelNodeType.SSH_HOST, host_id="t"),
            )
        )
        assert CommandRenderer().render(chain, store) == "ssh -J ops@[fe80::1]:2222 me@target"


class TestForwardFlags:
    """Test rendering of single directives."""

    def test_local_forward(self):
        directive = ForwardDirective(
            kind=ForwardType.LOCAL, local_port=5432, remote_port=5432, remote_host="localhost"
        )
        assert CommandRenderer().forward_flag(directive) == ["-L", "5432:localhost:5432"]

    def test_remote_forward_with_bind(self):
        directive = ForwardDirective(
            kind=ForwardType.REMOTE,
            local_port=3000,
            remote_port=9000,
            remote_host="app.local",
            bind_address="0.0.0.0",
        )
        assert CommandRenderer().forward_flag(directive) == ["-R", "0.0.0.0:9000:app.local:3000"]

    def test_dynamic_forward(self):
        directive = ForwardDirective(kind=ForwardType.DYNAMIC, local_port=1080)
        assert CommandRenderer().forward_flag(directive) == ["-D", "1080"]

    def test_unsafe_forward_host(self):
        directive = ForwardDirective(
            kind=ForwardType.LOCAL, local_port=1, remote_port=2, remote_host="a&&b"
        )
        with pytest.raises(UnsafeIdentifierError):
            CommandRenderer().forward_flag(directive)
