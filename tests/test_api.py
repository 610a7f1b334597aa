"""Test high-level API functions."""

import pytest

from ssh_chain import SSHChainError, managed_connection, managed_tunnel, render_command
from ssh_chain.hosts.models import ProxyJumpHop, ProxyJumpProfile
from ssh_chain.tunnel.config import TunnelConfig


class TestRenderCommand:
    """Test render_command."""

    def test_accepts_host_records(self, three_hop_profile, hosts):
        command = render_command(three_hop_profile, list(hosts.values()))
        assert command.startswith("ssh -J admin@bastion.example.com,ops@10.0.0.5:2222 ")

    def test_accepts_a_store(self, three_hop_profile, host_store):
        assert render_command(three_hop_profile, host_store).endswith("-L 8080:web.internal:80")


class TestManagedTunnel:
    """Test the managed_tunnel context manager."""

    def test_tunnel_is_stopped_on_exit(self, three_hop_profile, hosts, fake_transport):
        with managed_tunnel(
            three_hop_profile, hosts.values(), transport=fake_transport, config=TunnelConfig()
        ) as status:
            assert status.profile_id == "profile-1"
            assert status.hop_count == 3
            assert fake_transport.count("disconnect", "db.internal") == 0

        assert fake_transport.count("disconnect", "db.internal") == 1

    def test_tunnel_is_stopped_on_error(self, three_hop_profile, hosts, fake_transport):
        with pytest.raises(RuntimeError):
            with managed_tunnel(three_hop_profile, hosts.values(), transport=fake_transport):
                raise RuntimeError("boom")

        assert fake_transport.count("disconnect", "bastion.example.com") == 1

    def test_failure_raises(self, three_hop_profile, hosts, fake_transport):
        fake_transport.fail_hosts.add("bastion.example.com")

        with pytest.raises(SSHChainError, match="Failed to connect hop 0"):
            with managed_tunnel(three_hop_profile, hosts.values(), transport=fake_transport):
                pass


class TestManagedConnection:
    def test_connection_through_jump_profile(self, hosts, fake_transport):
        target = hosts["db"].model_copy(update={"proxy_jump_profile_id": "jp"})
        profile = ProxyJumpProfile(id="jp", hops=(ProxyJumpHop(jump_host_id="host-bastion"),))

        with managed_connection(
            "host-db", [hosts["bastion"], target], [profile], transport=fake_transport
        ) as connection:
            assert connection.hop_count == 2
            assert connection.is_connected

        assert connection.is_closed
        assert fake_transport.count("close", "key:db.internal") == 1
