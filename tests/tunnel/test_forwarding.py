"""Tests for the forwarding manager."""

import pytest

from ssh_chain.common.cancellation import CancellationToken
from ssh_chain.common.exceptions import ForwardingError, OperationCancelledError
from ssh_chain.graph.models import ForwardDirective, ForwardType
from ssh_chain.hosts.models import PortForwardingProfile
from ssh_chain.tunnel.config import TunnelConfig
from ssh_chain.tunnel.forwarding import ForwardingManager
from ssh_chain.tunnel.models import ForwardingStatus


def local(port, remote_port=80, remote_host="web.internal", **fields):
    return ForwardDirective(
        kind=ForwardType.LOCAL,
        local_port=port,
        remote_port=remote_port,
        remote_host=remote_host,
        **fields,
    )


@pytest.fixture
def events():
    return []


@pytest.fixture
def client(events, make_client):
    return make_client(events, "target")


@pytest.fixture
def manager():
    return ForwardingManager(TunnelConfig())


class TestForwardingManagerStart:
    """Test starting single forwards."""

    def test_local_forward(self, manager, client, events):
        handle = manager.start(client, local(8080), session_id="s1")

        assert handle.status == ForwardingStatus.ACTIVE
        assert handle.is_active
        assert handle.bound_port == 8080
        assert handle.session_id == "s1"
        assert events == [("forward", "target", "L", 8080, "127.0.0.1", "web.internal", 80)]

    def test_remote_forward_arguments(self, manager, client, events):
        directive = ForwardDirective(
            kind=ForwardType.REMOTE, local_port=3000, remote_port=9000, remote_host="app.local"
        )
        manager.start(client, directive)

        assert events == [("forward", "target", "R", 9000, "127.0.0.1", "app.local", 3000)]

    def test_dynamic_forward_with_bind_address(self, manager, client, events):
        directive = ForwardDirective(kind=ForwardType.DYNAMIC, local_port=1080, bind_address="0.0.0.0")
        manager.start(client, directive)

        assert events == [("forward", "target", "D", 1080, "0.0.0.0")]

    def test_missing_remote_host_defaults_to_localhost(self, manager, client, events):
        manager.start(client, local(8080, remote_host=None))
        assert events[0][5] == "localhost"

    def test_accepts_a_chained_connection(self, manager, client, events):
        class Connection:
            pass

        connection = Connection()
        connection.client = client
        manager.start(connection, local(8080))

        assert len(events) == 1

    @pytest.mark.parametrize(
        "directive",
        [
            ForwardDirective(kind=ForwardType.LOCAL, local_port=0, remote_port=80),
            ForwardDirective(kind=ForwardType.LOCAL, local_port=8080, remote_port=None),
            ForwardDirective(kind=ForwardType.REMOTE, local_port=3000, remote_port=70000),
            ForwardDirective(kind=ForwardType.DYNAMIC, local_port=None),
        ],
    )
    def test_invalid_ports_are_rejected(self, manager, client, events, directive):
        with pytest.raises(ForwardingError, match="Invalid"):
            manager.start(client, directive)
        assert events == []

    def test_local_port_clash(self, manager, client):
        manager.start(client, local(8080))

        with pytest.raises(ForwardingError, match="Local port 8080 is already in use by another forward"):
            manager.start(client, ForwardDirective(kind=ForwardType.DYNAMIC, local_port=8080))

        assert manager.is_local_port_in_use(8080)

    def test_remote_forwards_do_not_clash_with_local_ports(self, manager, client):
        manager.start(client, local(8080))
        manager.start(
            client,
            ForwardDirective(
                kind=ForwardType.REMOTE, local_port=8080, remote_port=8080, remote_host="localhost"
            ),
        )

        assert len(manager.list_active()) == 2

    def test_transport_failure(self, manager, events, make_client):
        client = make_client(events, "target", failing_ports={8080})

        with pytest.raises(ForwardingError, match="Failed to start port forward") as exc_info:
            manager.start(client, local(8080))

        assert isinstance(exc_info.value.__cause__, OSError)
        assert not manager.is_local_port_in_use(8080)
        assert manager.list_active() == []


class TestForwardingManagerStop:
    """Test stopping forwards."""

    def test_stop_is_idempotent(self, manager, client, events):
        handle = manager.start(client, local(8080))
        events.clear()

        manager.stop(handle)
        manager.stop(handle)

        assert handle.status == ForwardingStatus.STOPPED
        assert events == [("stop", "target:L8080"), ("close", "target:L8080")]
        assert not manager.is_local_port_in_use(8080)

    def test_stop_swallows_transport_errors(self, manager, client):
        handle = manager.start(client, local(8080))

        def broken():
            raise OSError("already gone")

        handle.forward.stop = broken
        manager.stop(handle)

        assert handle.status == ForwardingStatus.STOPPED

    def test_port_is_reusable_after_stop(self, manager, client):
        manager.stop(manager.start(client, local(8080)))
        assert manager.start(client, local(8080)).is_active

    def test_stop_all_for_session(self, manager, client):
        manager.start(client, local(8080), session_id="a")
        manager.start(client, local(8081), session_id="a")
        manager.start(client, local(8082), session_id="b")

        assert manager.stop_all_for_session("a") == 2
        assert [handle.directive.local_port for handle in manager.list_active()] == [8082]
        assert manager.stop_all() == 1
        assert manager.list_active() == []


class TestStartAll:
    """Test fail-open batch start."""

    def test_failures_do_not_stop_the_batch(self, manager, events, make_client):
        client = make_client(events, "target", failing_ports={8081})

        started, failed = manager.start_all(
            client, [local(8080), local(8081), local(8082)], session_id="s"
        )

        assert [handle.directive.local_port for handle in started] == [8080, 8082]
        assert len(failed) == 1
        assert failed[0].status == ForwardingStatus.FAILED
        assert failed[0].error_message == "Address already in use: 8081"

    def test_invalid_directive_is_reported(self, manager, client):
        started, failed = manager.start_all(client, [local(0)])

        assert started == []
        assert "Invalid local_port" in failed[0].error_message
        assert "must be between 1 and 65535" in failed[0].error_message

    def test_cancellation_stops_what_was_started(self, manager, client, events):
        token = CancellationToken()

        def directives():
            yield local(8080)
            token.cancel()
            yield local(8081)

        with pytest.raises(OperationCancelledError):
            manager.start_all(client, directives(), cancel_token=token)

        assert ("stop", "target:L8080") in events
        assert manager.list_active() == []

    def test_start_profiles_filters_auto_start(self, manager, client, events):
        profiles = [
            PortForwardingProfile(
                forwarding_type=ForwardType.DYNAMIC, local_port=1080, auto_start=True
            ),
            PortForwardingProfile(forwarding_type=ForwardType.DYNAMIC, local_port=1081),
            PortForwardingProfile(
                forwarding_type=ForwardType.DYNAMIC,
                local_port=1082,
                auto_start=True,
                is_enabled=False,
            ),
        ]

        started, failed = manager.start_profiles(client, profiles)

        assert [handle.directive.local_port for handle in started] == [1080]
        assert failed == []

        started, _ = manager.start_profiles(client, profiles[1:2], auto_start_only=False)
        assert [handle.directive.local_port for handle in started] == [1081]
