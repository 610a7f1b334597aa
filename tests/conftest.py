"""Shared pytest fixtures for ssh-chain tests."""

import itertools

import pytest

from ssh_chain.common.exceptions import HostKeyVerificationError
from ssh_chain.graph.models import TunnelEdge, TunnelNode, TunnelNodeType, TunnelProfile
from ssh_chain.hosts.models import AuthType, HostRecord
from ssh_chain.hosts.store import InMemoryHostStore
from ssh_chain.transport.interfaces import resolve_verdict


class FakeForward:
    """Forward that records stop/close calls in the shared event log."""

    def __init__(self, events, name, bound_port):
        self.events = events
        self.name = name
        self._bound_port = bound_port
        self.active = True

    @property
    def bound_port(self):
        return self._bound_port

    @property
    def is_active(self):
        return self.active

    def stop(self):
        self.events.append(("stop", self.name))
        self.active = False

    def close(self):
        self.events.append(("close", self.name))
        self.active = False


class FakeClient:
    """Client handle whose forward calls are recorded and can be made to fail."""

    def __init__(self, events, name, failing_ports=()):
        self.events = events
        self.name = name
        self.failing_ports = set(failing_ports)
        self.connected = True
        self.forwards = []

    @property
    def is_connected(self):
        return self.connected

    def _forward(self, kind, port, *details):
        if port in self.failing_ports:
            raise OSError(f"Address already in use: {port}")
        forward = FakeForward(self.events, f"{self.name}:{kind}{port}", port)
        self.events.append(("forward", self.name, kind, port, *details))
        self.forwards.append(forward)
        return forward

    def start_local_forward(self, bind_address, bind_port, remote_host, remote_port):
        return self._forward("L", bind_port, bind_address, remote_host, remote_port)

    def start_remote_forward(self, bind_address, remote_port, target_host, target_port):
        return self._forward("R", remote_port, bind_address, target_host, target_port)

    def start_dynamic_forward(self, bind_address, bind_port):
        return self._forward("D", bind_port, bind_address)

    def disconnect(self):
        self.events.append(("disconnect", self.name))
        self.connected = False

    def close(self):
        self.events.append(("close", self.name))
        self.connected = False


class FakeCredentials:
    def __init__(self, events, name):
        self.events = events
        self.name = name

    def close(self):
        self.events.append(("close", self.name))


class FakeTransport:
    """In-memory transport provider recording every call in order.

    Attributes:
        events: Ordered log of connects, forwards and teardown calls
        fail_hosts: Hostnames whose connect raises OSError
        failing_ports: Ports whose forwards fail on every client
        clients: Connected clients by hostname
    """

    def __init__(self):
        self.events = []
        self.fail_hosts = set()
        self.failing_ports = set()
        self.clients = {}

    def load_credentials(self, hop):
        if hop.auth_type == AuthType.PRIVATE_KEY:
            credentials = FakeCredentials(self.events, f"key:{hop.hostname}")
            self.events.append(("credentials", hop.hostname))
            return credentials
        return None

    def connect(self, hop, endpoint, credentials, host_key_verifier, interactive_auth_handler, timeout):
        self.events.append(("connect", hop.hostname, endpoint))
        if hop.hostname in self.fail_hosts:
            raise OSError(f"Connection refused: {hop.hostname}")
        if host_key_verifier is not None:
            verdict = host_key_verifier(hop.hostname, hop.port, "ssh-ed25519", "fingerprint", b"key")
            if not resolve_verdict(verdict):
                raise HostKeyVerificationError(hop.hostname, hop.port, "fingerprint")
        client = FakeClient(self.events, hop.hostname, self.failing_ports)
        self.clients[hop.hostname] = client
        return client

    def count(self, *event):
        return self.events.count(event)


@pytest.fixture
def fake_transport():
    """Fresh recording transport."""
    return FakeTransport()


@pytest.fixture
def port_allocator():
    """Deterministic stand-in for ephemeral port allocation (40000, 40001, ...)."""
    ports = itertools.count(40000)
    return lambda host: next(ports)


@pytest.fixture
def hosts():
    """Three saved hosts: two jump hosts and a target."""
    return {
        "bastion": HostRecord(
            id="host-bastion", hostname="bastion.example.com", username="admin"
        ),
        "jump": HostRecord(
            id="host-jump", hostname="10.0.0.5", port=2222, username="ops"
        ),
        "db": HostRecord(
            id="host-db",
            hostname="db.internal",
            username="dba",
            auth_type=AuthType.PRIVATE_KEY,
            private_key_path="~/.ssh/id_ed25519",
        ),
    }


@pytest.fixture
def host_store(hosts):
    return InMemoryHostStore(hosts.values())


def make_node(node_id, node_type, **fields):
    return TunnelNode(id=node_id, node_type=node_type, label=fields.pop("label", node_id), **fields)


@pytest.fixture
def three_hop_profile():
    """LocalMachine -> bastion -> jump -> db with a local forward on the target."""
    nodes = (
        make_node("local", TunnelNodeType.LOCAL_MACHINE),
        make_node("bastion", TunnelNodeType.SSH_HOST, host_id="host-bastion"),
        make_node("jump", TunnelNodeType.SSH_HOST, host_id="host-jump"),
        make_node("db", TunnelNodeType.SSH_HOST, host_id="host-db"),
        make_node(
            "pg",
            TunnelNodeType.LOCAL_PORT,
            local_port=8080,
            remote_port=80,
            remote_host="web.internal",
        ),
    )
    edges = (
        TunnelEdge(source_node_id="local", target_node_id="bastion"),
        TunnelEdge(source_node_id="bastion", target_node_id="jump"),
        TunnelEdge(source_node_id="jump", target_node_id="db"),
        TunnelEdge(source_node_id="db", target_node_id="pg"),
    )
    return TunnelProfile(id="profile-1", display_name="Prod DB", nodes=nodes, edges=edges)


@pytest.fixture
def node_factory():
    """Expose the node helper to test modules."""
    return make_node


@pytest.fixture
def make_client():
    """Build a standalone FakeClient: ``make_client(events, name, failing_ports=())``."""
    return FakeClient
