"""Tunnel graph models.

A tunnel profile is a small directed graph authored by the user. Nodes and
edges are plain value records; every algorithm works on ``TunnelGraph``, a
flat index-addressed view built from a profile, never on object references.
"""

import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def _new_id() -> str:
    return str(uuid.uuid4())


class TunnelNodeType(str, Enum):
    """Tunnel node type enumeration."""

    LOCAL_MACHINE = "local_machine"
    SSH_HOST = "ssh_host"
    TARGET_HOST = "target_host"
    LOCAL_PORT = "local_port"
    REMOTE_PORT = "remote_port"
    DYNAMIC_PROXY = "dynamic_proxy"


FORWARDING_NODE_TYPES = frozenset(
    {
        TunnelNodeType.LOCAL_PORT,
        TunnelNodeType.REMOTE_PORT,
        TunnelNodeType.DYNAMIC_PROXY,
    }
)

SIDE_NODE_TYPES = FORWARDING_NODE_TYPES | {TunnelNodeType.TARGET_HOST}


class ForwardType(str, Enum):
    """Port forward kinds."""

    LOCAL = "local"
    REMOTE = "remote"
    DYNAMIC = "dynamic"


class TunnelNode(BaseModel):
    """A node of the tunnel graph.

    Port fields are deliberately unconstrained here so that out-of-range
    values reach the validator and come back as errors instead of exceptions.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id, min_length=1, description="Node identifier")
    node_type: TunnelNodeType = Field(description="Kind of node")
    label: str = Field(default="", description="Display label")
    host_id: str | None = Field(default=None, description="Host store reference (SSH hosts)")
    local_port: int | None = Field(default=None, description="Local or target-side port")
    remote_port: int | None = Field(default=None, description="Remote port")
    remote_host: str | None = Field(default=None, description="Remote or target hostname")
    bind_address: str | None = Field(default=None, description="Listener bind address")

    @property
    def display_name(self) -> str:
        return self.label or self.id

    @property
    def is_ssh_host(self) -> bool:
        return self.node_type == TunnelNodeType.SSH_HOST


class TunnelEdge(BaseModel):
    """Directed connection between two nodes."""

    model_config = ConfigDict(frozen=True)

    source_node_id: str = Field(min_length=1)
    target_node_id: str = Field(min_length=1)


class TunnelProfile(BaseModel):
    """A named tunnel graph."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id, min_length=1)
    display_name: str = Field(default="", description="Profile name shown to users")
    description: str | None = None
    nodes: tuple[TunnelNode, ...] = ()
    edges: tuple[TunnelEdge, ...] = ()

    def get_node(self, node_id: str) -> TunnelNode | None:
        """Get node by ID."""
        return next((node for node in self.nodes if node.id == node_id), None)

    def local_machine_nodes(self) -> list[TunnelNode]:
        return [n for n in self.nodes if n.node_type == TunnelNodeType.LOCAL_MACHINE]

    def graph(self) -> "TunnelGraph":
        """Build the index-addressed view of this profile."""
        return TunnelGraph.from_profile(self)


class TunnelGraph:
    """Arena view of a profile.

    Nodes live in a flat tuple and are addressed by their position. Adjacency
    lists hold positions too. Edges whose endpoints do not exist are left out,
    and when node ids repeat the first declaration wins.
    """

    def __init__(
        self,
        nodes: tuple[TunnelNode, ...],
        index: dict[str, int],
        outgoing: tuple[tuple[int, ...], ...],
        incoming: tuple[tuple[int, ...], ...],
    ) -> None:
        self.nodes = nodes
        self.index = index
        self.outgoing = outgoing
        self.incoming = incoming

    @classmethod
    def from_profile(cls, profile: TunnelProfile) -> "TunnelGraph":
        nodes = tuple(profile.nodes)
        index: dict[str, int] = {}
        for position, node in enumerate(nodes):
            index.setdefault(node.id, position)

        outgoing: list[list[int]] = [[] for _ in nodes]
        incoming: list[list[int]] = [[] for _ in nodes]
        for edge in profile.edges:
            source = index.get(edge.source_node_id)
            target = index.get(edge.target_node_id)
            if source is None or target is None:
                continue
            outgoing[source].append(target)
            incoming[target].append(source)

        return cls(
            nodes,
            index,
            tuple(tuple(targets) for targets in outgoing),
            tuple(tuple(sources) for sources in incoming),
        )

    def __len__(self) -> int:
        return len(self.nodes)

    def node_by_id(self, node_id: str) -> TunnelNode | None:
        position = self.index.get(node_id)
        return None if position is None else self.nodes[position]

    def position_of(self, node_id: str) -> int | None:
        return self.index.get(node_id)


class ForwardDirective(BaseModel):
    """A single port forward to start on an established connection.

    Field meaning by kind:

    * LOCAL: listen on ``bind_address:local_port`` here, forward to
      ``remote_host:remote_port`` as seen from the far end.
    * REMOTE: the far end listens on ``bind_address:remote_port`` and forwards
      back to ``remote_host:local_port`` as seen from here.
    * DYNAMIC: SOCKS listener on ``bind_address:local_port``.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    kind: ForwardType
    local_port: int | None = None
    remote_port: int | None = None
    remote_host: str | None = None
    bind_address: str | None = None
    label: str = ""
    source_node_id: str | None = None

    def effective_bind_address(self, default: str = "127.0.0.1") -> str:
        """Explicit bind address, otherwise the loopback-only default."""
        if self.bind_address:
            return self.bind_address
        return default

    def describe(self) -> str:
        bind = self.effective_bind_address()
        if self.kind == ForwardType.LOCAL:
            return f"{bind}:{self.local_port} → {self.remote_host}:{self.remote_port}"
        if self.kind == ForwardType.REMOTE:
            return f"Remote {bind}:{self.remote_port} → {self.remote_host}:{self.local_port}"
        return f"{bind}:{self.local_port} (SOCKS5)"


class ResolvedChain(BaseModel):
    """Result of linearising a profile.

    ``hop_path`` is the winning path starting at the root. ``side_nodes``
    holds forwarding and target nodes off that path. ``directives`` lists the
    forwards of the whole profile in declaration order.
    """

    model_config = ConfigDict(frozen=True)

    hop_path: tuple[TunnelNode, ...]
    side_nodes: tuple[TunnelNode, ...] = ()
    directives: tuple[ForwardDirective, ...] = ()

    @property
    def ssh_hosts(self) -> list[TunnelNode]:
        return [node for node in self.hop_path if node.is_ssh_host]

    @property
    def is_empty(self) -> bool:
        """True when there is nothing to connect."""
        return not self.ssh_hosts

    @property
    def nodes(self) -> list[TunnelNode]:
        """Hop path followed by side nodes."""
        return [*self.hop_path, *self.side_nodes]
