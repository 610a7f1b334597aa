"""Reduce a tunnel graph to one ordered hop path plus forwarding directives."""

from collections.abc import Iterator

from ..common.exceptions import ConfigurationError
from ..common.logging import get_logger
from ..common.utils import is_blank
from .models import (
    SIDE_NODE_TYPES,
    ForwardDirective,
    ForwardType,
    ResolvedChain,
    TunnelGraph,
    TunnelNode,
    TunnelNodeType,
    TunnelProfile,
)

logger = get_logger(__name__)

DEFAULT_TARGET_HOST = "localhost"


class ChainResolver:
    """Linearises validated profiles.

    The hop path is the path from the root with the most SSH hosts; ties go
    to the longer path. Branches that carry no extra SSH hosts (forwarding
    sub-trees hanging off a jump host, say) are explored but never win.

    The search enumerates simple paths without memoisation, so its cost is
    exponential on dense graphs. ``GraphValidator.max_nodes`` bounds it.
    """

    def resolve(self, profile: TunnelProfile, root: TunnelNode | None = None) -> ResolvedChain:
        """Resolve ``profile`` starting at ``root`` (the LocalMachine node by default).

        Raises:
            ConfigurationError: If no root is given and the profile has no
                LocalMachine node, or the root is not part of the profile
        """
        graph = profile.graph()

        if root is None:
            local_machines = profile.local_machine_nodes()
            if not local_machines:
                raise ConfigurationError("Tunnel profile has no LocalMachine node to start from")
            root = local_machines[0]

        start = graph.position_of(root.id)
        if start is None:
            raise ConfigurationError(f"Root node '{root.id}' is not part of the profile")

        path = longest_ssh_host_path(graph, start)
        hop_path = tuple(graph.nodes[position] for position in path)
        if not any(node.is_ssh_host for node in hop_path):
            hop_path = (root,)

        on_path = {node.id for node in hop_path}
        side_nodes = tuple(
            node
            for node in profile.nodes
            if node.id not in on_path and node.node_type in SIDE_NODE_TYPES
        )
        directives = tuple(
            directive
            for directive in (self.directive_for(profile, node) for node in profile.nodes)
            if directive is not None
        )

        chain = ResolvedChain(hop_path=hop_path, side_nodes=side_nodes, directives=directives)
        logger.debug(
            "Resolved tunnel chain",
            profile_id=profile.id,
            hops=[node.display_name for node in chain.ssh_hosts],
            directives=len(directives),
        )
        return chain

    def directive_for(self, profile: TunnelProfile, node: TunnelNode) -> ForwardDirective | None:
        """Build the forward directive of a forwarding node.

        Returns None for non-forwarding nodes and for nodes missing the ports
        their kind requires.
        """
        if node.node_type == TunnelNodeType.LOCAL_PORT:
            if node.local_port is None or node.remote_port is None:
                return None
            return ForwardDirective(
                kind=ForwardType.LOCAL,
                local_port=node.local_port,
                remote_port=node.remote_port,
                remote_host=node.remote_host or DEFAULT_TARGET_HOST,
                bind_address=node.bind_address,
                label=node.label,
                source_node_id=node.id,
            )

        if node.node_type == TunnelNodeType.REMOTE_PORT:
            if node.local_port is None or node.remote_port is None:
                return None
            return ForwardDirective(
                kind=ForwardType.REMOTE,
                local_port=node.local_port,
                remote_port=node.remote_port,
                remote_host=resolve_remote_target(profile, node),
                bind_address=node.bind_address,
                label=node.label,
                source_node_id=node.id,
            )

        if node.node_type == TunnelNodeType.DYNAMIC_PROXY:
            if node.local_port is None:
                return None
            return ForwardDirective(
                kind=ForwardType.DYNAMIC,
                local_port=node.local_port,
                bind_address=node.bind_address,
                label=node.label,
                source_node_id=node.id,
            )

        return None


def longest_ssh_host_path(graph: TunnelGraph, start: int) -> list[int]:
    """Return positions of the best simple path from ``start``.

    A path beats the current best when it has strictly more SSH hosts, or the
    same number and more nodes overall. The on-path set keeps the search
    finite on cyclic input.
    """
    best: list[int] = []
    best_ssh = 0
    path: list[int] = []
    on_path: set[int] = set()
    path_ssh = 0
    # One child iterator per node on the current path.
    pending: list[Iterator[int]] = []

    def enter(position: int) -> None:
        nonlocal best, best_ssh, path_ssh

        path.append(position)
        on_path.add(position)
        if graph.nodes[position].is_ssh_host:
            path_ssh += 1
        if path_ssh > best_ssh or (path_ssh == best_ssh and len(path) > len(best)):
            best = list(path)
            best_ssh = path_ssh
        pending.append(iter(graph.outgoing[position]))

    enter(start)
    while pending:
        child = next((c for c in pending[-1] if c not in on_path), None)
        if child is not None:
            enter(child)
            continue

        pending.pop()
        position = path.pop()
        on_path.discard(position)
        if graph.nodes[position].is_ssh_host:
            path_ssh -= 1

    return best


def resolve_remote_target(profile: TunnelProfile, node: TunnelNode) -> str:
    """Find where a remote forward delivers its connections.

    Looks for a TargetHost node on an outgoing edge, then on an incoming
    edge, then falls back to the node's own ``remote_host`` and finally to
    ``localhost``.
    """
    graph = profile.graph()
    position = graph.position_of(node.id)

    if position is not None:
        for neighbours in (graph.outgoing[position], graph.incoming[position]):
            for other in neighbours:
                candidate = graph.nodes[other]
                if candidate.node_type == TunnelNodeType.TARGET_HOST and not is_blank(
                    candidate.remote_host
                ):
                    return candidate.remote_host  # type: ignore[return-value]

    if not is_blank(node.remote_host):
        return node.remote_host  # type: ignore[return-value]
    return DEFAULT_TARGET_HOST
