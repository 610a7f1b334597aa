"""Structural and semantic validation of tunnel graphs."""

from collections import Counter, deque

from pydantic import BaseModel, ConfigDict, Field

from ..common.logging import get_logger
from ..common.utils import MAX_PORT, MIN_PORT, is_blank, is_valid_hostname_or_ip
from .models import TunnelGraph, TunnelNode, TunnelNodeType, TunnelProfile

logger = get_logger(__name__)

DEFAULT_MAX_NODES = 64


class ValidationResult(BaseModel):
    """Outcome of validating a profile. Warnings never block execution."""

    model_config = ConfigDict(frozen=True)

    errors: tuple[str, ...] = Field(default=())
    warnings: tuple[str, ...] = Field(default=())

    @property
    def is_valid(self) -> bool:
        return not self.errors


class GraphValidator:
    """Validates tunnel profiles.

    ``validate`` is a pure function of its input: every check runs and its
    findings are accumulated, nothing short-circuits.
    """

    def __init__(self, max_nodes: int = DEFAULT_MAX_NODES) -> None:
        self.max_nodes = max_nodes

    def validate(self, profile: TunnelProfile) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []
        graph = profile.graph()

        if len(profile.nodes) < 2:
            errors.append("Tunnel profile must have at least 2 nodes (source and target).")

        if len(profile.nodes) > self.max_nodes:
            errors.append(
                f"Tunnel profile has {len(profile.nodes)} nodes; at most {self.max_nodes} are supported."
            )

        duplicates = [
            node_id for node_id, count in Counter(n.id for n in profile.nodes).items() if count > 1
        ]
        for node_id in duplicates:
            errors.append(f"Node id '{node_id}' is used by more than one node.")

        local_machines = profile.local_machine_nodes()
        if not local_machines:
            errors.append("Tunnel profile must have a LocalMachine node as the starting point.")
        elif len(local_machines) > 1:
            errors.append("Tunnel profile can only have one LocalMachine node.")

        for node in profile.nodes:
            self._validate_node(node, graph, errors, warnings)

        for edge in profile.edges:
            if graph.position_of(edge.source_node_id) is None:
                errors.append(f"Edge references non-existent source node: {edge.source_node_id}")
            if graph.position_of(edge.target_node_id) is None:
                errors.append(f"Edge references non-existent target node: {edge.target_node_id}")
            if edge.source_node_id == edge.target_node_id:
                errors.append(f"Edge cannot connect a node to itself: {edge.source_node_id}")

        if profile.edges and has_cycle(graph):
            errors.append(
                "Tunnel graph contains circular dependencies. "
                "Ensure connections flow in one direction."
            )

        if len(local_machines) == 1:
            root = graph.position_of(local_machines[0].id)
            assert root is not None
            reachable = reachable_from(graph, root)
            for position, node in enumerate(graph.nodes):
                if position not in reachable:
                    warnings.append(
                        f"Node '{node.display_name}' is not reachable from LocalMachine."
                    )

        result = ValidationResult(errors=tuple(errors), warnings=tuple(warnings))
        logger.debug(
            "Validated tunnel profile",
            profile_id=profile.id,
            errors=len(result.errors),
            warnings=len(result.warnings),
        )
        return result

    def _validate_node(
        self,
        node: TunnelNode,
        graph: TunnelGraph,
        errors: list[str],
        warnings: list[str],
    ) -> None:
        name = node.display_name

        if node.node_type == TunnelNodeType.SSH_HOST:
            if is_blank(node.host_id):
                errors.append(f"SSH host node '{name}' must have a HostId.")

        elif node.node_type == TunnelNodeType.LOCAL_PORT:
            _check_port(errors, node.local_port, f"Local port node '{name}'", "LocalPort")

        elif node.node_type == TunnelNodeType.REMOTE_PORT:
            _check_port(errors, node.remote_port, f"Remote port node '{name}'", "RemotePort")
            _check_port(
                errors, node.local_port, f"Remote port node '{name}'", "LocalPort (target port)"
            )
            if is_blank(node.remote_host) and not _has_connected_target(node, graph):
                warnings.append(
                    f"Remote port node '{name}' should specify a RemoteHost or connect "
                    "to a TargetHost node (defaults to localhost)."
                )

        elif node.node_type == TunnelNodeType.TARGET_HOST:
            if is_blank(node.remote_host):
                errors.append(f"Target host node '{name}' must have a RemoteHost.")
            elif not is_valid_hostname_or_ip(node.remote_host or ""):
                errors.append(
                    f"Target host node '{name}' has invalid RemoteHost format: "
                    f"'{node.remote_host}'. Must be a valid hostname or IP address."
                )

        elif node.node_type == TunnelNodeType.DYNAMIC_PROXY:
            _check_port(errors, node.local_port, f"SOCKS proxy node '{name}'", "LocalPort")


def _check_port(errors: list[str], port: int | None, owner: str, field_name: str) -> None:
    if port is None:
        errors.append(f"{owner} must have a {field_name}.")
    elif not MIN_PORT <= port <= MAX_PORT:
        errors.append(f"{owner} has invalid {field_name}: {port}")


def _has_connected_target(node: TunnelNode, graph: TunnelGraph) -> bool:
    position = graph.position_of(node.id)
    if position is None:
        return False
    neighbours = graph.outgoing[position] + graph.incoming[position]
    return any(
        graph.nodes[other].node_type == TunnelNodeType.TARGET_HOST
        and not is_blank(graph.nodes[other].remote_host)
        for other in neighbours
    )


def has_cycle(graph: TunnelGraph) -> bool:
    """Detect a directed cycle with DFS and an explicit on-stack set.

    A node met again while it is still on the current DFS stack closes a
    cycle. Iterative so deep graphs cannot exhaust the interpreter stack.
    """
    visited: set[int] = set()
    on_stack: set[int] = set()

    for start in range(len(graph)):
        if start in visited:
            continue

        visited.add(start)
        on_stack.add(start)
        stack: list[tuple[int, int]] = [(start, 0)]

        while stack:
            current, next_child = stack[-1]
            children = graph.outgoing[current]

            if next_child >= len(children):
                stack.pop()
                on_stack.discard(current)
                continue

            stack[-1] = (current, next_child + 1)
            child = children[next_child]

            if child in on_stack:
                return True
            if child not in visited:
                visited.add(child)
                on_stack.add(child)
                stack.append((child, 0))

    return False


def reachable_from(graph: TunnelGraph, root: int) -> set[int]:
    """Positions reachable from ``root`` over outgoing edges (BFS), root included."""
    reachable = {root}
    queue = deque([root])
    while queue:
        current = queue.popleft()
        for child in graph.outgoing[current]:
            if child not in reachable:
                reachable.add(child)
                queue.append(child)
    return reachable
