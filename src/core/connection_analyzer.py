"""Connection analysis for workflow documents.

Builds a per-node view of a workflow's connections (incoming, outgoing,
depth level, root/leaf markers) and links isolated nodes into the flow with
logical connections so every node ends up reachable on the canvas.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Literal

import structlog

from src.models.document import N8nWorkflow

logger = structlog.get_logger()

ConnectionType = Literal["main", "error", "logical"]


@dataclass
class NodeConnectionInfo:
    """Connection summary for one node (keyed by node name)."""

    incoming: list[str] = field(default_factory=list)
    outgoing: list[str] = field(default_factory=list)
    level: int = 0
    is_root: bool = False
    is_leaf: bool = False
    has_main_connections: bool = False
    has_error_connections: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "incoming": list(self.incoming),
            "outgoing": list(self.outgoing),
            "level": self.level,
            "is_root": self.is_root,
            "is_leaf": self.is_leaf,
            "has_main_connections": self.has_main_connections,
            "has_error_connections": self.has_error_connections,
        }


@dataclass
class SmartConnection:
    """A connection to draw, explicit or inferred."""

    source: str
    target: str
    type: ConnectionType
    output_index: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "source": self.source,
            "target": self.target,
            "type": self.type,
            "output_index": self.output_index,
        }


def _link(
    info_map: dict[str, NodeConnectionInfo],
    source: str,
    target: str,
) -> None:
    info_map[source].outgoing.append(target)
    info_map[target].incoming.append(source)


def _explicit_map(workflow: N8nWorkflow) -> dict[str, NodeConnectionInfo]:
    """Incoming/outgoing lists from the document's connections only."""
    info_map = {node.name: NodeConnectionInfo() for node in workflow.nodes}
    for source, _kind, _out, _pos, connection in workflow.iter_connections():
        if source in info_map and connection.node in info_map:
            _link(info_map, source, connection.node)
    return info_map


def assign_levels(info_map: dict[str, NodeConnectionInfo]) -> list[list[str]]:
    """Assign BFS depth levels from the roots and return the visited layers.

    Each node is visited once; a target's level is the deepest level seen
    from an already visited parent. Nodes only reachable through cycles are
    left out of the returned layers.
    """
    layers: list[list[str]] = []
    visited: set[str] = set()
    queue: deque[str] = deque()

    for name, info in info_map.items():
        if info.is_root:
            info.level = 0
            queue.append(name)

    while queue:
        layer: list[str] = []
        next_queue: deque[str] = deque()
        while queue:
            name = queue.popleft()
            if name in visited:
                continue
            visited.add(name)
            layer.append(name)
            current = info_map[name]
            for target in current.outgoing:
                target_info = info_map.get(target)
                if target_info is not None and target not in visited:
                    target_info.level = max(target_info.level, current.level + 1)
                    next_queue.append(target)
        if layer:
            layers.append(layer)
        queue = next_queue

    return layers


def _mark_roots_and_leaves(info_map: dict[str, NodeConnectionInfo]) -> None:
    for info in info_map.values():
        info.is_root = not info.incoming
        info.is_leaf = not info.outgoing


def analyze_workflow_connections(workflow: N8nWorkflow) -> dict[str, NodeConnectionInfo]:
    """Analyze a workflow's connections.

    Main and error connections both count as flow. Connections naming a node
    that is not part of the workflow are ignored. Nodes that take part in no
    explicit connection are chained together in document order, and the
    first of them is linked into the connected part of the workflow when it
    has a root.

    Args:
        workflow: Workflow document

    Returns:
        Mapping of node name to its connection info
    """
    info_map = {node.name: NodeConnectionInfo() for node in workflow.nodes}
    connected: set[str] = set()

    for source, kind, _out, _pos, connection in workflow.iter_connections():
        source_info = info_map.get(source)
        if source_info is None:
            continue
        if kind == "main":
            source_info.has_main_connections = True
        else:
            source_info.has_error_connections = True
        if connection.node not in info_map:
            continue
        _link(info_map, source, connection.node)
        connected.update((source, connection.node))

    isolated = [n.name for n in workflow.nodes if n.name not in connected]
    connected_names = [n.name for n in workflow.nodes if n.name in connected]

    logger.debug(
        "connection_analysis",
        connected=len(connected_names),
        isolated=len(isolated),
    )

    if isolated:
        for source, target in zip(isolated, isolated[1:]):
            _link(info_map, source, target)
            info_map[source].has_main_connections = True

        if connected_names:
            roots = [name for name in connected_names if not info_map[name].incoming]
            if roots:
                _link(info_map, isolated[0], roots[0])
                info_map[isolated[0]].has_main_connections = True

    _mark_roots_and_leaves(info_map)
    assign_levels(info_map)

    return info_map


def create_smart_connections(
    workflow: N8nWorkflow,
    info_map: dict[str, NodeConnectionInfo],
) -> list[SmartConnection]:
    """List the connections to draw for a workflow.

    Explicit main connections carry their output index; explicit error
    connections follow. Links inferred by analyze_workflow_connections are
    added as 'logical' for nodes that have no main connections of their own.
    """
    connections: list[SmartConnection] = []

    for source, kind, output_index, _pos, connection in workflow.iter_connections():
        connections.append(
            SmartConnection(
                source=source,
                target=connection.node,
                type=kind,
                output_index=output_index if kind == "main" else None,
            )
        )

    explicit_pairs = {(c.source, c.target) for c in connections}
    explicit_main_sources = {
        source for source, kinds in workflow.connections.items() if kinds.get("main")
    }

    for name, info in info_map.items():
        if name in explicit_main_sources:
            continue
        for target in info.outgoing:
            if (name, target) not in explicit_pairs:
                connections.append(SmartConnection(source=name, target=target, type="logical"))

    return connections


def find_node_connections(workflow: N8nWorkflow, node_name: str) -> tuple[list[str], list[str]]:
    """Explicit incoming and outgoing node names for one node.

    Returns:
        (incoming, outgoing); both empty when the node is unknown
    """
    info_map = _explicit_map(workflow)
    info = info_map.get(node_name)
    if info is None:
        return [], []
    return list(info.incoming), list(info.outgoing)


def explicit_connection_map(workflow: N8nWorkflow) -> dict[str, NodeConnectionInfo]:
    """Connection info from explicit connections, with roots, leaves and levels."""
    info_map = _explicit_map(workflow)
    _mark_roots_and_leaves(info_map)
    return info_map
