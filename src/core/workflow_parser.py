"""Workflow document to canvas conversion.

Turns an n8n workflow document into positioned canvas nodes and styled
edges for the playground, and applies node edits back onto the document.
Every node of a non-empty workflow ends up attached to at least one edge
when the workflow has more than one node.
"""

from dataclasses import dataclass, field, replace
from functools import cmp_to_key
from typing import Any, Literal

import structlog

from src.core import node_catalog
from src.core.connection_analyzer import assign_levels, explicit_connection_map
from src.models.document import N8nNode, N8nWorkflow

logger = structlog.get_logger()

NODE_SPACING = 300
LAYER_SPACING = 200
ROW_TOLERANCE = 50

NodeStatus = Literal["pending", "running", "completed", "error", "skipped"]

MAIN_EDGE_STYLE = {"stroke": "#10b981", "strokeWidth": 2, "strokeOpacity": 0.8}
ERROR_EDGE_STYLE = {"stroke": "#ef4444", "strokeWidth": 2, "strokeDasharray": "5,5"}
AUTO_EDGE_STYLE = {"stroke": "#3b82f6", "strokeWidth": 2, "strokeDasharray": "4,4", "strokeOpacity": 0.7}
BRIDGE_EDGE_STYLE = {"stroke": "#8b5cf6", "strokeWidth": 2, "strokeDasharray": "2,2"}
IDLE_EDGE_STROKE = "rgba(255, 255, 255, 0.6)"
ACTIVE_EDGE_STROKE = "#10b981"


@dataclass
class CanvasNode:
    """A positioned node on the canvas."""

    id: str
    position: dict[str, float]
    data: dict[str, Any]
    type: str = "workflowNode"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "type": self.type,
            "position": dict(self.position),
            "data": dict(self.data),
        }


@dataclass
class CanvasEdge:
    """A styled edge on the canvas."""

    id: str
    source: str
    target: str
    type: str = "smoothstep"
    animated: bool = False
    source_handle: str | None = None
    target_handle: str | None = None
    style: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        data: dict[str, Any] = {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "type": self.type,
            "animated": self.animated,
            "style": dict(self.style),
        }
        if self.source_handle is not None:
            data["sourceHandle"] = self.source_handle
        if self.target_handle is not None:
            data["targetHandle"] = self.target_handle
        return data


@dataclass
class Canvas:
    """Nodes and edges ready for rendering."""

    nodes: list[CanvasNode] = field(default_factory=list)
    edges: list[CanvasEdge] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }


def calculate_layout(workflow: N8nWorkflow) -> dict[str, dict[str, float]]:
    """Layered layout: one row per BFS level, rows centred around x=600.

    Nodes not reachable from a root (cycles only) share a final row.
    """
    info_map = explicit_connection_map(workflow)
    layers = assign_levels(info_map)

    placed = {name for layer in layers for name in layer}
    orphaned = [n.name for n in workflow.nodes if n.name not in placed]
    if orphaned:
        layers.append(orphaned)

    positions: dict[str, dict[str, float]] = {}
    for layer_index, layer in enumerate(layers):
        layer_y = 100 + layer_index * LAYER_SPACING
        total_width = (len(layer) - 1) * NODE_SPACING
        start_x = max(100, 600 - total_width / 2)
        for index, name in enumerate(layer):
            positions[name] = {"x": start_x + index * NODE_SPACING, "y": layer_y}

    return positions


def compare_rows(a: CanvasNode, b: CanvasNode) -> float:
    """Order nodes less than ROW_TOLERANCE apart vertically by x, others by y."""
    dy = a.position["y"] - b.position["y"]
    if abs(dy) < ROW_TOLERANCE:
        return a.position["x"] - b.position["x"]
    return dy

def _node_data(node: N8nNode, workflow: N8nWorkflow) -> dict[str, Any]:
    node_connections = workflow.connections.get(node.name)
    is_end = not node_connections or (
        not node_connections.get("main") and not node_connections.get("error")
    )
    return {
        "name": node.name,
        "nodeType": node.type,
        "type": node.type,
        "parameters": dict(node.parameters),
        "credentials": dict(node.credentials),
        "disabled": node.disabled,
        "outputs": node_catalog.get_output_count(node.type),
        "hasErrorOutput": node_catalog.has_error_output(node.type),
        "isStartNode": node_catalog.is_start_node(node.type),
        "isEndNode": is_end,
        "workflowId": workflow.id,
        "status": "pending",
    }


def _build_edges(workflow: N8nWorkflow, nodes: list[CanvasNode]) -> list[CanvasEdge]:
    by_name = {n.data["name"]: n for n in nodes}
    edges: list[CanvasEdge] = []
    connected: set[str] = set()

    for source_name, kind, output_index, position, connection in workflow.iter_connections():
        source = by_name.get(source_name)
        target = by_name.get(connection.node)
        if source is None or target is None:
            continue

        if kind == "main":
            edges.append(
                CanvasEdge(
                    id=f"main-{source.id}-{target.id}-{output_index}-{position}",
                    source=source.id,
                    target=target.id,
                    source_handle=f"output-{output_index}" if output_index > 0 else None,
                    style=dict(MAIN_EDGE_STYLE),
                )
            )
        else:
            edges.append(
                CanvasEdge(
                    id=f"error-{source.id}-{target.id}",
                    source=source.id,
                    target=target.id,
                    animated=True,
                    source_handle="error",
                    style=dict(ERROR_EDGE_STYLE),
                )
            )
        connected.update((source.id, target.id))

    orphans = [n for n in nodes if n.id not in connected]
    if not orphans:
        return edges

    logger.debug("connecting_orphaned_nodes", count=len(orphans))

    orphans.sort(key=cmp_to_key(compare_rows))

    for source, target in zip(orphans, orphans[1:]):
        edges.append(
            CanvasEdge(
                id=f"auto-{source.id}-{target.id}",
                source=source.id,
                target=target.id,
                animated=True,
                style=dict(AUTO_EDGE_STYLE),
            )
        )
        connected.update((source.id, target.id))

    first_orphan = orphans[0]
    anchor = next(
        (n for n in nodes if n.id in connected and n not in orphans),
        None,
    )
    if anchor is not None:
        edges.append(
            CanvasEdge(
                id=f"bridge-{anchor.id}-{first_orphan.id}",
                source=anchor.id,
                target=first_orphan.id,
                animated=True,
                style=dict(BRIDGE_EDGE_STYLE),
            )
        )

    return edges


def parse_workflow_to_canvas(workflow: N8nWorkflow) -> Canvas:
    """Convert a workflow document into canvas nodes and edges.

    Args:
        workflow: Workflow document

    Returns:
        Canvas with positioned nodes and styled edges
    """
    if not workflow.nodes:
        logger.warning("workflow_has_no_nodes", workflow_name=workflow.name)
        return Canvas()

    positions = calculate_layout(workflow)

    nodes = []
    for index, node in enumerate(workflow.nodes):
        position = positions.get(node.name) or {
            "x": 100 + (index % 3) * NODE_SPACING,
            "y": 100 + (index // 3) * LAYER_SPACING,
        }
        nodes.append(CanvasNode(id=node.id, position=position, data=_node_data(node, workflow)))

    edges = _build_edges(workflow, nodes)

    linked = {e.source for e in edges} | {e.target for e in edges}
    logger.info(
        "workflow_parsed_to_canvas",
        workflow_name=workflow.name,
        node_count=len(nodes),
        edge_count=len(edges),
        orphaned=len(nodes) - len(linked),
    )

    return Canvas(nodes=nodes, edges=edges)


def update_node_status(
    nodes: list[CanvasNode],
    node_id: str,
    status: NodeStatus,
    **extra: Any,
) -> list[CanvasNode]:
    """Return a copy of nodes with one node's status (and extras) replaced."""
    return [
        replace(node, data={**node.data, "status": status, **extra})
        if node.id == node_id
        else node
        for node in nodes
    ]


def animate_edge(edges: list[CanvasEdge], edge_id: str, animated: bool) -> list[CanvasEdge]:
    """Return a copy of edges with one edge highlighted or reset."""
    return [
        replace(
            edge,
            animated=animated,
            style={
                **edge.style,
                "stroke": ACTIVE_EDGE_STROKE if animated else IDLE_EDGE_STROKE,
                "strokeWidth": 3 if animated else 2,
            },
        )
        if edge.id == edge_id
        else edge
        for edge in edges
    ]


def update_workflow_from_node(
    workflow: N8nWorkflow,
    node_id: str,
    parameters: dict[str, Any] | None = None,
    credentials: dict[str, Any] | None = None,
    disabled: bool | None = None,
) -> N8nWorkflow:
    """Apply node property edits to a copy of the workflow.

    Fields left as None keep their current value. An unknown node id returns
    the workflow unchanged.
    """
    if workflow.node_by_id(node_id) is None:
        return workflow

    nodes = []
    for node in workflow.nodes:
        if node.id == node_id:
            node = node.model_copy(
                update={
                    "parameters": parameters if parameters is not None else node.parameters,
                    "credentials": credentials if credentials is not None else node.credentials,
                    "disabled": disabled if disabled is not None else node.disabled,
                }
            )
        nodes.append(node)

    return workflow.model_copy(update={"nodes": nodes})
