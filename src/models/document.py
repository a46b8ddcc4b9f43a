"""Workflow document schemas.

Pydantic models for n8n-style workflow JSON as produced by the LLM and
edited in the playground. Connections reference nodes by *name*, while the
canvas and executions reference nodes by *id*.

Document shape:
{
    "name": str,
    "nodes": [{"id": str, "name": str, "type": "n8n-nodes-base.x", "position": [x, y], ...}],
    "connections": {"Source Name": {"main": [[{"node": "Target Name", "type": "main", "index": 0}]]}},
    "settings": {}
}
"""

from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

NODE_TYPE_PREFIX = "n8n-nodes-base."

CONNECTION_KINDS = ("main", "error")


def short_node_type(node_type: str) -> str:
    """Strip the n8n package prefix and lowercase a node type."""
    return node_type.replace(NODE_TYPE_PREFIX, "").lower()


class N8nConnection(BaseModel):
    """A single connection target."""

    node: str
    type: str = "main"
    index: int = 0


class N8nNode(BaseModel):
    """A node in a workflow document."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    type: str
    typeVersion: float = 1
    position: list[float] = Field(default_factory=lambda: [0, 0])
    parameters: dict[str, Any] = Field(default_factory=dict)
    credentials: dict[str, Any] = Field(default_factory=dict)
    webhookId: str | None = None
    disabled: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def assign_missing_id(cls, v: Any) -> str:
        return str(v) if v else str(uuid4())

    @field_validator("position", mode="before")
    @classmethod
    def normalize_position(cls, v: Any) -> list[float]:
        """Accept [x, y], {"x": .., "y": ..} or nothing."""
        if v is None:
            return [0, 0]
        if isinstance(v, dict):
            return [v.get("x", 0), v.get("y", 0)]
        if isinstance(v, (list, tuple)) and len(v) >= 2:
            return [v[0], v[1]]
        return [0, 0]

    @field_validator("parameters", "credentials", mode="before")
    @classmethod
    def default_empty(cls, v: Any) -> dict[str, Any]:
        return v if isinstance(v, dict) else {}

    @property
    def short_type(self) -> str:
        return short_node_type(self.type)


class N8nWorkflow(BaseModel):
    """A complete workflow document."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | None = None
    name: str = "Untitled Workflow"
    description: str | None = None
    active: bool = False
    nodes: list[N8nNode] = Field(default_factory=list)
    connections: dict[str, dict[str, list[list[N8nConnection]]]] = Field(
        default_factory=dict
    )
    settings: dict[str, Any] = Field(default_factory=dict)
    staticData: dict[str, Any] | None = None
    tags: list[Any] = Field(default_factory=list)

    @field_validator("connections", mode="before")
    @classmethod
    def drop_empty_groups(cls, v: Any) -> dict[str, Any]:
        """Tolerate null connection maps and null output slots."""
        if not isinstance(v, dict):
            return {}
        cleaned: dict[str, Any] = {}
        for source, kinds in v.items():
            if not isinstance(kinds, dict):
                continue
            cleaned[source] = {
                kind: [group or [] for group in (groups or [])]
                for kind, groups in kinds.items()
            }
        return cleaned

    def node_by_name(self, name: str) -> N8nNode | None:
        """Find a node by its display name."""
        return next((n for n in self.nodes if n.name == name), None)

    def node_by_id(self, node_id: str) -> N8nNode | None:
        """Find a node by its id."""
        return next((n for n in self.nodes if n.id == node_id), None)

    def iter_connections(self, kind: str | None = None):
        """Yield (source, kind, output_index, position, connection) tuples."""
        for source, kinds in self.connections.items():
            for conn_kind in CONNECTION_KINDS:
                if kind is not None and conn_kind != kind:
                    continue
                for output_index, group in enumerate(kinds.get(conn_kind) or []):
                    for position, connection in enumerate(group):
                        yield source, conn_kind, output_index, position, connection

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize without unset optional keys."""
        return self.model_dump(mode="json", exclude_none=True)
