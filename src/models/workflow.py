"""Workflow entity model.

Defines the workflow_data table holding saved workflow documents.
Rows are unique per (user_id, workflow_id); saving an existing pair
overwrites the document.
"""

import json
from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from pydantic import field_validator
from sqlalchemy import UniqueConstraint
from sqlmodel import Column, Field, SQLModel, Text

from src.models.document import N8nWorkflow


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class WorkflowRecord(SQLModel, table=True):
    """Saved workflow document.

    workflow_id is chosen by the client (the playground generates it when a
    workflow is first created) so auto-save can upsert without a lookup.
    """

    __tablename__ = "workflow_data"
    __table_args__ = (
        UniqueConstraint("user_id", "workflow_id", name="uq_workflow_data_user_workflow"),
    )

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Row identifier (UUID)",
    )
    user_id: str = Field(
        index=True,
        max_length=100,
        description="Owner user ID",
    )
    workflow_id: str = Field(
        index=True,
        max_length=100,
        description="Client-side workflow identifier",
    )
    workflow_name: str = Field(
        max_length=255,
        description="Display name",
    )
    workflow_json: str = Field(
        sa_column=Column(Text, nullable=False),
        description="JSON workflow document",
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column_kwargs={"onupdate": utc_now},
        description="Last update timestamp (UTC)",
    )

    def get_document(self) -> N8nWorkflow:
        """Parse the stored document."""
        return N8nWorkflow.model_validate(json.loads(self.workflow_json))

    def set_document(self, document: N8nWorkflow) -> None:
        """Store a document."""
        self.workflow_json = json.dumps(document.to_json_dict())


class WorkflowSave(SQLModel):
    """Schema for saving (creating or overwriting) a workflow."""

    workflow_name: str | None = Field(
        default=None,
        max_length=255,
        description="Display name (defaults to the document name)",
    )
    workflow: N8nWorkflow

    @field_validator("workflow", mode="before")
    @classmethod
    def parse_workflow(cls, v: Any) -> N8nWorkflow:
        """Accept a JSON string or a dict."""
        if isinstance(v, str):
            return N8nWorkflow.model_validate(json.loads(v))
        if isinstance(v, dict):
            return N8nWorkflow.model_validate(v)
        return v


class WorkflowRead(SQLModel):
    """Schema for reading a saved workflow."""

    workflow_id: str
    user_id: str
    workflow_name: str
    workflow: N8nWorkflow
    created_at: datetime
    updated_at: datetime


class WorkflowSummary(SQLModel):
    """Listing entry."""

    workflow_id: str
    workflow_name: str
    node_count: int
    updated_at: datetime


class NodeUpdate(SQLModel):
    """Schema for editing one node's properties."""

    parameters: dict[str, Any] | None = None
    credentials: dict[str, Any] | None = None
    disabled: bool | None = None


class ChatTurn(SQLModel):
    """A prior message in the assistant conversation."""

    role: Literal["user", "assistant"]
    content: str = Field(max_length=20000)


class WorkflowGenerateRequest(SQLModel):
    """Schema for LLM-based workflow generation."""

    description: str = Field(
        min_length=5,
        max_length=5000,
        description="Natural language description of the automation",
    )
    current_workflow: N8nWorkflow | None = Field(
        default=None,
        description="Workflow loaded in the canvas; the request refines it",
    )
    chat_history: list[ChatTurn] = Field(
        default_factory=list,
        description="Earlier turns of the conversation, oldest first",
    )
    save: bool = Field(
        default=False,
        description="Persist the generated workflow under a new workflow_id",
    )


class WorkflowGenerateResponse(SQLModel):
    """Schema for LLM-based workflow generation response."""

    workflow_id: str | None = None
    summary: str
    workflow: N8nWorkflow
