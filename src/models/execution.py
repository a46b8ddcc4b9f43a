"""Execution entity model.

Defines the Execution table for tracking simulated workflow runs.
Includes status, per-node results, counters, timing, and error information.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlmodel import Column, Field, SQLModel, Text

from src.models.document import N8nWorkflow


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class ExecutionStatus(str, Enum):
    """Execution lifecycle status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Execution(SQLModel, table=True):
    """Execution database entity.

    A run is FAILED when at least one node failed, even though the engine
    keeps running unaffected branches. The workflow document is snapshotted
    into the row so later edits do not change what a run executed.
    """

    __tablename__ = "execution"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Unique execution identifier (UUID)",
    )
    user_id: str = Field(
        index=True,
        max_length=100,
        description="User who triggered the execution",
    )
    workflow_id: str | None = Field(
        default=None,
        index=True,
        max_length=100,
        description="Saved workflow this run belongs to (None for inline runs)",
    )
    workflow_json: str = Field(
        sa_column=Column(Text, nullable=False),
        description="Snapshot of the executed workflow document",
    )
    status: ExecutionStatus = Field(
        default=ExecutionStatus.PENDING,
        index=True,
        description="Current execution status",
    )
    node_results: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="JSON list of per-node results",
    )
    nodes_total: int = Field(default=0, ge=0)
    nodes_completed: int = Field(default=0, ge=0)
    nodes_failed: int = Field(default=0, ge=0)
    nodes_skipped: int = Field(default=0, ge=0)
    current_node_id: str | None = Field(
        default=None,
        max_length=100,
        description="ID of the node currently running",
    )
    error: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="Error message if execution failed",
    )
    error_code: str | None = Field(
        default=None,
        max_length=100,
        description="Error code for programmatic error handling",
    )
    trace_id: str | None = Field(
        default=None,
        max_length=100,
        description="Trace identifier shared by all events of the run",
    )
    started_at: datetime = Field(
        default_factory=utc_now,
        description="Execution start timestamp (UTC)",
    )
    completed_at: datetime | None = Field(
        default=None,
        description="Execution completion timestamp (UTC)",
    )

    def get_workflow(self) -> N8nWorkflow:
        """Parse the snapshotted workflow document."""
        return N8nWorkflow.model_validate(json.loads(self.workflow_json))

    def get_node_results(self) -> list[dict[str, Any]]:
        """Parse and return per-node results."""
        if self.node_results is None:
            return []
        return json.loads(self.node_results)

    def set_node_results(self, results: list[dict[str, Any]]) -> None:
        """Set per-node results."""
        self.node_results = json.dumps(results, default=str)

    @property
    def duration_ms(self) -> int | None:
        """Calculate execution duration in milliseconds."""
        if self.completed_at is None:
            return None
        started = self.started_at
        completed = self.completed_at
        # SQLite hands back naive datetimes
        if started.tzinfo is None:
            started = started.replace(tzinfo=timezone.utc)
        if completed.tzinfo is None:
            completed = completed.replace(tzinfo=timezone.utc)
        return int((completed - started).total_seconds() * 1000)

    def mark_running(self) -> None:
        """Mark execution as running."""
        self.status = ExecutionStatus.RUNNING

    def mark_finished(self, summary: dict[str, int]) -> None:
        """Record final counters and derive COMPLETED or FAILED."""
        self.nodes_total = summary.get("total", 0)
        self.nodes_completed = summary.get("completed", 0)
        self.nodes_failed = summary.get("error", 0)
        self.nodes_skipped = summary.get("skipped", 0)
        self.current_node_id = None
        if self.nodes_failed:
            self.status = ExecutionStatus.FAILED
            self.error = f"{self.nodes_failed} node(s) failed"
            self.error_code = "NODE_ERROR"
        else:
            self.status = ExecutionStatus.COMPLETED
        self.completed_at = utc_now()

    def mark_failed(self, error: str, error_code: str | None = None) -> None:
        """Mark execution as failed with error information."""
        self.status = ExecutionStatus.FAILED
        self.error = error
        self.error_code = error_code
        self.current_node_id = None
        self.completed_at = utc_now()

    def mark_cancelled(self) -> None:
        """Mark execution as cancelled."""
        self.status = ExecutionStatus.CANCELLED
        self.current_node_id = None
        self.completed_at = utc_now()


class ExecutionCreate(SQLModel):
    """Schema for creating a new execution.

    Exactly one of workflow_id (a saved workflow) or workflow (an inline
    document) must be given.
    """

    workflow_id: str | None = None
    workflow: N8nWorkflow | None = None
    start: bool = Field(
        default=True,
        description="Run immediately; otherwise connect to the stream endpoint to run",
    )


class NodeResultRead(SQLModel):
    """Schema for one node's simulated result."""

    node_id: str
    node_name: str
    node_type: str
    status: str
    execution_time_ms: int = 0
    data: dict[str, Any] | None = None
    error: str | None = None


class ExecutionRead(SQLModel):
    """Schema for reading execution data."""

    id: str
    user_id: str
    workflow_id: str | None = None
    status: ExecutionStatus
    node_results: list[NodeResultRead] = Field(default_factory=list)
    nodes_total: int
    nodes_completed: int
    nodes_failed: int
    nodes_skipped: int
    current_node_id: str | None = None
    error: str | None = None
    error_code: str | None = None
    trace_id: str | None = None
    started_at: datetime
    completed_at: datetime | None = None
    duration_ms: int | None = None


class SimulationRequest(SQLModel):
    """Schema for an unpersisted simulated run."""

    workflow: N8nWorkflow
    seed: int | None = Field(default=None, description="Seed for reproducible runs")
    failure_rate: float | None = Field(default=None, ge=0.0, le=1.0)


class SimulationResult(SQLModel):
    """Schema for an unpersisted simulated run result."""

    trace_id: str
    status: ExecutionStatus
    summary: dict[str, int]
    node_results: list[NodeResultRead]
    events: list[dict[str, Any]]
