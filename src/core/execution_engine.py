"""Simulated workflow execution engine.

Walks a workflow document's node graph the way a real run would, but every
node only sleeps for a per-type latency and returns a fabricated result.
Progress is streamed as ExecutionEvent objects suitable for SSE.
"""

import asyncio
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Iterable, Literal
from uuid import uuid4

import structlog

from src.config import settings
from src.core import node_catalog
from src.core.connection_analyzer import find_node_connections
from src.models.document import N8nNode, N8nWorkflow

logger = structlog.get_logger()

NodeRunStatus = Literal["pending", "running", "completed", "error", "skipped"]


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class ExecutionError(Exception):
    """Base exception for execution errors."""

    def __init__(self, message: str, error_code: str = "EXECUTION_ERROR") -> None:
        super().__init__(message)
        self.error_code = error_code


class NodeExecutionError(ExecutionError):
    """A single simulated node failed."""

    def __init__(
        self,
        message: str,
        node_id: str,
        node_type: str,
        error_code: str = "NODE_ERROR",
    ) -> None:
        super().__init__(message, error_code)
        self.node_id = node_id
        self.node_type = node_type


class ExecutionTimeoutError(ExecutionError):
    """Execution took longer than the configured timeout."""

    def __init__(self, message: str = "Execution timed out") -> None:
        super().__init__(message, "TIMEOUT")


@dataclass
class ExecutionEvent:
    """Event emitted during workflow execution."""

    type: str  # 'start', 'node_start', 'node_complete', 'node_error', 'node_skipped', 'complete', 'cancelled'
    timestamp: datetime = field(default_factory=utc_now)
    data: dict[str, Any] = field(default_factory=dict)
    trace_id: str | None = None
    node_id: str | None = None
    step_number: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for SSE streaming."""
        return {
            "type": self.type,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
            "trace_id": self.trace_id,
            "node_id": self.node_id,
            "step_number": self.step_number,
        }


@dataclass
class NodeResult:
    """Outcome of one node in a simulated run."""

    node_id: str
    node_name: str
    node_type: str
    status: NodeRunStatus = "pending"
    execution_time_ms: int = 0
    data: dict[str, Any] | None = None
    error: str | None = None

    @classmethod
    def for_node(cls, node: N8nNode) -> "NodeResult":
        return cls(node_id=node.id, node_name=node.name, node_type=node.type)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses and persistence."""
        return {
            "node_id": self.node_id,
            "node_name": self.node_name,
            "node_type": self.node_type,
            "status": self.status,
            "execution_time_ms": self.execution_time_ms,
            "data": self.data,
            "error": self.error,
        }


def summarize(results: Iterable[NodeResult | dict[str, Any]]) -> dict[str, int]:
    """Count node results by status.

    Nodes still 'running' (a cancelled run) count as pending.
    """
    counts = {"completed": 0, "error": 0, "skipped": 0, "pending": 0, "total": 0}
    for result in results:
        status = result["status"] if isinstance(result, dict) else result.status
        counts["total"] += 1
        if status in ("completed", "error", "skipped"):
            counts[status] += 1
        else:
            counts["pending"] += 1
    return counts


class SimulatedExecutionEngine:
    """Simulated workflow execution engine.

    Start nodes are the nodes without incoming connections; each is run
    depth-first, its successors visited in workflow order once it succeeds.
    Every node runs at most once per execution, which also guards against
    cycles. A failed node's successors are left pending while other branches
    keep running. Disabled nodes are reported as skipped and pass control on
    to their successors.

    Example usage:
        engine = SimulatedExecutionEngine(time_scale=0, rng=random.Random(7))
        async for event in engine.execute(workflow):
            print(event.type, event.node_id)
    """

    def __init__(
        self,
        time_scale: float | None = None,
        failure_rate: float | None = None,
        node_pause_ms: int | None = None,
        default_latency_ms: int | None = None,
        max_steps: int | None = None,
        timeout: float | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            time_scale: Multiplier applied to every simulated delay (0 = no waiting)
            failure_rate: Probability that a node run fails
            node_pause_ms: Pause between a node and its successors
            default_latency_ms: Latency for node types without a known latency
            max_steps: Maximum node runs per execution
            timeout: Execution timeout in seconds
            rng: Random source, injectable for reproducible runs
        """
        self.time_scale = time_scale if time_scale is not None else settings.simulation_time_scale
        self.failure_rate = (
            failure_rate if failure_rate is not None else settings.simulation_failure_rate
        )
        self.node_pause_ms = (
            node_pause_ms if node_pause_ms is not None else settings.simulation_node_pause_ms
        )
        self.default_latency_ms = (
            default_latency_ms
            if default_latency_ms is not None
            else settings.simulation_default_latency_ms
        )
        self.max_steps = max_steps if max_steps is not None else settings.execution_max_steps
        self.timeout = timeout if timeout is not None else settings.execution_timeout
        self.rng = rng or random.Random()

        if not 0.0 <= self.failure_rate <= 1.0:
            raise ValueError(f"failure_rate must be between 0 and 1, got {self.failure_rate}")
        if self.time_scale < 0:
            raise ValueError(f"time_scale must not be negative, got {self.time_scale}")

    async def _sleep_ms(self, milliseconds: float) -> None:
        delay = milliseconds / 1000 * self.time_scale
        if delay > 0:
            await asyncio.sleep(delay)

    def _start_nodes(self, workflow: N8nWorkflow) -> list[N8nNode]:
        starts = [
            node for node in workflow.nodes
            if not find_node_connections(workflow, node.name)[0]
        ]
        # A graph made only of cycles still needs an entry point
        if not starts and workflow.nodes:
            starts = [workflow.nodes[0]]
        return starts

    def _successors(self, workflow: N8nWorkflow, node: N8nNode) -> list[N8nNode]:
        _, outgoing = find_node_connections(workflow, node.name)
        return [n for n in workflow.nodes if n.name in outgoing]

    async def _run_node(self, node: N8nNode) -> tuple[int, dict[str, Any]]:
        """Simulate one node.

        Raises:
            NodeExecutionError: When the simulated failure roll hits
        """
        latency = node_catalog.get_latency_ms(node.type, self.default_latency_ms)
        await self._sleep_ms(latency)
        if self.rng.random() < self.failure_rate:
            raise NodeExecutionError(f"Simulated error in {node.name}", node.id, node.type)
        return latency, node_catalog.mock_result(node.type, self.rng)

    async def execute(
        self,
        workflow: N8nWorkflow,
        cancel_event: asyncio.Event | None = None,
        trace_id: str | None = None,
    ) -> AsyncGenerator[ExecutionEvent, None]:
        """Execute a workflow with streaming events.

        Args:
            workflow: Workflow document to simulate
            cancel_event: When set, the run stops before the next node
            trace_id: Trace identifier (generated when omitted)

        Yields:
            ExecutionEvent for the start, every node and the final outcome

        Raises:
            ExecutionError: MAX_STEPS_EXCEEDED when too many nodes run
            ExecutionTimeoutError: When the run exceeds the timeout
        """
        trace_id = trace_id or str(uuid4())
        results = {node.id: NodeResult.for_node(node) for node in workflow.nodes}
        started = time.monotonic()
        step_count = 0

        start_nodes = self._start_nodes(workflow)

        logger.info(
            "simulation_starting",
            workflow_name=workflow.name,
            trace_id=trace_id,
            node_count=len(workflow.nodes),
            start_nodes=[n.name for n in start_nodes],
        )

        yield ExecutionEvent(
            type="start",
            trace_id=trace_id,
            data={
                "workflow_id": workflow.id,
                "workflow_name": workflow.name,
                "node_count": len(workflow.nodes),
                "start_nodes": [n.id for n in start_nodes],
            },
        )

        visited: set[str] = set()
        stack: list[N8nNode] = list(reversed(start_nodes))

        while stack:
            node = stack.pop()
            if node.id in visited:
                continue

            if cancel_event is not None and cancel_event.is_set():
                for result in results.values():
                    if result.status == "running":
                        result.status = "pending"
                summary = summarize(results.values())
                logger.info("simulation_cancelled", trace_id=trace_id, **summary)
                yield ExecutionEvent(
                    type="cancelled",
                    trace_id=trace_id,
                    step_number=step_count,
                    data={
                        "summary": summary,
                        "results": [r.to_dict() for r in results.values()],
                    },
                )
                return

            if time.monotonic() - started > self.timeout:
                raise ExecutionTimeoutError(
                    f"Execution exceeded timeout ({self.timeout}s)"
                )

            visited.add(node.id)
            result = results[node.id]

            if node.disabled:
                result.status = "skipped"
                yield ExecutionEvent(
                    type="node_skipped",
                    trace_id=trace_id,
                    node_id=node.id,
                    step_number=step_count,
                    data={"node_name": node.name, "node_type": node.type},
                )
                stack.extend(reversed(self._successors(workflow, node)))
                continue

            step_count += 1
            if step_count > self.max_steps:
                raise ExecutionError(
                    f"Execution exceeded maximum steps ({self.max_steps})",
                    "MAX_STEPS_EXCEEDED",
                )

            result.status = "running"
            yield ExecutionEvent(
                type="node_start",
                trace_id=trace_id,
                node_id=node.id,
                step_number=step_count,
                data={"node_name": node.name, "node_type": node.type},
            )

            try:
                latency, data = await self._run_node(node)
            except NodeExecutionError as e:
                result.status = "error"
                result.error = str(e)
                logger.warning(
                    "node_execution_failed",
                    trace_id=trace_id,
                    node_id=node.id,
                    node_type=node.type,
                    error=str(e),
                )
                yield ExecutionEvent(
                    type="node_error",
                    trace_id=trace_id,
                    node_id=node.id,
                    step_number=step_count,
                    data={"node_name": node.name, "error": str(e), "error_code": e.error_code},
                )
                continue

            result.status = "completed"
            result.execution_time_ms = latency
            result.data = data
            yield ExecutionEvent(
                type="node_complete",
                trace_id=trace_id,
                node_id=node.id,
                step_number=step_count,
                data={
                    "node_name": node.name,
                    "execution_time_ms": latency,
                    "result": data,
                },
            )

            successors = self._successors(workflow, node)
            if successors:
                await self._sleep_ms(self.node_pause_ms)
                stack.extend(reversed(successors))

        summary = summarize(results.values())
        status = "failed" if summary["error"] else "completed"

        logger.info(
            "simulation_completed",
            trace_id=trace_id,
            status=status,
            steps=step_count,
            **summary,
        )

        yield ExecutionEvent(
            type="complete",
            trace_id=trace_id,
            step_number=step_count,
            data={
                "status": status,
                "summary": summary,
                "steps_completed": step_count,
                "results": [r.to_dict() for r in results.values()],
            },
        )

    async def run(
        self,
        workflow: N8nWorkflow,
        cancel_event: asyncio.Event | None = None,
    ) -> list[ExecutionEvent]:
        """Run a simulation to the end and collect its events."""
        return [event async for event in self.execute(workflow, cancel_event)]
