"""Execution service.

Handles the simulated execution lifecycle: creating runs from saved or
inline workflows, driving the engine while persisting per-node results,
cancellation, retries and unpersisted simulations.
"""

import asyncio
import random
from typing import Any, AsyncGenerator
from uuid import uuid4

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.execution_engine import (
    ExecutionError,
    ExecutionEvent,
    NodeResult,
    SimulatedExecutionEngine,
    summarize,
)
from src.models.document import N8nWorkflow
from src.models.execution import (
    Execution,
    ExecutionCreate,
    ExecutionRead,
    ExecutionStatus,
    NodeResultRead,
    SimulationRequest,
    SimulationResult,
)
from src.services.workflow_service import WorkflowService, validate_document

logger = structlog.get_logger()

# Cancel signals for runs currently driven by this process
_active_runs: dict[str, asyncio.Event] = {}


class ExecutionServiceError(Exception):
    """Error in execution service operations."""

    pass


class ExecutionNotFoundError(ExecutionServiceError):
    """Execution not found for this user."""

    pass


class ExecutionStateError(ExecutionServiceError):
    """Operation not allowed in the execution's current status."""

    pass


class ExecutionValidationError(ExecutionServiceError):
    """Execution request is invalid."""

    def __init__(self, message: str, errors: list[str]) -> None:
        super().__init__(message)
        self.errors = errors


class ExecutionAbortedError(ExecutionServiceError):
    """The engine aborted a simulation (step limit, timeout)."""

    def __init__(self, message: str, error_code: str) -> None:
        super().__init__(message)
        self.error_code = error_code


class ExecutionService:
    """Service for managing simulated workflow executions.

    Handles:
    - Creating executions from a saved workflow or an inline document
    - Running them while persisting node results and the final status
    - Cancelling pending or in-process runs
    - Retrying failed or cancelled runs
    - Unpersisted simulations

    Example usage:
        service = ExecutionService(session, WorkflowService(session))
        execution = await service.create_and_run(
            user_id="user-123",
            data=ExecutionCreate(workflow_id="wf-1"),
        )
        print(execution.status, execution.nodes_failed)
    """

    def __init__(
        self,
        session: AsyncSession,
        workflow_service: WorkflowService,
        engine: SimulatedExecutionEngine | None = None,
    ) -> None:
        """Initialize execution service.

        Args:
            session: Async database session
            workflow_service: Workflow service instance
            engine: Simulated engine (configured from settings when omitted)
        """
        self._session = session
        self._workflow_service = workflow_service
        self._engine = engine or SimulatedExecutionEngine()

    async def create(self, user_id: str, data: ExecutionCreate) -> ExecutionRead:
        """Create a pending execution.

        Args:
            user_id: User triggering execution
            data: Saved workflow id or inline document

        Returns:
            Created execution

        Raises:
            ExecutionValidationError: If neither or both sources are given,
                or the inline document is malformed
            WorkflowNotFoundError: If the saved workflow doesn't exist
        """
        if (data.workflow_id is None) == (data.workflow is None):
            raise ExecutionValidationError(
                "Invalid execution request",
                errors=["Provide exactly one of 'workflow_id' or 'workflow'"],
            )

        if data.workflow_id is not None:
            document = await self._workflow_service.get_document(data.workflow_id, user_id)
        else:
            document = data.workflow
            self._validate_inline(document)

        execution = await self._create_from_document(user_id, data.workflow_id, document)
        return self._to_read(execution)

    async def create_and_run(self, user_id: str, data: ExecutionCreate) -> ExecutionRead:
        """Create an execution and run it to the end.

        Returns:
            Finished execution
        """
        execution = await self.create(user_id, data)

        async for event in self.execute(execution.id, user_id):
            logger.debug("execution_event", execution_id=execution.id, event_type=event.type)

        return await self.get(execution.id, user_id)

    async def get(self, execution_id: str, user_id: str) -> ExecutionRead:
        """Get an execution.

        Raises:
            ExecutionNotFoundError: If the user has no such execution
        """
        execution = await self._get_or_raise(execution_id, user_id)
        return self._to_read(execution)

    async def list_all(
        self,
        user_id: str,
        workflow_id: str | None = None,
        status: ExecutionStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ExecutionRead]:
        """List user's executions, newest first.

        Args:
            user_id: User ID
            workflow_id: Filter by workflow
            status: Filter by status
            limit: Maximum results
            offset: Pagination offset
        """
        query = (
            select(Execution)
            .where(Execution.user_id == user_id)
            .order_by(Execution.started_at.desc())
            .limit(limit)
            .offset(offset)
        )

        if workflow_id:
            query = query.where(Execution.workflow_id == workflow_id)
        if status:
            query = query.where(Execution.status == status)

        result = await self._session.execute(query)
        return [self._to_read(e) for e in result.scalars().all()]

    async def execute(
        self,
        execution_id: str,
        user_id: str,
    ) -> AsyncGenerator[ExecutionEvent, None]:
        """Run a pending execution and stream its events.

        Node results are persisted after every node event; the final status
        is COMPLETED, FAILED (any node failed, or the engine aborted) or
        CANCELLED.

        Raises:
            ExecutionNotFoundError: If the user has no such execution
            ExecutionStateError: If the execution is not pending
        """
        execution = await self._get_or_raise(execution_id, user_id)

        if execution.status != ExecutionStatus.PENDING:
            raise ExecutionStateError(f"Cannot execute: status is {execution.status.value}")

        workflow = execution.get_workflow()
        results = {r["node_id"]: r for r in execution.get_node_results()}

        cancel_event = asyncio.Event()
        _active_runs[execution_id] = cancel_event

        execution.trace_id = str(uuid4())
        execution.mark_running()
        await self._session.commit()

        logger.info(
            "execution_starting",
            execution_id=execution_id,
            user_id=user_id,
            trace_id=execution.trace_id,
        )

        try:
            async for event in self._engine.execute(
                workflow,
                cancel_event=cancel_event,
                trace_id=execution.trace_id,
            ):
                if event.type in ("complete", "cancelled"):
                    execution.set_node_results(event.data["results"])
                    if event.type == "complete":
                        execution.mark_finished(event.data["summary"])
                    else:
                        self._apply_counters(execution, event.data["summary"])
                        execution.mark_cancelled()
                    await self._session.commit()

                elif event.node_id is not None and event.node_id in results:
                    self._apply_node_event(results[event.node_id], event)
                    node_results = list(results.values())
                    execution.set_node_results(node_results)
                    self._apply_counters(execution, summarize(node_results))
                    execution.current_node_id = (
                        event.node_id if event.type == "node_start" else None
                    )
                    await self._session.commit()

                yield event

        except ExecutionError as e:
            execution.mark_failed(str(e), e.error_code)
            await self._session.commit()

            logger.warning(
                "execution_aborted",
                execution_id=execution_id,
                error_code=e.error_code,
                error=str(e),
            )

            yield ExecutionEvent(
                type="error",
                trace_id=execution.trace_id,
                data={"error": str(e), "error_code": e.error_code},
            )

        except Exception as e:
            execution.mark_failed(str(e), "UNEXPECTED_ERROR")
            await self._session.commit()

            logger.exception("execution_failed_unexpected", execution_id=execution_id)

            yield ExecutionEvent(
                type="error",
                trace_id=execution.trace_id,
                data={"error": str(e), "error_type": type(e).__name__},
            )

        finally:
            _active_runs.pop(execution_id, None)

            # Stream closed early (client disconnected)
            if execution.status == ExecutionStatus.RUNNING:
                execution.mark_cancelled()
                await asyncio.shield(self._session.commit())
                logger.warning("execution_stream_closed", execution_id=execution_id)

        logger.info(
            "execution_finished",
            execution_id=execution_id,
            status=execution.status.value,
            nodes_failed=execution.nodes_failed,
        )

    async def cancel(self, execution_id: str, user_id: str) -> ExecutionRead:
        """Cancel a pending execution, or signal a run in progress.

        A running execution stops before its next node; its stream records
        the CANCELLED status. A running execution with no live stream in this
        process is cancelled directly.

        Raises:
            ExecutionNotFoundError: If the user has no such execution
            ExecutionStateError: If the execution cannot be cancelled
        """
        execution = await self._get_or_raise(execution_id, user_id)

        if execution.status == ExecutionStatus.RUNNING and execution_id in _active_runs:
            _active_runs[execution_id].set()
        elif execution.status in (ExecutionStatus.PENDING, ExecutionStatus.RUNNING):
            # A RUNNING row nobody is driving is left over from a lost stream
            execution.mark_cancelled()
            await self._session.commit()
            await self._session.refresh(execution)
        else:
            raise ExecutionStateError(f"Cannot cancel: status is {execution.status.value}")

        logger.info("execution_cancelled", execution_id=execution_id, user_id=user_id)

        return self._to_read(execution)

    async def retry(self, execution_id: str, user_id: str, start: bool = True) -> ExecutionRead:
        """Run a failed or cancelled execution again as a new execution.

        The new run uses the original's workflow snapshot.

        Raises:
            ExecutionNotFoundError: If the user has no such execution
            ExecutionStateError: If the execution did not fail or get cancelled
        """
        original = await self._get_or_raise(execution_id, user_id)

        if original.status not in (ExecutionStatus.FAILED, ExecutionStatus.CANCELLED):
            raise ExecutionStateError(
                f"Cannot retry execution with status: {original.status.value}"
            )

        execution = await self._create_from_document(
            user_id, original.workflow_id, original.get_workflow()
        )

        logger.info("execution_retried", execution_id=execution.id, retry_of=execution_id)

        if not start:
            return self._to_read(execution)

        async for event in self.execute(execution.id, user_id):
            logger.debug("execution_event", execution_id=execution.id, event_type=event.type)

        return await self.get(execution.id, user_id)

    async def delete(self, execution_id: str, user_id: str) -> None:
        """Delete an execution record.

        Raises:
            ExecutionNotFoundError: If the user has no such execution
        """
        execution = await self._get_or_raise(execution_id, user_id)

        cancel_event = _active_runs.get(execution_id)
        if cancel_event is not None:
            cancel_event.set()

        await self._session.delete(execution)
        await self._session.commit()

        logger.info("execution_deleted", execution_id=execution_id, user_id=user_id)

    async def simulate(self, request: SimulationRequest) -> SimulationResult:
        """Run an inline workflow without persisting anything.

        Raises:
            ExecutionValidationError: If the document is malformed
            ExecutionAbortedError: If the engine aborts the run
        """
        self._validate_inline(request.workflow)

        engine = SimulatedExecutionEngine(
            time_scale=self._engine.time_scale,
            failure_rate=(
                request.failure_rate
                if request.failure_rate is not None
                else self._engine.failure_rate
            ),
            node_pause_ms=self._engine.node_pause_ms,
            default_latency_ms=self._engine.default_latency_ms,
            max_steps=self._engine.max_steps,
            timeout=self._engine.timeout,
            rng=random.Random(request.seed) if request.seed is not None else self._engine.rng,
        )

        try:
            events = await engine.run(request.workflow)
        except ExecutionError as e:
            raise ExecutionAbortedError(str(e), e.error_code) from e

        final = events[-1]
        summary = final.data["summary"]
        return SimulationResult(
            trace_id=final.trace_id,
            status=ExecutionStatus.FAILED if summary["error"] else ExecutionStatus.COMPLETED,
            summary=summary,
            node_results=[NodeResultRead(**r) for r in final.data["results"]],
            events=[e.to_dict() for e in events],
        )

    async def _create_from_document(
        self,
        user_id: str,
        workflow_id: str | None,
        document: N8nWorkflow,
    ) -> Execution:
        execution = Execution(
            user_id=user_id,
            workflow_id=workflow_id,
            workflow_json=document.model_dump_json(exclude_none=True),
            status=ExecutionStatus.PENDING,
            nodes_total=len(document.nodes),
        )
        execution.set_node_results([NodeResult.for_node(n).to_dict() for n in document.nodes])

        self._session.add(execution)
        await self._session.commit()
        await self._session.refresh(execution)

        logger.info(
            "execution_created",
            execution_id=execution.id,
            workflow_id=workflow_id,
            user_id=user_id,
            node_count=len(document.nodes),
        )

        return execution

    @staticmethod
    def _validate_inline(document: N8nWorkflow) -> None:
        # Duplicate ids or names would collapse into one node result
        errors = validate_document(document)
        if errors:
            raise ExecutionValidationError("Invalid workflow", errors=errors)

    async def _get_or_raise(self, execution_id: str, user_id: str) -> Execution:
        query = select(Execution).where(
            Execution.id == execution_id,
            Execution.user_id == user_id,
        )
        result = await self._session.execute(query)
        execution = result.scalar_one_or_none()

        if execution is None:
            raise ExecutionNotFoundError(f"Execution '{execution_id}' not found")

        return execution

    @staticmethod
    def _apply_node_event(result: dict[str, Any], event: ExecutionEvent) -> None:
        if event.type == "node_start":
            result["status"] = "running"
        elif event.type == "node_complete":
            result["status"] = "completed"
            result["execution_time_ms"] = event.data.get("execution_time_ms", 0)
            result["data"] = event.data.get("result")
        elif event.type == "node_error":
            result["status"] = "error"
            result["error"] = event.data.get("error")
        elif event.type == "node_skipped":
            result["status"] = "skipped"

    @staticmethod
    def _apply_counters(execution: Execution, summary: dict[str, int]) -> None:
        execution.nodes_total = summary["total"]
        execution.nodes_completed = summary["completed"]
        execution.nodes_failed = summary["error"]
        execution.nodes_skipped = summary["skipped"]

    def _to_read(self, execution: Execution) -> ExecutionRead:
        """Convert execution entity to read schema."""
        return ExecutionRead(
            id=execution.id,
            user_id=execution.user_id,
            workflow_id=execution.workflow_id,
            status=execution.status,
            node_results=[NodeResultRead(**r) for r in execution.get_node_results()],
            nodes_total=execution.nodes_total,
            nodes_completed=execution.nodes_completed,
            nodes_failed=execution.nodes_failed,
            nodes_skipped=execution.nodes_skipped,
            current_node_id=execution.current_node_id,
            error=execution.error,
            error_code=execution.error_code,
            trace_id=execution.trace_id,
            started_at=execution.started_at,
            completed_at=execution.completed_at,
            duration_ms=execution.duration_ms,
        )
