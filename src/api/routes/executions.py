"""Execution API endpoints.

Handles simulated workflow runs and SSE streaming.
"""

import json
from typing import Annotated

import structlog
from fastapi import APIRouter, HTTPException, Query, status
from sse_starlette.sse import EventSourceResponse

from src.api.deps import CurrentUserId, ExecutionServiceDep
from src.models.execution import (
    ExecutionCreate,
    ExecutionRead,
    ExecutionStatus,
    SimulationRequest,
    SimulationResult,
)
from src.services.execution_service import (
    ExecutionAbortedError,
    ExecutionNotFoundError,
    ExecutionStateError,
    ExecutionValidationError,
)
from src.services.workflow_service import WorkflowNotFoundError

logger = structlog.get_logger()

router = APIRouter()


@router.get("", response_model=list[ExecutionRead])
async def list_executions(
    user_id: CurrentUserId,
    service: ExecutionServiceDep,
    workflow_id: Annotated[str | None, Query()] = None,
    status_filter: Annotated[ExecutionStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[ExecutionRead]:
    """List user's executions.

    Args:
        user_id: Request owner
        service: Execution service
        workflow_id: Filter by workflow
        status_filter: Filter by status
        limit: Maximum results
        offset: Pagination offset
    """
    return await service.list_all(
        user_id=user_id,
        workflow_id=workflow_id,
        status=status_filter,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=ExecutionRead, status_code=status.HTTP_201_CREATED)
async def create_execution(
    user_id: CurrentUserId,
    service: ExecutionServiceDep,
    data: ExecutionCreate,
) -> ExecutionRead:
    """Create an execution of a saved or inline workflow.

    With start=true (default) the simulation runs to the end before the
    response is returned. With start=false the execution stays pending;
    connect to the stream endpoint to run it with live updates.
    """
    logger.info(
        "execution_requested",
        user_id=user_id,
        workflow_id=data.workflow_id,
        inline=data.workflow is not None,
    )

    try:
        if data.start:
            return await service.create_and_run(user_id=user_id, data=data)
        return await service.create(user_id=user_id, data=data)
    except ExecutionValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(e), "errors": e.errors},
        ) from e
    except WorkflowNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e


@router.post("/simulate", response_model=SimulationResult)
async def simulate_workflow(
    user_id: CurrentUserId,
    service: ExecutionServiceDep,
    data: SimulationRequest,
) -> SimulationResult:
    """Simulate an inline workflow without saving anything.

    Pass a seed for reproducible outcomes.
    """
    try:
        return await service.simulate(data)
    except ExecutionValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(e), "errors": e.errors},
        ) from e
    except ExecutionAbortedError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(e), "error_code": e.error_code},
        ) from e


@router.get("/{execution_id}", response_model=ExecutionRead)
async def get_execution(
    execution_id: str,
    user_id: CurrentUserId,
    service: ExecutionServiceDep,
) -> ExecutionRead:
    """Get an execution by ID."""
    try:
        return await service.get(execution_id=execution_id, user_id=user_id)
    except ExecutionNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e


@router.get("/{execution_id}/stream")
async def stream_execution(
    execution_id: str,
    user_id: CurrentUserId,
    service: ExecutionServiceDep,
) -> EventSourceResponse:
    """Run a pending execution and stream its events via SSE.

    Event types:
    - start: Simulation has started
    - node_start: A node began running
    - node_complete: A node finished with a result
    - node_error: A node failed (its successors will not run)
    - node_skipped: A disabled node was passed over
    - complete: Simulation finished (data.status is completed or failed)
    - cancelled: Simulation was cancelled
    - error: Simulation was aborted
    """
    try:
        execution = await service.get(execution_id=execution_id, user_id=user_id)
    except ExecutionNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e

    if execution.status != ExecutionStatus.PENDING:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot stream: status is {execution.status.value}",
        )

    async def event_generator():
        """Generate SSE events from execution."""
        try:
            async for event in service.execute(execution_id, user_id):
                yield {
                    "event": event.type,
                    "data": json.dumps(event.to_dict(), default=str),
                }
        except ExecutionStateError as e:
            yield {
                "event": "error",
                "data": json.dumps({"type": "error", "data": {"error": str(e)}}),
            }

    return EventSourceResponse(event_generator())


@router.post("/{execution_id}/cancel", response_model=ExecutionRead)
async def cancel_execution(
    execution_id: str,
    user_id: CurrentUserId,
    service: ExecutionServiceDep,
) -> ExecutionRead:
    """Cancel a pending execution or stop a running one."""
    try:
        return await service.cancel(execution_id=execution_id, user_id=user_id)
    except ExecutionNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e
    except ExecutionStateError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e


@router.post(
    "/{execution_id}/retry",
    response_model=ExecutionRead,
    status_code=status.HTTP_201_CREATED,
)
async def retry_execution(
    execution_id: str,
    user_id: CurrentUserId,
    service: ExecutionServiceDep,
    start: Annotated[bool, Query()] = True,
) -> ExecutionRead:
    """Retry a failed or cancelled execution.

    Creates a new execution from the original's workflow snapshot.
    """
    try:
        return await service.retry(execution_id=execution_id, user_id=user_id, start=start)
    except ExecutionNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e
    except ExecutionStateError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e


@router.delete("/{execution_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_execution(
    execution_id: str,
    user_id: CurrentUserId,
    service: ExecutionServiceDep,
) -> None:
    """Delete an execution record."""
    try:
        await service.delete(execution_id=execution_id, user_id=user_id)
    except ExecutionNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e
