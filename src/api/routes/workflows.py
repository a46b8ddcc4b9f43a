"""Workflow API endpoints.

Handles saving and reading workflow documents, canvas and connection views,
node edits and LLM-based generation.
"""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, HTTPException, Query, status

from src.api.deps import CurrentUserId, WorkflowServiceDep
from src.core.workflow_parser import parse_workflow_to_canvas
from src.models.document import N8nWorkflow
from src.models.workflow import (
    NodeUpdate,
    WorkflowGenerateRequest,
    WorkflowGenerateResponse,
    WorkflowRead,
    WorkflowSave,
    WorkflowSummary,
)
from src.services.workflow_service import (
    WorkflowGenerationFailedError,
    WorkflowNodeNotFoundError,
    WorkflowNotFoundError,
    WorkflowValidationError,
    analyze_connections,
    validate_document,
)

logger = structlog.get_logger()

router = APIRouter()


@router.get("", response_model=list[WorkflowSummary])
async def list_workflows(
    user_id: CurrentUserId,
    service: WorkflowServiceDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[WorkflowSummary]:
    """List user's workflows, most recently updated first."""
    return await service.list_all(user_id=user_id, limit=limit, offset=offset)


@router.post("/parse")
async def parse_workflow(workflow: N8nWorkflow) -> dict[str, Any]:
    """Convert an unsaved workflow document into canvas nodes and edges.

    Structural problems are reported in 'errors' rather than rejected, so the
    playground can still render what it was given.
    """
    canvas = parse_workflow_to_canvas(workflow)
    return {
        **canvas.to_dict(),
        "connections": analyze_connections(workflow),
        "errors": validate_document(workflow),
    }


@router.post("/generate", response_model=WorkflowGenerateResponse)
async def generate_workflow(
    user_id: CurrentUserId,
    service: WorkflowServiceDep,
    data: WorkflowGenerateRequest,
) -> WorkflowGenerateResponse:
    """Generate a workflow from a natural language description.

    Example descriptions:
    - "Every morning, fetch the weather and post it to Slack"
    - "When a form is submitted, add a row to Google Sheets and email me"
    """
    logger.info(
        "workflow_generation_requested",
        user_id=user_id,
        description_length=len(data.description),
        save=data.save,
        refining=data.current_workflow is not None,
    )

    try:
        return await service.generate(
            user_id=user_id,
            description=data.description,
            save=data.save,
            current_workflow=data.current_workflow,
            chat_history=data.chat_history,
        )
    except WorkflowGenerationFailedError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e),
        ) from e
    except WorkflowValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": str(e), "errors": e.errors},
        ) from e


@router.put("/{workflow_id}", response_model=WorkflowRead)
async def save_workflow(
    workflow_id: str,
    user_id: CurrentUserId,
    service: WorkflowServiceDep,
    data: WorkflowSave,
) -> WorkflowRead:
    """Create or overwrite a workflow (auto-save).

    Args:
        workflow_id: Client-side workflow identifier
        user_id: Request owner
        service: Workflow service
        data: Document and optional display name
    """
    try:
        return await service.save(user_id=user_id, workflow_id=workflow_id, data=data)
    except WorkflowValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(e), "errors": e.errors},
        ) from e


@router.get("/{workflow_id}", response_model=WorkflowRead)
async def get_workflow(
    workflow_id: str,
    user_id: CurrentUserId,
    service: WorkflowServiceDep,
) -> WorkflowRead:
    """Get a saved workflow."""
    try:
        return await service.get(workflow_id=workflow_id, user_id=user_id)
    except WorkflowNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e


@router.delete("/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workflow(
    workflow_id: str,
    user_id: CurrentUserId,
    service: WorkflowServiceDep,
) -> None:
    """Delete a saved workflow."""
    try:
        await service.delete(workflow_id=workflow_id, user_id=user_id)
    except WorkflowNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e


@router.get("/{workflow_id}/canvas")
async def get_workflow_canvas(
    workflow_id: str,
    user_id: CurrentUserId,
    service: WorkflowServiceDep,
) -> dict[str, Any]:
    """Canvas nodes and edges for a saved workflow."""
    try:
        canvas = await service.canvas(workflow_id=workflow_id, user_id=user_id)
    except WorkflowNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e
    return canvas.to_dict()


@router.get("/{workflow_id}/connections")
async def get_workflow_connections(
    workflow_id: str,
    user_id: CurrentUserId,
    service: WorkflowServiceDep,
) -> dict[str, Any]:
    """Connection analysis for a saved workflow."""
    try:
        return await service.connections(workflow_id=workflow_id, user_id=user_id)
    except WorkflowNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e


@router.patch("/{workflow_id}/nodes/{node_id}", response_model=WorkflowRead)
async def update_workflow_node(
    workflow_id: str,
    node_id: str,
    user_id: CurrentUserId,
    service: WorkflowServiceDep,
    data: NodeUpdate,
) -> WorkflowRead:
    """Edit one node's parameters, credentials or disabled flag."""
    try:
        return await service.update_node(
            workflow_id=workflow_id,
            user_id=user_id,
            node_id=node_id,
            data=data,
        )
    except (WorkflowNotFoundError, WorkflowNodeNotFoundError) as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e
