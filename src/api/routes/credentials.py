"""Credential API endpoints.

Handles per-node credential requirements, storage and status.
Stored values are encrypted and only ever returned masked.
"""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Body, HTTPException, Query, status

from src.api.deps import CredentialServiceDep, CurrentUserId
from src.models.credential import (
    CredentialCheckRead,
    CredentialCheckRequest,
    CredentialRequirementRead,
    NodeCredentialSave,
    NodeCredentialStatus,
)
from src.services.credential_service import (
    CredentialNotFoundError,
    CredentialServiceError,
    CredentialValidationError,
)

logger = structlog.get_logger()

router = APIRouter()


@router.post("/requirements", response_model=CredentialRequirementRead)
async def get_credential_requirements(
    user_id: CurrentUserId,
    service: CredentialServiceDep,
    node: Annotated[dict[str, Any], Body()],
) -> CredentialRequirementRead:
    """Infer the credential form for a node.

    Accepts a workflow node or canvas node data (nodeType in place of type).
    """
    return service.requirements(node)


@router.post("/test", response_model=CredentialCheckRead)
async def check_node_credentials(
    user_id: CurrentUserId,
    service: CredentialServiceDep,
    data: CredentialCheckRequest,
) -> CredentialCheckRead:
    """Check credential values for a node type without calling the service.

    A failed check is a normal response with success=false.
    """
    try:
        return await service.check(user_id=user_id, data=data)
    except CredentialValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(e), "errors": e.errors},
        ) from e
    except CredentialNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e
    except CredentialServiceError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        ) from e


@router.get("/workflow/{workflow_id}", response_model=list[NodeCredentialStatus])
async def get_workflow_credential_status(
    workflow_id: str,
    user_id: CurrentUserId,
    service: CredentialServiceDep,
) -> list[NodeCredentialStatus]:
    """Credential status for every node of a saved workflow."""
    try:
        return await service.workflow_status(user_id=user_id, workflow_id=workflow_id)
    except CredentialServiceError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        ) from e


@router.put("/{node_id}", response_model=NodeCredentialStatus)
async def save_node_credentials(
    node_id: str,
    user_id: CurrentUserId,
    service: CredentialServiceDep,
    data: NodeCredentialSave,
) -> NodeCredentialStatus:
    """Save a node's credential values.

    SECURITY: Values are encrypted before storage and never returned.
    """
    try:
        return await service.save(user_id=user_id, node_id=node_id, data=data)
    except CredentialValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(e), "errors": e.errors},
        ) from e


@router.get("/{node_id}", response_model=NodeCredentialStatus)
async def get_node_credentials(
    node_id: str,
    user_id: CurrentUserId,
    service: CredentialServiceDep,
    workflow_id: Annotated[str | None, Query()] = None,
) -> NodeCredentialStatus:
    """Masked values and status for a node."""
    try:
        return await service.get_status(
            user_id=user_id,
            node_id=node_id,
            workflow_id=workflow_id,
        )
    except CredentialNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e
    except CredentialServiceError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        ) from e


@router.delete("/{node_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_node_credentials(
    node_id: str,
    user_id: CurrentUserId,
    service: CredentialServiceDep,
    workflow_id: Annotated[str | None, Query()] = None,
) -> None:
    """Delete a node's stored values."""
    try:
        await service.delete(user_id=user_id, node_id=node_id, workflow_id=workflow_id)
    except CredentialNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e
