"""Workflow service.

Handles saving (auto-save upsert), reading and deleting workflow documents,
canvas and connection views, node edits and LLM-based generation.
"""

from collections import Counter
from typing import Any
from uuid import uuid4

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.connection_analyzer import analyze_workflow_connections, create_smart_connections
from src.core.workflow_generator import WorkflowGenerationError, WorkflowGenerator
from src.core.workflow_parser import Canvas, parse_workflow_to_canvas, update_workflow_from_node
from src.models.document import N8nWorkflow
from src.models.workflow import (
    ChatTurn,
    NodeUpdate,
    WorkflowGenerateResponse,
    WorkflowRead,
    WorkflowRecord,
    WorkflowSave,
    WorkflowSummary,
)

logger = structlog.get_logger()


class WorkflowServiceError(Exception):
    """Error in workflow service operations."""

    pass


class WorkflowNotFoundError(WorkflowServiceError):
    """Workflow not found for this user."""

    pass


class WorkflowNodeNotFoundError(WorkflowServiceError):
    """Node not found in the workflow document."""

    pass


class WorkflowValidationError(WorkflowServiceError):
    """Workflow validation failed."""

    def __init__(self, message: str, errors: list[str]) -> None:
        super().__init__(message)
        self.errors = errors


class WorkflowGenerationFailedError(WorkflowServiceError):
    """The LLM could not produce a usable workflow."""

    pass


def validate_document(document: N8nWorkflow) -> list[str]:
    """Structural checks for a workflow document.

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    duplicate_ids = [i for i, count in Counter(n.id for n in document.nodes).items() if count > 1]
    if duplicate_ids:
        errors.append(f"Duplicate node IDs: {', '.join(sorted(duplicate_ids))}")

    names = Counter(n.name for n in document.nodes)
    duplicate_names = [name for name, count in names.items() if count > 1]
    if duplicate_names:
        errors.append(f"Duplicate node names: {', '.join(sorted(duplicate_names))}")

    for source, kinds in document.connections.items():
        if source not in names:
            errors.append(f"Connection from unknown node: {source}")
        for kind, groups in kinds.items():
            for group in groups:
                for connection in group:
                    if connection.node not in names:
                        errors.append(
                            f"Connection '{source}' -> '{connection.node}' ({kind}) "
                            "references unknown node"
                        )

    return errors


class WorkflowService:
    """Service for managing saved workflows.

    Handles:
    - Auto-save upsert keyed by (user_id, workflow_id)
    - Reading, listing and deleting workflows
    - Canvas and connection analysis views
    - Editing single node properties
    - Generating workflows from natural language

    Every query filters on user_id, so another user's workflow is simply
    not found.

    Example usage:
        service = WorkflowService(session)
        saved = await service.save(
            user_id="user-123",
            workflow_id="wf-1",
            data=WorkflowSave(workflow={"name": "Demo", "nodes": [...], "connections": {}}),
        )
    """

    def __init__(
        self,
        session: AsyncSession,
        generator: WorkflowGenerator | None = None,
    ) -> None:
        """Initialize workflow service.

        Args:
            session: Async database session
            generator: Workflow generator (built on first use when omitted)
        """
        self._session = session
        self._generator = generator

    async def save(
        self,
        user_id: str,
        workflow_id: str,
        data: WorkflowSave,
    ) -> WorkflowRead:
        """Create or overwrite a workflow.

        Args:
            user_id: Owner user ID
            workflow_id: Client-side workflow identifier
            data: Document and optional display name

        Returns:
            Saved workflow

        Raises:
            WorkflowValidationError: If the document is invalid
        """
        document = data.workflow
        errors = validate_document(document)
        if errors:
            raise WorkflowValidationError("Invalid workflow document", errors=errors)

        if not document.id:
            document = document.model_copy(update={"id": workflow_id})

        record = await self._find(workflow_id, user_id)
        created = record is None
        if record is None:
            record = WorkflowRecord(
                user_id=user_id,
                workflow_id=workflow_id,
                workflow_name=data.workflow_name or document.name,
                workflow_json="{}",
            )
            self._session.add(record)
        else:
            record.workflow_name = data.workflow_name or document.name

        record.set_document(document)

        await self._session.commit()
        await self._session.refresh(record)

        logger.info(
            "workflow_saved",
            workflow_id=workflow_id,
            user_id=user_id,
            created=created,
            node_count=len(document.nodes),
        )

        return self._to_read(record)

    async def get(self, workflow_id: str, user_id: str) -> WorkflowRead:
        """Get a saved workflow.

        Raises:
            WorkflowNotFoundError: If the user has no such workflow
        """
        record = await self._get_or_raise(workflow_id, user_id)
        return self._to_read(record)

    async def get_document(self, workflow_id: str, user_id: str) -> N8nWorkflow:
        """Get the workflow document of a saved workflow."""
        record = await self._get_or_raise(workflow_id, user_id)
        return record.get_document()

    async def list_all(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WorkflowSummary]:
        """List user's workflows, most recently updated first.

        Args:
            user_id: User ID
            limit: Maximum results
            offset: Pagination offset

        Returns:
            List of workflow summaries
        """
        query = (
            select(WorkflowRecord)
            .where(WorkflowRecord.user_id == user_id)
            .order_by(WorkflowRecord.updated_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(query)
        records = result.scalars().all()

        return [
            WorkflowSummary(
                workflow_id=r.workflow_id,
                workflow_name=r.workflow_name,
                node_count=len(r.get_document().nodes),
                updated_at=r.updated_at,
            )
            for r in records
        ]

    async def delete(self, workflow_id: str, user_id: str) -> None:
        """Delete a workflow.

        Raises:
            WorkflowNotFoundError: If the user has no such workflow
        """
        record = await self._get_or_raise(workflow_id, user_id)

        await self._session.delete(record)
        await self._session.commit()

        logger.info("workflow_deleted", workflow_id=workflow_id, user_id=user_id)

    async def canvas(self, workflow_id: str, user_id: str) -> Canvas:
        """Canvas nodes and edges for a saved workflow."""
        document = await self.get_document(workflow_id, user_id)
        return parse_workflow_to_canvas(document)

    async def connections(self, workflow_id: str, user_id: str) -> dict[str, Any]:
        """Connection analysis for a saved workflow."""
        document = await self.get_document(workflow_id, user_id)
        return analyze_connections(document)

    async def update_node(
        self,
        workflow_id: str,
        user_id: str,
        node_id: str,
        data: NodeUpdate,
    ) -> WorkflowRead:
        """Edit one node's parameters, credentials or disabled flag.

        Raises:
            WorkflowNotFoundError: If the user has no such workflow
            WorkflowNodeNotFoundError: If the node is not in the document
        """
        record = await self._get_or_raise(workflow_id, user_id)
        document = record.get_document()

        if document.node_by_id(node_id) is None:
            raise WorkflowNodeNotFoundError(
                f"Node '{node_id}' not found in workflow '{workflow_id}'"
            )

        updated = update_workflow_from_node(
            document,
            node_id,
            parameters=data.parameters,
            credentials=data.credentials,
            disabled=data.disabled,
        )
        record.set_document(updated)

        await self._session.commit()
        await self._session.refresh(record)

        logger.info(
            "workflow_node_updated",
            workflow_id=workflow_id,
            user_id=user_id,
            node_id=node_id,
            fields=sorted(data.model_dump(exclude_none=True)),
        )

        return self._to_read(record)

    async def generate(
        self,
        user_id: str,
        description: str,
        save: bool = False,
        current_workflow: N8nWorkflow | None = None,
        chat_history: list[ChatTurn] | None = None,
    ) -> WorkflowGenerateResponse:
        """Generate a workflow from a natural language description.

        Args:
            user_id: Requesting user ID
            description: What the automation should do
            save: Persist the result under a new workflow_id
            current_workflow: Workflow loaded in the canvas, to refine
            chat_history: Earlier turns of the conversation

        Raises:
            WorkflowGenerationFailedError: If the LLM call or parsing fails
            WorkflowValidationError: If the generated document is invalid
        """
        if self._generator is None:
            self._generator = WorkflowGenerator()

        try:
            result = await self._generator.generate(
                description,
                current_workflow=current_workflow,
                history=[turn.model_dump() for turn in chat_history or []],
            )
        except WorkflowGenerationError as e:
            logger.error("workflow_generation_failed", user_id=user_id, error=str(e))
            raise WorkflowGenerationFailedError(str(e)) from e

        workflow_id = None
        workflow = result.workflow
        if save:
            workflow_id = workflow.id or str(uuid4())
            saved = await self.save(user_id, workflow_id, WorkflowSave(workflow=workflow))
            workflow = saved.workflow

        return WorkflowGenerateResponse(
            workflow_id=workflow_id,
            summary=result.summary,
            workflow=workflow,
        )

    async def _find(self, workflow_id: str, user_id: str) -> WorkflowRecord | None:
        query = select(WorkflowRecord).where(
            WorkflowRecord.user_id == user_id,
            WorkflowRecord.workflow_id == workflow_id,
        )
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def _get_or_raise(self, workflow_id: str, user_id: str) -> WorkflowRecord:
        record = await self._find(workflow_id, user_id)
        if record is None:
            raise WorkflowNotFoundError(f"Workflow '{workflow_id}' not found")
        return record

    def _to_read(self, record: WorkflowRecord) -> WorkflowRead:
        """Convert workflow entity to read schema."""
        return WorkflowRead(
            workflow_id=record.workflow_id,
            user_id=record.user_id,
            workflow_name=record.workflow_name,
            workflow=record.get_document(),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


def analyze_connections(document: N8nWorkflow) -> dict[str, Any]:
    """Per-node connection info plus the connections to draw."""
    info_map = analyze_workflow_connections(document)
    return {
        "nodes": {name: info.to_dict() for name, info in info_map.items()},
        "connections": [c.to_dict() for c in create_smart_connections(document, info_map)],
    }
