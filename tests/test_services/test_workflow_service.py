"""Tests for the workflow service."""

from typing import Any

import pytest
import pytest_asyncio
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.workflow_generator import WorkflowGenerator
from src.models.workflow import NodeUpdate, WorkflowRead, WorkflowSave
from src.services.workflow_service import (
    WorkflowGenerationFailedError,
    WorkflowNodeNotFoundError,
    WorkflowNotFoundError,
    WorkflowService,
    WorkflowValidationError,
    validate_document,
)
from src.models.document import N8nWorkflow

USER_ID = "user-1"


@pytest.fixture
def service(db_session: AsyncSession, generator: WorkflowGenerator) -> WorkflowService:
    return WorkflowService(db_session, generator)


@pytest_asyncio.fixture
async def saved(service: WorkflowService, sample_workflow: dict[str, Any]) -> WorkflowRead:
    return await service.save(USER_ID, "wf-1", WorkflowSave(workflow=sample_workflow))


class TestValidateDocument:
    """Tests for validate_document."""

    def test_valid(self, sample_document: N8nWorkflow):
        assert validate_document(sample_document) == []

    def test_duplicates_and_unknown_nodes(self):
        """Test every structural problem is reported."""
        document = N8nWorkflow.model_validate({
            "nodes": [
                {"id": "a", "name": "A", "type": "n8n-nodes-base.set"},
                {"id": "a", "name": "A", "type": "n8n-nodes-base.set"},
            ],
            "connections": {
                "A": {"main": [[{"node": "Ghost", "type": "main", "index": 0}]]},
                "Nobody": {"main": [[{"node": "A", "type": "main", "index": 0}]]},
            },
        })

        errors = validate_document(document)

        assert "Duplicate node IDs: a" in errors
        assert "Duplicate node names: A" in errors
        assert "Connection from unknown node: Nobody" in errors
        assert any("'A' -> 'Ghost'" in e for e in errors)


class TestWorkflowService:
    """Tests for WorkflowService."""

    @pytest.mark.asyncio
    async def test_save_creates(self, saved: WorkflowRead):
        """Test the first save creates the workflow."""
        assert saved.workflow_id == "wf-1"
        assert saved.user_id == USER_ID
        assert saved.workflow_name == "Lead Alerts"
        assert saved.workflow.id == "wf-1"
        assert len(saved.workflow.nodes) == 5

    @pytest.mark.asyncio
    async def test_save_overwrites(
        self,
        service: WorkflowService,
        saved: WorkflowRead,
        sample_workflow: dict[str, Any],
    ):
        """Test saving the same workflow_id again replaces the document."""
        sample_workflow["nodes"] = sample_workflow["nodes"][:1]
        sample_workflow["connections"] = {}

        updated = await service.save(
            USER_ID,
            "wf-1",
            WorkflowSave(workflow_name="Renamed", workflow=sample_workflow),
        )

        assert updated.workflow_name == "Renamed"
        assert len(updated.workflow.nodes) == 1
        assert len(await service.list_all(USER_ID)) == 1

    @pytest.mark.asyncio
    async def test_save_accepts_json_string(self, service: WorkflowService):
        """Test the document may arrive as a JSON string."""
        saved = await service.save(
            USER_ID,
            "wf-json",
            WorkflowSave(workflow='{"name": "From String", "nodes": []}'),
        )

        assert saved.workflow_name == "From String"

    @pytest.mark.asyncio
    async def test_save_rejects_invalid(self, service: WorkflowService):
        """Test structural errors are raised."""
        document = {
            "nodes": [
                {"id": "a", "name": "A", "type": "n8n-nodes-base.set"},
                {"id": "b", "name": "A", "type": "n8n-nodes-base.set"},
            ]
        }

        with pytest.raises(WorkflowValidationError) as exc_info:
            await service.save(USER_ID, "wf-bad", WorkflowSave(workflow=document))

        assert exc_info.value.errors == ["Duplicate node names: A"]

    @pytest.mark.asyncio
    async def test_get_scoped_to_user(self, service: WorkflowService, saved: WorkflowRead):
        """Test another user cannot see the workflow."""
        assert (await service.get("wf-1", USER_ID)).workflow_name == "Lead Alerts"

        with pytest.raises(WorkflowNotFoundError):
            await service.get("wf-1", "someone-else")

    @pytest.mark.asyncio
    async def test_list_most_recent_first(
        self,
        service: WorkflowService,
        saved: WorkflowRead,
        sample_workflow: dict[str, Any],
    ):
        """Test listing order follows updates."""
        await service.save(USER_ID, "wf-2", WorkflowSave(workflow={"name": "Second"}))
        sample_workflow["name"] = "Lead Alerts v2"
        await service.save(USER_ID, "wf-1", WorkflowSave(workflow=sample_workflow))

        summaries = await service.list_all(USER_ID)

        assert [s.workflow_id for s in summaries] == ["wf-1", "wf-2"]
        assert summaries[0].node_count == 5
        assert await service.list_all("someone-else") == []

    @pytest.mark.asyncio
    async def test_delete(self, service: WorkflowService, saved: WorkflowRead):
        """Test deleting a workflow."""
        await service.delete("wf-1", USER_ID)

        with pytest.raises(WorkflowNotFoundError):
            await service.get("wf-1", USER_ID)
        with pytest.raises(WorkflowNotFoundError):
            await service.delete("wf-1", USER_ID)

    @pytest.mark.asyncio
    async def test_canvas_and_connections(self, service: WorkflowService, saved: WorkflowRead):
        """Test the analysis views of a saved workflow."""
        canvas = await service.canvas("wf-1", USER_ID)
        connections = await service.connections("wf-1", USER_ID)

        assert len(canvas.nodes) == 5
        assert len(canvas.edges) == 4
        assert canvas.nodes[0].data["workflowId"] == "wf-1"
        assert connections["nodes"]["Is Hot"]["outgoing"] == ["Notify Slack", "Send Email"]
        assert len(connections["connections"]) == 4

    @pytest.mark.asyncio
    async def test_update_node(self, service: WorkflowService, saved: WorkflowRead):
        """Test editing one node."""
        updated = await service.update_node(
            "wf-1",
            USER_ID,
            "node-4",
            NodeUpdate(parameters={"channel": "#alerts"}, disabled=True),
        )

        node = updated.workflow.node_by_id("node-4")
        assert node.parameters == {"channel": "#alerts"}
        assert node.disabled is True

        reloaded = await service.get_document("wf-1", USER_ID)
        assert reloaded.node_by_id("node-4").disabled is True

    @pytest.mark.asyncio
    async def test_update_unknown_node(self, service: WorkflowService, saved: WorkflowRead):
        """Test editing a node that is not in the document."""
        with pytest.raises(WorkflowNodeNotFoundError):
            await service.update_node("wf-1", USER_ID, "ghost", NodeUpdate(disabled=True))

    @pytest.mark.asyncio
    async def test_generate_without_saving(self, service: WorkflowService):
        """Test generation returns a document only."""
        result = await service.generate(USER_ID, "Post new blog entries to Slack")

        assert result.workflow_id is None
        assert result.workflow.name == "RSS to Slack"
        assert len(await service.list_all(USER_ID)) == 0

    @pytest.mark.asyncio
    async def test_generate_and_save(self, service: WorkflowService):
        """Test the generated workflow is persisted under a new id."""
        result = await service.generate(USER_ID, "Post new blog entries to Slack", save=True)

        assert result.workflow_id is not None
        saved = await service.get(result.workflow_id, USER_ID)
        assert saved.workflow_name == "RSS to Slack"
        assert saved.workflow.id == result.workflow_id

    @pytest.mark.asyncio
    async def test_generate_failure(self, db_session: AsyncSession):
        """Test LLM problems surface as generation failures."""
        service = WorkflowService(
            db_session,
            WorkflowGenerator(llm=FakeListChatModel(responses=["no json here"])),
        )

        with pytest.raises(WorkflowGenerationFailedError):
            await service.generate(USER_ID, "Post new blog entries to Slack")
