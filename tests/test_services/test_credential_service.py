"""Tests for the credential service."""

from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.credential import CredentialCheckRequest, NodeCredential, NodeCredentialSave
from src.models.workflow import WorkflowSave
from src.services.credential_service import (
    CredentialNotFoundError,
    CredentialService,
    CredentialValidationError,
)
from src.services.workflow_service import WorkflowService

USER_ID = "user-1"


@pytest.fixture
def service(db_session: AsyncSession) -> CredentialService:
    return CredentialService(db_session)


@pytest_asyncio.fixture
async def saved_workflow(db_session: AsyncSession, sample_workflow: dict[str, Any]):
    return await WorkflowService(db_session).save(
        USER_ID, "wf-1", WorkflowSave(workflow=sample_workflow)
    )


def telegram_save(**overrides: Any) -> NodeCredentialSave:
    data = {
        "node_type": "n8n-nodes-base.telegram",
        "credentials": {"accessToken": "123456:ABC-DEF"},
    }
    data.update(overrides)
    return NodeCredentialSave(**data)


class TestCredentialService:
    """Tests for CredentialService."""

    def test_requirements(self, service: CredentialService):
        """Test the inferred form for a node."""
        requirement = service.requirements(
            {"name": "Telegram", "type": "n8n-nodes-base.telegram"}
        )

        assert requirement.requires_credentials is True
        assert requirement.fields[0].name == "accessToken"

    @pytest.mark.asyncio
    async def test_save_and_get(self, service: CredentialService):
        """Test values are stored and reported masked."""
        status = await service.save(USER_ID, "tg-1", telegram_save())

        assert status.status == "configured"
        assert status.masked_values == {"accessToken": "1234********"}
        assert status.workflow_id is None

        fetched = await service.get_status(USER_ID, "tg-1")
        assert fetched.status == "configured"
        assert fetched.masked_values == status.masked_values

    @pytest.mark.asyncio
    async def test_values_encrypted_at_rest(
        self,
        service: CredentialService,
        db_session: AsyncSession,
    ):
        """Test the raw value never reaches the table."""
        await service.save(USER_ID, "tg-1", telegram_save())

        result = await db_session.execute(select(NodeCredential))
        stored = result.scalars().one()
        assert "123456:ABC-DEF" not in stored.credentials

    @pytest.mark.asyncio
    async def test_save_upserts(self, service: CredentialService, db_session: AsyncSession):
        """Test saving the same node twice keeps one row."""
        await service.save(USER_ID, "tg-1", telegram_save(credentials={"accessToken": ""}))
        status = await service.save(USER_ID, "tg-1", telegram_save())

        result = await db_session.execute(select(NodeCredential))
        assert len(result.scalars().all()) == 1
        assert status.status == "configured"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("workflow_id", [None, "wf-9"])
    async def test_table_rejects_duplicate_rows(
        self,
        db_session: AsyncSession,
        workflow_id: str | None,
    ):
        """Test one row per user, workflow and node, also without a workflow."""
        for _ in range(2):
            db_session.add(
                NodeCredential(
                    user_id=USER_ID,
                    workflow_id=workflow_id,
                    node_id="tg-1",
                    node_type="n8n-nodes-base.telegram",
                    credentials="encrypted",
                )
            )

        with pytest.raises(IntegrityError):
            await db_session.commit()

    @pytest.mark.asyncio
    async def test_save_recovers_from_concurrent_insert(
        self,
        service: CredentialService,
        db_session: AsyncSession,
        monkeypatch: pytest.MonkeyPatch,
    ):
        """Test a row inserted by another save after the lookup is updated instead."""
        await service.save(USER_ID, "tg-1", telegram_save(credentials={"accessToken": ""}))

        real_find = service._find
        calls = []

        async def stale_find(*args: Any):
            calls.append(args)
            return None if len(calls) == 1 else await real_find(*args)

        monkeypatch.setattr(service, "_find", stale_find)

        status = await service.save(USER_ID, "tg-1", telegram_save())

        assert status.status == "configured"
        assert len(calls) == 2
        result = await db_session.execute(select(NodeCredential))
        assert len(result.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_workflow_and_unsaved_scopes_are_separate(self, service: CredentialService):
        """Test the same node id under a workflow and without one."""
        await service.save(USER_ID, "tg-1", telegram_save())
        await service.save(USER_ID, "tg-1", telegram_save(workflow_id="wf-9"))

        await service.delete(USER_ID, "tg-1")

        assert (await service.get_status(USER_ID, "tg-1", "wf-9")).status == "configured"
        with pytest.raises(CredentialNotFoundError):
            await service.get_status(USER_ID, "tg-1")

    @pytest.mark.asyncio
    async def test_parameters_drive_requirements(self, service: CredentialService):
        """Test node parameters sent with the values shape the form."""
        status = await service.save(
            USER_ID,
            "smtp-1",
            NodeCredentialSave(
                node_type="n8n-nodes-base.smtp",
                node_name="Mailer",
                parameters={"host": "", "username": ""},
                credentials={"host": "smtp.example.com", "username": "ops"},
            ),
        )

        assert status.status == "invalid"

    @pytest.mark.asyncio
    async def test_rejects_nested_values(self, service: CredentialService):
        """Test only plain values are accepted."""
        with pytest.raises(CredentialValidationError) as exc_info:
            await service.save(
                USER_ID,
                "tg-1",
                telegram_save(credentials={"accessToken": {"nested": True}}),
            )

        assert exc_info.value.errors == [
            "Field 'accessToken' must be a string, number or boolean"
        ]

    @pytest.mark.asyncio
    async def test_scoped_to_user(self, service: CredentialService):
        """Test another user's values are not found."""
        await service.save(USER_ID, "tg-1", telegram_save())

        with pytest.raises(CredentialNotFoundError):
            await service.get_status("someone-else", "tg-1")

    @pytest.mark.asyncio
    async def test_delete(self, service: CredentialService):
        """Test deleting stored values."""
        await service.save(USER_ID, "tg-1", telegram_save())

        await service.delete(USER_ID, "tg-1")

        with pytest.raises(CredentialNotFoundError):
            await service.delete(USER_ID, "tg-1")

    @pytest.mark.asyncio
    async def test_saved_workflow_node_is_used(
        self,
        service: CredentialService,
        saved_workflow,
    ):
        """Test requirements come from the saved node's parameters."""
        status = await service.save(
            USER_ID,
            "node-5",
            NodeCredentialSave(
                node_type="n8n-nodes-base.email",
                workflow_id="wf-1",
                credentials={"toEmail": "not-an-email"},
            ),
        )

        assert status.status == "invalid"

    @pytest.mark.asyncio
    async def test_workflow_status(self, service: CredentialService, saved_workflow):
        """Test every node of a saved workflow is reported."""
        await service.save(
            USER_ID,
            "node-5",
            NodeCredentialSave(
                node_type="n8n-nodes-base.email",
                workflow_id="wf-1",
                credentials={"toEmail": "ops@example.com"},
            ),
        )

        statuses = {s.node_id: s.status for s in await service.workflow_status(USER_ID, "wf-1")}

        assert statuses == {
            "node-1": "not_required",
            "node-2": "empty",
            "node-3": "not_required",
            "node-4": "empty",
            "node-5": "configured",
        }

    @pytest.mark.asyncio
    async def test_workflow_status_unknown_workflow(self, service: CredentialService):
        """Test an unknown workflow has no statuses."""
        assert await service.workflow_status(USER_ID, "missing") == []


class TestCredentialCheck:
    """Tests for CredentialService.check."""

    @pytest.mark.asyncio
    async def test_raw_values(self, service: CredentialService):
        result = await service.check(
            USER_ID,
            CredentialCheckRequest(
                node_type="n8n-nodes-base.telegram",
                credentials={"accessToken": "123456:ABC"},
            ),
        )

        assert result.success is False
        assert result.message.startswith("Invalid bot token format")

    @pytest.mark.asyncio
    async def test_stored_values(self, service: CredentialService):
        """Test values saved earlier are decrypted and checked."""
        await service.save(
            USER_ID,
            "tg-1",
            telegram_save(credentials={"accessToken": "123456789:ABCdefGHIjklMNOpqrSTU"}),
        )

        result = await service.check(
            USER_ID,
            CredentialCheckRequest(node_type="n8n-nodes-base.telegram", node_id="tg-1"),
        )

        assert result.success is True

    @pytest.mark.asyncio
    async def test_stored_values_missing(self, service: CredentialService):
        with pytest.raises(CredentialNotFoundError):
            await service.check(
                USER_ID,
                CredentialCheckRequest(node_type="n8n-nodes-base.telegram", node_id="tg-1"),
            )

    @pytest.mark.asyncio
    async def test_nothing_to_check(self, service: CredentialService):
        with pytest.raises(CredentialValidationError) as exc_info:
            await service.check(
                USER_ID, CredentialCheckRequest(node_type="n8n-nodes-base.telegram")
            )

        assert exc_info.value.errors == ["Provide 'credentials' or the 'node_id' of stored values"]
