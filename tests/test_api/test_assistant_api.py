"""Tests for project assistant endpoints."""

import pytest
from httpx import AsyncClient
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from src.api.deps import get_workflow_generator
from src.config import settings
from src.core.workflow_generator import WorkflowGenerator
from src.main import app

BOT_ANSWER = (
    "Here is a Telegram bot.\n"
    "```python # main.py\nfrom telethon import TelegramClient\n```"
)


class TestAssistantEndpoints:
    """Tests for the project assistant."""

    @pytest.mark.asyncio
    async def test_generate_project(self, client: AsyncClient, owner_headers: dict[str, str]):
        """Test answers are split into files."""
        app.dependency_overrides[get_workflow_generator] = lambda: WorkflowGenerator(
            llm=FakeListChatModel(responses=[BOT_ANSWER])
        )

        response = await client.post(
            "/api/v1/assistant/project",
            headers=owner_headers,
            json={"request": "Build a bot that forwards messages"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["response"] == BOT_ANSWER
        assert [f["name"] for f in data["files"]] == ["main.py", "requirements.txt"]

    @pytest.mark.asyncio
    async def test_generate_project_without_llm(
        self,
        client: AsyncClient,
        owner_headers: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
    ):
        """Test a missing API key is a bad gateway."""
        monkeypatch.setattr(settings, "openai_api_key", None)
        app.dependency_overrides[get_workflow_generator] = lambda: WorkflowGenerator()

        response = await client.post(
            "/api/v1/assistant/project",
            headers=owner_headers,
            json={"request": "Build a bot"},
        )

        assert response.status_code == 502

    @pytest.mark.asyncio
    async def test_extract_files(self, client: AsyncClient, owner_headers: dict[str, str]):
        """Test extracting files from arbitrary text."""
        response = await client.post(
            "/api/v1/assistant/extract-files",
            headers=owner_headers,
            json={"text": "```yaml # config.yaml\nkey: value\n```"},
        )

        assert response.status_code == 200
        assert response.json() == [
            {"name": "config.yaml", "content": "key: value", "language": "yaml"}
        ]
