"""Pytest configuration and fixtures.

Provides common fixtures for all tests including:
- Database sessions (in-memory SQLite)
- An HTTP client with deterministic engine and LLM overrides
- Owner headers
- Sample workflow documents
"""

import os

# Settings are read at import time
os.environ.setdefault("ENCRYPTION_KEY", "d29ya2Zsb3djcmFmdC10ZXN0LWZlcm5ldC1rZXktMzI=")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import copy
import json
import random
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from src.api.deps import get_db_session, get_simulation_engine, get_workflow_generator
from src.config import settings
from src.core.encryption import CredentialEncryption
from src.core.execution_engine import SimulatedExecutionEngine
from src.core.workflow_generator import WorkflowGenerator
from src.main import app
from src.models.document import N8nWorkflow

# Test database URL (uses SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_USER_ID = "user-1"
OTHER_USER_ID = "user-2"

SAMPLE_WORKFLOW: dict[str, Any] = {
    "name": "Lead Alerts",
    "nodes": [
        {
            "id": "node-1",
            "name": "Webhook",
            "type": "n8n-nodes-base.webhook",
            "position": [100, 100],
            "parameters": {"path": "leads"},
        },
        {
            "id": "node-2",
            "name": "Fetch Lead",
            "type": "n8n-nodes-base.httpRequest",
            "position": [300, 100],
            "parameters": {"url": "https://api.example.com/leads", "apiKey": ""},
        },
        {
            "id": "node-3",
            "name": "Is Hot",
            "type": "n8n-nodes-base.if",
            "position": [500, 100],
            "parameters": {},
        },
        {
            "id": "node-4",
            "name": "Notify Slack",
            "type": "n8n-nodes-base.slack",
            "position": [700, 0],
            "parameters": {"channel": "#sales"},
        },
        {
            "id": "node-5",
            "name": "Send Email",
            "type": "n8n-nodes-base.email",
            "position": [700, 200],
            "parameters": {"toEmail": ""},
        },
    ],
    "connections": {
        "Webhook": {"main": [[{"node": "Fetch Lead", "type": "main", "index": 0}]]},
        "Fetch Lead": {"main": [[{"node": "Is Hot", "type": "main", "index": 0}]]},
        "Is Hot": {
            "main": [
                [{"node": "Notify Slack", "type": "main", "index": 0}],
                [{"node": "Send Email", "type": "main", "index": 0}],
            ]
        },
    },
    "settings": {},
}

GENERATED_WORKFLOW_RESPONSE = "Here is your workflow:\n```json\n" + json.dumps(
    {
        "name": "RSS to Slack",
        "nodes": [
            {
                "name": "Schedule",
                "type": "n8n-nodes-base.scheduleTrigger",
                "position": [100, 100],
                "parameters": {},
            },
            {
                "name": "Read RSS",
                "type": "n8n-nodes-base.rssFeedRead",
                "position": [300, 100],
                "parameters": {"url": "https://blog.example.com/feed"},
            },
            {
                "name": "Post",
                "type": "n8n-nodes-base.slack",
                "position": [500, 100],
                "parameters": {"channel": "#news"},
            },
        ],
        "connections": {
            "Schedule": {"main": [[{"node": "Read RSS", "type": "main", "index": 0}]]},
            "Read RSS": {"main": [[{"node": "Post", "type": "main", "index": 0}]]},
        },
    },
    indent=2,
) + "\n```\nLet me know if you need changes."


@pytest.fixture
def sample_workflow() -> dict[str, Any]:
    """A five node workflow with a branching IF node."""
    return copy.deepcopy(SAMPLE_WORKFLOW)


@pytest.fixture
def sample_document(sample_workflow: dict[str, Any]) -> N8nWorkflow:
    """The sample workflow as a validated document."""
    return N8nWorkflow.model_validate(sample_workflow)


@pytest.fixture
def engine() -> SimulatedExecutionEngine:
    """Instant engine where every node succeeds."""
    return SimulatedExecutionEngine(time_scale=0, failure_rate=0, rng=random.Random(7))


@pytest.fixture
def fake_llm() -> FakeListChatModel:
    """Chat model that answers with a fixed workflow."""
    return FakeListChatModel(responses=[GENERATED_WORKFLOW_RESPONSE])


@pytest.fixture
def generator(fake_llm: FakeListChatModel) -> WorkflowGenerator:
    """Workflow generator backed by the fake chat model."""
    return WorkflowGenerator(llm=fake_llm)


@pytest.fixture
def encryption() -> CredentialEncryption:
    """Create encryption instance."""
    return CredentialEncryption(settings.encryption_key.get_secret_value())


@pytest_asyncio.fixture
async def db_engine():
    """Create async database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session."""
    async_session_maker = sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    engine: SimulatedExecutionEngine,
    generator: WorkflowGenerator,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_simulation_engine] = lambda: engine
    app.dependency_overrides[get_workflow_generator] = lambda: generator

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def owner_headers() -> dict[str, str]:
    """Headers identifying the test user."""
    return {settings.owner_header: TEST_USER_ID}


@pytest.fixture
def other_owner_headers() -> dict[str, str]:
    """Headers identifying a second user."""
    return {settings.owner_header: OTHER_USER_ID}
