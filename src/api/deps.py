"""API dependencies for FastAPI dependency injection.

Provides database sessions, the request owner, and service instances.
"""

from typing import Annotated, AsyncGenerator

import structlog
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from src.config import settings
from src.core.execution_engine import SimulatedExecutionEngine
from src.core.workflow_generator import WorkflowGenerator
from src.services.credential_service import CredentialService
from src.services.execution_service import ExecutionService
from src.services.workflow_service import WorkflowService

logger = structlog.get_logger()


def _engine_kwargs() -> dict:
    # SQLite (tests, local runs) does not accept pool sizing arguments
    if settings.database_url.startswith("sqlite"):
        return {"echo": settings.debug}
    return {
        "echo": settings.debug,
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_timeout": settings.database_pool_timeout,
    }


# Database engine and session
_engine = create_async_engine(settings.database_url, **_engine_kwargs())

_async_session_maker = sessionmaker(
    _engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db() -> None:
    """Initialize database tables.

    Only call during development. Use Alembic migrations in production.
    """
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("database_initialized")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session.

    Yields:
        AsyncSession that will be closed after use
    """
    async with _async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


# Type alias for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db_session)]


def get_current_user_id(request: Request) -> str:
    """Get the owner of the request from the gateway-provided header.

    Raises:
        HTTPException: If the header is missing or blank
    """
    user_id = request.headers.get(settings.owner_header, "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {settings.owner_header} header",
        )
    return user_id


# Type alias for the request owner
CurrentUserId = Annotated[str, Depends(get_current_user_id)]


def get_simulation_engine() -> SimulatedExecutionEngine:
    """Get a simulated execution engine configured from settings."""
    return SimulatedExecutionEngine()


def get_workflow_generator() -> WorkflowGenerator:
    """Get a workflow generator backed by the configured LLM."""
    return WorkflowGenerator()


# Service dependencies
def get_credential_service(session: DBSession) -> CredentialService:
    """Get credential service instance."""
    return CredentialService(session)


def get_workflow_service(
    session: DBSession,
    generator: Annotated[WorkflowGenerator, Depends(get_workflow_generator)],
) -> WorkflowService:
    """Get workflow service instance."""
    return WorkflowService(session, generator)


def get_execution_service(
    session: DBSession,
    workflow_service: Annotated[WorkflowService, Depends(get_workflow_service)],
    engine: Annotated[SimulatedExecutionEngine, Depends(get_simulation_engine)],
) -> ExecutionService:
    """Get execution service instance."""
    return ExecutionService(session, workflow_service, engine)


# Type aliases for service dependencies
CredentialServiceDep = Annotated[CredentialService, Depends(get_credential_service)]
WorkflowServiceDep = Annotated[WorkflowService, Depends(get_workflow_service)]
ExecutionServiceDep = Annotated[ExecutionService, Depends(get_execution_service)]
WorkflowGeneratorDep = Annotated[WorkflowGenerator, Depends(get_workflow_generator)]
