"""API route handlers."""

from src.api.routes.assistant import router as assistant_router
from src.api.routes.credentials import router as credentials_router
from src.api.routes.executions import router as executions_router
from src.api.routes.workflows import router as workflows_router

__all__ = [
    "assistant_router",
    "credentials_router",
    "executions_router",
    "workflows_router",
]
