"""Services layer - Business logic and orchestration."""

from src.services.credential_service import CredentialService
from src.services.execution_service import ExecutionService
from src.services.workflow_service import WorkflowService

__all__ = [
    "CredentialService",
    "ExecutionService",
    "WorkflowService",
]
