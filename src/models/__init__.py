"""Data models - SQLModel entities, API schemas and workflow documents."""

from src.models.credential import NodeCredential, NodeCredentialSave, NodeCredentialStatus
from src.models.document import N8nConnection, N8nNode, N8nWorkflow
from src.models.execution import Execution, ExecutionCreate, ExecutionRead, ExecutionStatus
from src.models.workflow import WorkflowRead, WorkflowRecord, WorkflowSave, WorkflowSummary

__all__ = [
    "Execution",
    "ExecutionCreate",
    "ExecutionRead",
    "ExecutionStatus",
    "N8nConnection",
    "N8nNode",
    "N8nWorkflow",
    "NodeCredential",
    "NodeCredentialSave",
    "NodeCredentialStatus",
    "WorkflowRead",
    "WorkflowRecord",
    "WorkflowSave",
    "WorkflowSummary",
]
