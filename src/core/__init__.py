"""Core layer - Pure workflow logic: analysis, canvas, credentials, simulation, generation."""

from src.core.encryption import CredentialEncryption
from src.core.execution_engine import ExecutionEvent, SimulatedExecutionEngine
from src.core.workflow_generator import WorkflowGenerator
from src.core.workflow_parser import parse_workflow_to_canvas

__all__ = [
    "CredentialEncryption",
    "ExecutionEvent",
    "SimulatedExecutionEngine",
    "WorkflowGenerator",
    "parse_workflow_to_canvas",
]
