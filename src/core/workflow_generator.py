"""LLM-driven workflow and project generation.

Turns a natural language description into an n8n workflow document, and
drives the Python project assistant that answers with fenced code files.
"""

from dataclasses import dataclass, field
from typing import Any

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import ValidationError

from src.config import settings
from src.core.response_parser import (
    CodeFile,
    ResponseParseError,
    ensure_node_ids,
    extract_code_files,
    extract_workflow_json,
)
from src.models.document import N8nWorkflow

logger = structlog.get_logger()

DEFAULT_WORKFLOW_SETTINGS: dict[str, Any] = {
    "saveExecutionProgress": True,
    "saveManualExecutions": True,
    "saveDataErrorExecution": "all",
    "saveDataSuccessExecution": "all",
    "executionTimeout": 3600,
    "timezone": "UTC",
}


class WorkflowGenerationError(Exception):
    """Error during workflow or project generation."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


@dataclass
class GenerationResult:
    """Result of workflow generation."""

    workflow: N8nWorkflow
    summary: str


@dataclass
class ProjectResult:
    """Result of a project assistant turn."""

    response: str
    files: list[CodeFile] = field(default_factory=list)


WORKFLOW_SYSTEM_PROMPT = """You are an n8n automation expert. You design realistic, \
production-style workflows and answer with workflow JSON only."""

WORKFLOW_PROMPT = """Generate a complete n8n workflow JSON for: {description}

Create a realistic automation workflow with 5-10 interconnected nodes. Include proper node types, connections, and parameters.

Return ONLY valid JSON in this exact format:
{{
  "name": "Workflow Name",
  "description": "Brief description",
  "nodes": [
    {{
      "id": "unique-uuid",
      "name": "Node Name",
      "type": "n8n-nodes-base.nodetype",
      "typeVersion": 1,
      "position": [x, y],
      "parameters": {{}}
    }}
  ],
  "connections": {{
    "Node Name": {{
      "main": [[{{"node": "Next Node Name", "type": "main", "index": 0}}]]
    }}
  }},
  "settings": {{
    "saveExecutionProgress": true,
    "saveManualExecutions": true,
    "saveDataErrorExecution": "all",
    "saveDataSuccessExecution": "all",
    "executionTimeout": 3600,
    "timezone": "UTC"
  }},
  "staticData": {{}},
  "active": false
}}"""

PROJECT_SYSTEM_PROMPT = """You are an expert Python developer specializing in automation scripts, particularly Telegram bots using Telethon. You help users create complete Python projects.

Key guidelines:
1. Always generate complete, working Python code
2. For Telegram bots, use Telethon library (not python-telegram-bot)
3. Generate main.py and requirements.txt files
4. Include proper error handling and logging
5. Make code production-ready with proper structure
6. Session file handling: {session_note}

When user asks for automation:
- Create main.py with complete implementation
- Create requirements.txt with all dependencies
- Include clear comments and documentation
- Handle authentication properly
- Use environment variables for sensitive data

Name each file on the opening fence line, for example: ```python # main.py

Current files in project: {current_files}

Be conversational but focus on generating practical, working code."""


CURRENT_WORKFLOW_PROMPT = """

You are currently working with a workflow that is loaded in the canvas:

Workflow Name: {name}
Node Count: {node_count}

Current Nodes:
{node_lines}

When the user asks to modify, enhance, or work with "this workflow" or "the current workflow", \
they are referring to the above workflow. You can modify existing nodes, add new ones, or \
completely restructure it based on their request.

If they ask to create a new workflow, ignore the current workflow context and start fresh."""


def describe_current_workflow(workflow: N8nWorkflow) -> str:
    """System prompt section describing the workflow loaded in the canvas."""
    node_lines = "\n".join(f"- {n.name} ({n.type})" for n in workflow.nodes) or "No nodes"
    return CURRENT_WORKFLOW_PROMPT.format(
        name=workflow.name or "Untitled Workflow",
        node_count=len(workflow.nodes),
        node_lines=node_lines,
    )


def history_messages(history: list[dict[str, str]] | None) -> list[BaseMessage]:
    """Convert prior chat turns ({"role", "content"}) into chat messages."""
    messages: list[BaseMessage] = []
    for turn in history or []:
        content = turn.get("content", "")
        if turn.get("role") == "user":
            messages.append(HumanMessage(content=content))
        else:
            messages.append(AIMessage(content=content))
    return messages


class WorkflowGenerator:
    """Generates workflow documents and code projects with a chat model.

    Models are tried in order (the default model, then the fallbacks) until
    one answers.

    Example usage:
        generator = WorkflowGenerator()
        result = await generator.generate("Post new RSS items to Slack")
        print(result.summary)
    """

    def __init__(
        self,
        llm: BaseChatModel | None = None,
        model: str | None = None,
        temperature: float | None = None,
        fallback_llms: list[BaseChatModel] | None = None,
        fallback_models: list[str] | None = None,
    ) -> None:
        """Initialize the generator.

        Args:
            llm: Chat model to use (ChatOpenAI models are built lazily when omitted)
            model: LLM model name (defaults to settings.default_model)
            temperature: LLM temperature (defaults to settings.llm_temperature)
            fallback_llms: Chat models tried after llm fails
            fallback_models: Model names tried after the default model
                (defaults to settings.fallback_models_list)
        """
        self.model = model or settings.default_model
        self.temperature = temperature if temperature is not None else settings.llm_temperature
        self.fallback_models = (
            fallback_models if fallback_models is not None else settings.fallback_models_list
        )
        self._llms: list[tuple[str, BaseChatModel]] | None = None
        if llm is not None:
            self._llms = [(self.model, llm)] + [
                (f"fallback-{i}", fallback) for i, fallback in enumerate(fallback_llms or [], 1)
            ]

    def _build_llm(self, model: str) -> BaseChatModel:
        llm_kwargs: dict[str, Any] = {
            "model": model,
            "temperature": self.temperature,
            "api_key": settings.openai_api_key.get_secret_value(),
            "timeout": settings.llm_timeout,
            "max_tokens": settings.llm_max_tokens,
        }
        if settings.openai_base_url:
            llm_kwargs["base_url"] = settings.openai_base_url
        return ChatOpenAI(**llm_kwargs)

    def _get_llms(self) -> list[tuple[str, BaseChatModel]]:
        if self._llms is not None:
            return self._llms

        if settings.openai_api_key is None:
            raise WorkflowGenerationError("LLM is not configured (OPENAI_API_KEY missing)")

        models = list(dict.fromkeys([self.model, *self.fallback_models]))
        self._llms = [(model, self._build_llm(model)) for model in models]
        return self._llms

    async def _complete(self, messages: list[BaseMessage]) -> str:
        failures: list[str] = []
        response = None

        for model, llm in self._get_llms():
            try:
                response = await llm.ainvoke(messages)
                break
            except Exception as e:
                logger.warning("llm_model_failed", model=model, error_type=type(e).__name__)
                failures.append(f"{model}: {e}")

        if response is None:
            logger.error("llm_all_models_failed", models=len(failures))
            message = (
                f"LLM request failed: {failures[0]}"
                if len(failures) == 1
                else "All LLM models are currently unavailable"
            )
            raise WorkflowGenerationError(message, details={"failures": failures})

        content = response.content
        if isinstance(content, list):
            content = "".join(
                part if isinstance(part, str) else str(part.get("text", ""))
                for part in content
            )
        if not content or not content.strip():
            raise WorkflowGenerationError("LLM returned an empty response")
        return content

    async def generate(
        self,
        description: str,
        current_workflow: N8nWorkflow | None = None,
        history: list[dict[str, str]] | None = None,
    ) -> GenerationResult:
        """Generate a workflow document from a description.

        Args:
            description: Natural language description of the automation
            current_workflow: Workflow loaded in the canvas, to refine instead of
                starting from scratch
            history: Prior chat turns as {"role": "user" | "assistant", "content": str}

        Returns:
            GenerationResult with the validated workflow and a summary line

        Raises:
            WorkflowGenerationError: If every model fails or parsing fails
        """
        logger.info(
            "workflow_generation_starting",
            description_length=len(description),
            refining=current_workflow is not None,
            history_turns=len(history or []),
        )

        system_prompt = WORKFLOW_SYSTEM_PROMPT
        if current_workflow is not None:
            system_prompt += describe_current_workflow(current_workflow)

        text = await self._complete(
            [
                SystemMessage(content=system_prompt),
                *history_messages(history),
                HumanMessage(content=WORKFLOW_PROMPT.format(description=description)),
            ]
        )

        try:
            data = ensure_node_ids(extract_workflow_json(text))
            generated_settings = data.get("settings")
            if isinstance(generated_settings, dict):
                data["settings"] = {**DEFAULT_WORKFLOW_SETTINGS, **generated_settings}
            else:
                data["settings"] = dict(DEFAULT_WORKFLOW_SETTINGS)
            workflow = N8nWorkflow.model_validate(data)
        except ResponseParseError as e:
            raise WorkflowGenerationError(
                "Could not parse workflow JSON from LLM response",
                details={"snippet": e.snippet},
            ) from e
        except ValidationError as e:
            raise WorkflowGenerationError(
                "LLM returned an invalid workflow document",
                details={"errors": e.errors(include_url=False)},
            ) from e

        summary = f'Generated workflow: "{workflow.name}" with {len(workflow.nodes)} nodes'

        logger.info(
            "workflow_generation_completed",
            workflow_name=workflow.name,
            node_count=len(workflow.nodes),
        )

        return GenerationResult(workflow=workflow, summary=summary)

    async def generate_project(
        self,
        request: str,
        current_files: list[str] | None = None,
        session_file_uploaded: bool = False,
    ) -> ProjectResult:
        """Answer a project assistant request with code files.

        Args:
            request: The user's latest message
            current_files: Names of files already in the project
            session_file_uploaded: Whether a Telegram session file is present

        Returns:
            ProjectResult with the raw answer and extracted files
        """
        session_note = (
            "User has uploaded a session.session file"
            if session_file_uploaded
            else "No session file uploaded yet - remind user to upload one for Telegram bots"
        )
        system_prompt = PROJECT_SYSTEM_PROMPT.format(
            session_note=session_note,
            current_files=", ".join(current_files) if current_files else "None",
        )

        text = await self._complete(
            [SystemMessage(content=system_prompt), HumanMessage(content=f"User request: {request}")]
        )
        files = extract_code_files(text)

        logger.info("project_generation_completed", file_count=len(files))

        return ProjectResult(response=text, files=files)
