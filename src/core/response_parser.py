"""Parsing helpers for LLM responses.

Extracts workflow JSON and fenced code files from free-form model output.
"""

import json
import re
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

import structlog

logger = structlog.get_logger()

FENCE_PATTERN = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL)
CODE_BLOCK_PATTERN = re.compile(r"```(\w+)?\s*(?:# (\w+\.[\w.]+))?\s*\n(.*?)```", re.DOTALL)

DEFAULT_BOT_REQUIREMENTS = "telethon>=1.30.0\npython-dotenv>=0.19.0\naiofiles>=0.8.0"


class ResponseParseError(Exception):
    """Raised when no usable content can be extracted from a response."""

    def __init__(self, message: str, snippet: str | None = None) -> None:
        super().__init__(message)
        self.snippet = snippet


@dataclass
class CodeFile:
    """A file extracted from a fenced code block."""

    name: str
    content: str
    language: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "content": self.content, "language": self.language}


def find_balanced_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` substring, ignoring braces in strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        # Unbalanced from here on; try the next opening brace
        start = text.find("{", start + 1)
    return None


def _try_load(candidate: str) -> dict[str, Any] | None:
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def extract_workflow_json(text: str) -> dict[str, Any]:
    """Extract a JSON object from model output.

    Tries fenced blocks first, then the whole text, then the first balanced
    object found anywhere in the text.

    Raises:
        ResponseParseError: If no JSON object can be parsed
    """
    candidates = [m.group(1).strip() for m in FENCE_PATTERN.finditer(text)]
    candidates.append(text.strip())

    for candidate in candidates:
        data = _try_load(candidate)
        if data is not None:
            return data

    for candidate in candidates:
        balanced = find_balanced_object(candidate)
        if balanced is None:
            continue
        data = _try_load(balanced)
        if data is not None:
            return data

    logger.warning("workflow_json_not_found", response_length=len(text))
    raise ResponseParseError("No valid JSON object found in response", snippet=text[:200])


def ensure_node_ids(workflow: dict[str, Any]) -> dict[str, Any]:
    """Give every node without an id a fresh UUID. Returns a new dict."""
    nodes = workflow.get("nodes")
    if not isinstance(nodes, list):
        return dict(workflow)
    return {
        **workflow,
        "nodes": [
            {**node, "id": node.get("id") or str(uuid4())} if isinstance(node, dict) else node
            for node in nodes
        ],
    }


def extract_code_files(text: str) -> list[CodeFile]:
    """Extract files from fenced code blocks.

    A block may name its file on the fence line (```python # bot.py).
    Python blocks without a name become main.py; other languages become
    file.<lang>. Telegram projects without a requirements.txt get a default one.
    """
    files: list[CodeFile] = []

    for match in CODE_BLOCK_PATTERN.finditer(text):
        language = match.group(1) or "python"
        name = match.group(2) or ("main.py" if language == "python" else f"file.{language}")
        content = match.group(3).strip()
        if content:
            files.append(CodeFile(name=name, content=content, language=language))

    lowered = text.lower()
    if ("telegram" in lowered or "telethon" in lowered) and not any(
        f.name == "requirements.txt" for f in files
    ):
        files.append(
            CodeFile(name="requirements.txt", content=DEFAULT_BOT_REQUIREMENTS, language="text")
        )

    logger.debug("code_files_extracted", files=[f.name for f in files])
    return files
