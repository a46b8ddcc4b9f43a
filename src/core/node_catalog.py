"""Static knowledge about n8n node types.

Everything here is keyed by the short, lowercased node type
(``n8n-nodes-base.httpRequest`` -> ``httprequest``). The catalog feeds the
canvas parser (outputs, start/end markers), the credential analyzer
(credential-free types, help links, well-known fields) and the simulated
execution engine (latencies and mock results).
"""

import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from src.models.document import short_node_type

DEFAULT_LATENCY_MS = 800

NODE_LATENCY_MS: dict[str, int] = {
    "httprequest": 1500,
    "webhook": 500,
    "code": 1000,
    "set": 300,
    "if": 200,
    "schedule": 100,
    "email": 2000,
    "slack": 1200,
    "googlesheets": 1800,
    "mysql": 1000,
    "postgresql": 1000,
    "mongodb": 1200,
}

MULTI_OUTPUT_MARKERS = ("if", "switch", "merge", "split")
ERROR_OUTPUT_MARKERS = ("httprequest", "webhook", "email", "mysql", "postgresql", "mongodb")
START_NODE_MARKERS = ("webhook", "schedule", "trigger", "start", "manual")

CREDENTIAL_FREE_TYPES = frozenset({
    "webhook", "code", "function", "if", "switch", "set", "merge",
    "schedule", "wait", "split", "sort", "filter", "limit", "rename",
    "datetime", "crypto", "html", "xml", "json", "spreadsheet",
})

HELP_URLS: dict[str, str] = {
    "telegram": "https://core.telegram.org/bots#how-do-i-create-a-bot",
    "discord": "https://discord.com/developers/applications",
    "slack": "https://api.slack.com/apps",
    "openai": "https://platform.openai.com/api-keys",
    "google": "https://console.cloud.google.com/apis/credentials",
    "gmail": "https://console.cloud.google.com/apis/credentials",
    "googlesheets": "https://console.cloud.google.com/apis/credentials",
    "mysql": "https://dev.mysql.com/doc/",
    "postgresql": "https://www.postgresql.org/docs/",
    "mongodb": "https://docs.mongodb.com/",
}


@dataclass(frozen=True)
class KnownCredentialField:
    """A credential field a service always needs, even if absent from the JSON."""

    name: str
    label: str
    placeholder: str
    description: str
    type: str = "password"


SPECIAL_CREDENTIALS: dict[str, tuple[KnownCredentialField, ...]] = {
    "telegram": (
        KnownCredentialField(
            name="accessToken",
            label="Bot Token",
            placeholder="Enter your Telegram bot token",
            description="Bot token from @BotFather",
        ),
    ),
    "discord": (
        KnownCredentialField(
            name="token",
            label="Bot Token",
            placeholder="Enter your Discord bot token",
            description="Bot token from Discord Developer Portal",
        ),
    ),
    "slack": (
        KnownCredentialField(
            name="accessToken",
            label="Bot Token",
            placeholder="Enter your Slack bot token",
            description="Bot User OAuth Token from Slack App",
        ),
    ),
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _http_request(rng: random.Random) -> dict[str, Any]:
    return {
        "statusCode": 200,
        "data": {"message": "HTTP request successful", "timestamp": _now()},
        "headers": {"content-type": "application/json"},
    }


def _webhook(rng: random.Random) -> dict[str, Any]:
    return {
        "received": True,
        "timestamp": _now(),
        "payload": {"event": "webhook_triggered"},
    }


def _code(rng: random.Random) -> dict[str, Any]:
    return {
        "result": "Code executed successfully",
        "output": round(rng.random() * 100, 4),
        "executedAt": _now(),
    }


def _set(rng: random.Random) -> dict[str, Any]:
    return {
        "transformed": True,
        "fields": ["field1", "field2", "field3"],
        "recordCount": rng.randint(1, 50),
    }


def _if(rng: random.Random) -> dict[str, Any]:
    condition = rng.random() > 0.5
    return {
        "condition": condition,
        "branch": "true" if condition else "false",
        "evaluatedAt": _now(),
    }


def _email(rng: random.Random) -> dict[str, Any]:
    return {
        "sent": True,
        "recipient": "user@example.com",
        "messageId": f"msg_{rng.randrange(10**12)}",
    }


def _slack(rng: random.Random) -> dict[str, Any]:
    return {
        "posted": True,
        "channel": "#general",
        "messageTs": str(rng.randrange(10**12)),
    }


def _google_sheets(rng: random.Random) -> dict[str, Any]:
    return {
        "rows": rng.randint(1, 10),
        "updated": True,
        "spreadsheetId": "sheet_123",
    }


MockResultFactory = Callable[[random.Random], dict[str, Any]]

MOCK_RESULTS: dict[str, MockResultFactory] = {
    "httprequest": _http_request,
    "webhook": _webhook,
    "code": _code,
    "set": _set,
    "if": _if,
    "email": _email,
    "slack": _slack,
    "googlesheets": _google_sheets,
}


def get_latency_ms(node_type: str, default: int = DEFAULT_LATENCY_MS) -> int:
    """Simulated latency for a node type."""
    return NODE_LATENCY_MS.get(short_node_type(node_type), default)


def get_output_count(node_type: str) -> int:
    """Number of main outputs a node type exposes."""
    short = short_node_type(node_type)
    return 2 if any(marker in short for marker in MULTI_OUTPUT_MARKERS) else 1


def has_error_output(node_type: str) -> bool:
    """Whether a node type exposes an error output."""
    short = short_node_type(node_type)
    return any(marker in short for marker in ERROR_OUTPUT_MARKERS)


def is_start_node(node_type: str) -> bool:
    """Whether a node type is a trigger."""
    short = short_node_type(node_type)
    return any(marker in short for marker in START_NODE_MARKERS)


def is_credential_free(node_type: str) -> bool:
    """Whether a node type is known to run without credentials."""
    return short_node_type(node_type) in CREDENTIAL_FREE_TYPES


def get_help_url(node_type: str) -> str | None:
    """Where users can obtain credentials for a service."""
    return HELP_URLS.get(short_node_type(node_type))


def get_special_credentials(node_type: str) -> tuple[KnownCredentialField, ...]:
    """Fields a service is known to need."""
    return SPECIAL_CREDENTIALS.get(short_node_type(node_type), ())


def mock_result(node_type: str, rng: random.Random) -> dict[str, Any]:
    """Fabricate a plausible result payload for a node type."""
    short = short_node_type(node_type)
    factory = MOCK_RESULTS.get(short)
    if factory is None:
        return {"status": "completed", "nodeType": short, "processedAt": _now()}
    return factory(rng)
