"""Credential requirement inference for workflow nodes.

There is no per-service schema: required fields are inferred from the node's
parameter keys, its credentials object and a handful of services whose
fields are always needed. The result drives the credential form and the
per-node configuration status.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Literal
from urllib.parse import urlparse

import structlog

from src.core import node_catalog
from src.models.document import NODE_TYPE_PREFIX, N8nNode, short_node_type

logger = structlog.get_logger()

CredentialStatus = Literal["not_required", "empty", "partial", "configured", "invalid"]
FieldType = Literal["text", "password", "email", "url", "number", "select"]

CREDENTIAL_KEYWORDS = (
    "api", "token", "key", "secret", "password", "auth", "credential",
    "access", "client", "bearer", "oauth", "webhook", "bot", "user",
    "username", "email", "host", "database", "connection",
)

# Order matters: the first matching pattern wins
PLACEHOLDERS = (
    ("apikey", "Enter your API key"),
    ("token", "Enter your access token"),
    ("accesstoken", "Enter your access token"),
    ("clientid", "Enter your client ID"),
    ("clientsecret", "Enter your client secret"),
    ("username", "Enter your username"),
    ("password", "Enter your password"),
    ("email", "Enter your email address"),
    ("host", "Enter host URL"),
    ("database", "Enter database name"),
    ("port", "Enter port number"),
)

DESCRIPTIONS = (
    ("apikey", "Your API key for authentication"),
    ("token", "Access token for API authentication"),
    ("accesstoken", "OAuth access token"),
    ("clientid", "OAuth client identifier"),
    ("clientsecret", "OAuth client secret (keep confidential)"),
    ("webhookurl", "URL endpoint for webhook notifications"),
)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class CredentialField:
    """One input the user must provide for a node."""

    name: str
    label: str
    type: FieldType
    required: bool
    placeholder: str
    description: str | None = None
    options: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "name": self.name,
            "label": self.label,
            "type": self.type,
            "required": self.required,
            "placeholder": self.placeholder,
            "description": self.description,
            "options": self.options,
        }


@dataclass
class NodeCredentialRequirement:
    """Inferred credential requirements for one node."""

    requires_credentials: bool
    service_name: str
    fields: list[CredentialField] = field(default_factory=list)
    help_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "requires_credentials": self.requires_credentials,
            "service_name": self.service_name,
            "fields": [f.to_dict() for f in self.fields],
            "help_url": self.help_url,
        }


def is_credential_key(key: str) -> bool:
    """Whether a parameter key looks credential-related."""
    lower = key.lower()
    return any(keyword in lower for keyword in CREDENTIAL_KEYWORDS)


def format_field_label(key: str) -> str:
    """Human label from a camelCase, snake_case or kebab-case key.

    >>> format_field_label("apiKey")
    'Api Key'
    """
    spaced = re.sub(r"([A-Z])", r" \1", key)
    spaced = re.sub(r"[_-]", " ", spaced)
    return " ".join(word.capitalize() for word in spaced.split())


def determine_field_type(key: str) -> FieldType:
    lower = key.lower()
    if any(marker in lower for marker in ("password", "secret", "token", "key")):
        return "password"
    if "email" in lower:
        return "email"
    if any(marker in lower for marker in ("url", "host", "endpoint")):
        return "url"
    if "port" in lower or "timeout" in lower:
        return "number"
    return "text"


def generate_placeholder(key: str) -> str:
    lower = key.lower()
    for pattern, placeholder in PLACEHOLDERS:
        if pattern in lower:
            return placeholder
    return f"Enter your {format_field_label(key).lower()}"


def generate_description(key: str) -> str:
    lower = key.lower()
    for pattern, description in DESCRIPTIONS:
        if pattern in lower:
            return description
    return f"Required for {format_field_label(key).lower()} authentication"


def _field_for_key(key: str) -> CredentialField:
    return CredentialField(
        name=key,
        label=format_field_label(key),
        type=determine_field_type(key),
        required=True,
        placeholder=generate_placeholder(key),
        description=generate_description(key),
    )


def _as_dict(node_data: N8nNode | dict[str, Any]) -> dict[str, Any]:
    if isinstance(node_data, N8nNode):
        return node_data.model_dump()
    return node_data


def analyze_node_credentials(node_data: N8nNode | dict[str, Any]) -> NodeCredentialRequirement:
    """Infer the credential fields a node needs.

    Args:
        node_data: A workflow node, or canvas node data (``nodeType`` is
            accepted in place of ``type``)

    Returns:
        Requirement with deduplicated fields (first occurrence wins)
    """
    data = _as_dict(node_data)
    node_type = data.get("nodeType") or data.get("type") or ""
    short = short_node_type(node_type)
    service_name = data.get("name") or short.capitalize()

    fields: list[CredentialField] = []

    parameters = data.get("parameters")
    if isinstance(parameters, dict):
        fields.extend(_field_for_key(key) for key in parameters if is_credential_key(key))

    credentials = data.get("credentials")
    if isinstance(credentials, dict):
        fields.extend(_field_for_key(key) for key in credentials)

    type_options = data.get("typeOptions")
    if isinstance(type_options, dict) and type_options.get("credentialsField"):
        fields.append(_field_for_key(str(type_options["credentialsField"])))

    for known in node_catalog.get_special_credentials(short):
        fields.append(
            CredentialField(
                name=known.name,
                label=known.label,
                type=known.type,
                required=True,
                placeholder=known.placeholder,
                description=known.description,
            )
        )

    requires_credentials = bool(fields) or not node_catalog.is_credential_free(short)

    unique: dict[str, CredentialField] = {}
    for item in fields:
        unique.setdefault(item.name, item)

    logger.debug(
        "node_credentials_analyzed",
        node_type=short,
        requires_credentials=requires_credentials,
        field_names=list(unique),
    )

    return NodeCredentialRequirement(
        requires_credentials=requires_credentials,
        service_name=service_name,
        fields=list(unique.values()),
        help_url=node_catalog.get_help_url(short),
    )


def validate_credential_value(credential_field: CredentialField, value: Any) -> bool:
    """Check one value against its field type.

    Blank values are valid only for optional fields.
    """
    text = "" if value is None else str(value).strip()
    if not text:
        return not credential_field.required

    if credential_field.type == "email":
        return EMAIL_PATTERN.match(text) is not None
    if credential_field.type == "url":
        parsed = urlparse(text)
        return bool(parsed.scheme and parsed.netloc)
    if credential_field.type == "number":
        try:
            return float(text) > 0
        except ValueError:
            return False
    return True


def get_credential_status(
    requirement: NodeCredentialRequirement,
    values: dict[str, Any],
) -> CredentialStatus:
    """Configuration status of a node given the values entered so far.

    Filled values that fail validation make the node 'invalid' before
    missing ones make it 'partial'.
    """
    if not requirement.requires_credentials or not requirement.fields:
        return "not_required"

    required = [f for f in requirement.fields if f.required]
    if not required:
        return "not_required"

    filled = 0
    valid = 0
    for credential_field in required:
        value = values.get(credential_field.name)
        if value is None or not str(value).strip():
            continue
        filled += 1
        if validate_credential_value(credential_field, value):
            valid += 1

    if filled == 0:
        return "empty"
    if valid < filled:
        return "invalid"
    if filled < len(required):
        return "partial"
    return "configured"


@dataclass
class CredentialCheckResult:
    """Outcome of an offline credential check."""

    success: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "message": self.message}


TELEGRAM_TOKEN_KEYS = ("telegramApi", "botToken", "accessToken")
GROQ_KEY_KEYS = ("groqApi", "apiKey", "api_key")


def _first_value(values: dict[str, Any], keys: tuple[str, ...]) -> Any:
    return next((values[k] for k in keys if values.get(k)), None)


def check_credentials(node_type: str, values: dict[str, Any]) -> CredentialCheckResult:
    """Sanity-check credential values for a node type without contacting the service.

    Telegram bot tokens need a ':' and at least 20 characters, Groq keys at
    least 20 characters, HTTP request URLs must parse; any other type needs
    one string value longer than 3 characters.
    """
    if not any(value is not None and str(value).strip() for value in values.values()):
        return CredentialCheckResult(False, "No credentials provided")

    short = short_node_type(node_type)

    if short in ("telegram", "telegramtrigger"):
        token = _first_value(values, TELEGRAM_TOKEN_KEYS)
        if not isinstance(token, str) or not token.strip():
            return CredentialCheckResult(False, "Bot token is required and cannot be empty")
        if ":" not in token or len(token) < 20:
            return CredentialCheckResult(
                False,
                "Invalid bot token format. Expected format: "
                "XXXXXXXXX:XXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXX",
            )

    elif short == "groq":
        key = _first_value(values, GROQ_KEY_KEYS)
        if not isinstance(key, str) or not key.strip():
            return CredentialCheckResult(False, "API key is required and cannot be empty")
        if len(key) < 20:
            return CredentialCheckResult(False, "API key appears to be too short")

    elif short == "httprequest":
        url = values.get("url")
        if url:
            parsed = urlparse(str(url))
            if not (parsed.scheme and parsed.netloc):
                return CredentialCheckResult(False, "Invalid URL format")

    elif not any(isinstance(value, str) and len(value.strip()) > 3 for value in values.values()):
        service = node_type.replace(NODE_TYPE_PREFIX, "")
        return CredentialCheckResult(False, f"No valid credentials provided for {service}")

    return CredentialCheckResult(True, "Credentials validated successfully")
