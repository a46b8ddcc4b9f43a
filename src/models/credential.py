"""Credential storage model.

Defines the credential_storage table holding the values a user entered for
one workflow node. Values are Fernet-encrypted at rest and scoped per user.
"""

from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from sqlalchemy import Index, UniqueConstraint, text
from sqlmodel import Column, Field, SQLModel, Text

from src.core.credential_analyzer import CredentialStatus


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class NodeCredential(SQLModel, table=True):
    """Encrypted credentials for a single node.

    SECURITY NOTES:
    - Never log decrypted credential values
    - workflow_id is a soft reference; credentials may exist before the
      workflow is saved
    """

    __tablename__ = "credential_storage"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "workflow_id", "node_id", name="uq_credential_storage_user_workflow_node"
        ),
        # NULL workflow ids never collide in the constraint above
        Index(
            "uq_credential_storage_user_node_unsaved",
            "user_id",
            "node_id",
            unique=True,
            sqlite_where=text("workflow_id IS NULL"),
            postgresql_where=text("workflow_id IS NULL"),
        ),
    )

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Unique credential identifier (UUID)",
    )
    user_id: str = Field(
        index=True,
        max_length=100,
        description="Owner user ID",
    )
    workflow_id: str | None = Field(
        default=None,
        index=True,
        max_length=100,
        description="Workflow the node belongs to, if saved",
    )
    node_id: str = Field(
        index=True,
        max_length=100,
        description="Node identifier inside the workflow",
    )
    node_type: str = Field(
        max_length=255,
        description="n8n node type (e.g. 'n8n-nodes-base.slack')",
    )
    credentials: str = Field(
        sa_column=Column(Text, nullable=False),
        description="Fernet-encrypted JSON credential values",
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column_kwargs={"onupdate": utc_now},
        description="Last update timestamp (UTC)",
    )


class NodeCredentialSave(SQLModel):
    """Schema for saving a node's credential values.

    The 'credentials' field contains the raw values that will be encrypted.
    """

    node_type: str = Field(max_length=255)
    workflow_id: str | None = Field(default=None, max_length=100)
    node_name: str | None = Field(default=None, max_length=255)
    parameters: dict[str, Any] = Field(default_factory=dict)
    credentials: dict[str, Any] = Field(
        description="Raw credential values (will be encrypted)",
    )


class CredentialFieldRead(SQLModel):
    """Schema for an inferred credential form field."""

    name: str
    label: str
    type: Literal["text", "password", "email", "url", "number", "select"]
    required: bool
    placeholder: str
    description: str | None = None
    options: list[str] | None = None


class CredentialRequirementRead(SQLModel):
    """Schema for the credential requirements of one node."""

    requires_credentials: bool
    service_name: str
    fields: list[CredentialFieldRead]
    help_url: str | None = None


class NodeCredentialStatus(SQLModel):
    """Schema for a node's credential configuration status.

    SECURITY: values are masked; decrypted values never leave the service.
    """

    node_id: str
    node_type: str
    workflow_id: str | None = None
    status: CredentialStatus
    masked_values: dict[str, str] = Field(default_factory=dict)
    updated_at: datetime | None = None


class CredentialCheckRequest(SQLModel):
    """Schema for checking credential values before (or after) saving them.

    Pass 'credentials' to check raw values, or 'node_id' (and 'workflow_id')
    to check the values already stored for that node.
    """

    node_type: str = Field(max_length=255)
    credentials: dict[str, Any] | None = None
    node_id: str | None = Field(default=None, max_length=100)
    workflow_id: str | None = Field(default=None, max_length=100)


class CredentialCheckRead(SQLModel):
    """Schema for a credential check outcome."""

    success: bool
    message: str
