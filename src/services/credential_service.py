"""Credential service.

Stores the credential values a user enters for workflow nodes and reports
each node's configuration status. Values are Fernet-encrypted at rest and
only ever returned masked.
"""

from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.core.credential_analyzer import (
    NodeCredentialRequirement,
    analyze_node_credentials,
    check_credentials,
    get_credential_status,
)
from src.core.encryption import CredentialEncryption, DecryptionError, EncryptionError, mask_credentials
from src.models.credential import (
    CredentialCheckRead,
    CredentialCheckRequest,
    CredentialRequirementRead,
    NodeCredential,
    NodeCredentialSave,
    NodeCredentialStatus,
)
from src.models.document import N8nNode
from src.models.workflow import WorkflowRecord

logger = structlog.get_logger()


class CredentialServiceError(Exception):
    """Error in credential service operations."""

    pass


class CredentialNotFoundError(CredentialServiceError):
    """No credentials stored for this node."""

    pass


class CredentialValidationError(CredentialServiceError):
    """Credential values could not be accepted."""

    def __init__(self, message: str, errors: list[str]) -> None:
        super().__init__(message)
        self.errors = errors


class CredentialService:
    """Service for managing per-node credentials.

    Handles:
    - Inferring the credential form for a node
    - Saving values (encrypt, upsert on user/workflow/node)
    - Reporting masked values and configuration status
    - Deleting stored values

    Example usage:
        service = CredentialService(session)
        status = await service.save(
            user_id="user-123",
            node_id="node-1",
            data=NodeCredentialSave(
                node_type="n8n-nodes-base.telegram",
                credentials={"accessToken": "123456:ABC"},
            ),
        )
        assert status.status == "configured"
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize credential service.

        Args:
            session: Async database session
        """
        self._session = session
        self._encryption = CredentialEncryption(settings.encryption_key.get_secret_value())

    def requirements(self, node: N8nNode | dict[str, Any]) -> CredentialRequirementRead:
        """Credential form fields for a node."""
        requirement = analyze_node_credentials(node)
        return CredentialRequirementRead.model_validate(requirement.to_dict())

    async def save(
        self,
        user_id: str,
        node_id: str,
        data: NodeCredentialSave,
    ) -> NodeCredentialStatus:
        """Encrypt and store a node's credential values.

        Args:
            user_id: Owner user ID
            node_id: Node identifier inside the workflow
            data: Node description and raw values

        Returns:
            Masked status after saving

        Raises:
            CredentialValidationError: If the values cannot be stored
        """
        non_scalar = [
            key for key, value in data.credentials.items()
            if value is not None and not isinstance(value, (str, int, float, bool))
        ]
        if non_scalar:
            raise CredentialValidationError(
                "Credential values must be plain values",
                errors=[f"Field '{key}' must be a string, number or boolean" for key in non_scalar],
            )

        try:
            encrypted = self._encryption.encrypt(data.credentials)
        except EncryptionError as e:
            raise CredentialServiceError("Failed to encrypt credentials") from e

        credential = await self._find(user_id, node_id, data.workflow_id)
        if credential is None:
            credential = NodeCredential(
                user_id=user_id,
                workflow_id=data.workflow_id,
                node_id=node_id,
                node_type=data.node_type,
                credentials=encrypted,
            )
            self._session.add(credential)
            try:
                await self._session.commit()
            except IntegrityError:
                # A concurrent save inserted the row between lookup and insert
                await self._session.rollback()
                logger.info("node_credentials_save_conflict", user_id=user_id, node_id=node_id)
                credential = await self._find(user_id, node_id, data.workflow_id)
                if credential is None:
                    raise CredentialServiceError("Failed to store credentials")
                credential.node_type = data.node_type
                credential.credentials = encrypted
                await self._session.commit()
        else:
            credential.node_type = data.node_type
            credential.credentials = encrypted
            await self._session.commit()

        await self._session.refresh(credential)

        # Field names only; values are never logged
        logger.info(
            "node_credentials_saved",
            user_id=user_id,
            workflow_id=data.workflow_id,
            node_id=node_id,
            node_type=data.node_type,
            fields=sorted(data.credentials),
        )

        node = await self._resolve_node(user_id, credential)
        if data.parameters or data.node_name:
            node = {
                **node,
                "name": data.node_name or node.get("name"),
                "parameters": {**node.get("parameters", {}), **data.parameters},
            }
        return self._status(credential, analyze_node_credentials(node), data.credentials)

    async def check(self, user_id: str, data: CredentialCheckRequest) -> CredentialCheckRead:
        """Sanity-check raw or stored credential values for a node type.

        Raises:
            CredentialValidationError: If neither values nor a node id are given
            CredentialNotFoundError: If nothing is stored for the node
        """
        if data.credentials is not None:
            values = data.credentials
        elif data.node_id is not None:
            credential = await self._find(user_id, data.node_id, data.workflow_id)
            if credential is None:
                raise CredentialNotFoundError(f"No credentials stored for node '{data.node_id}'")
            values = self._decrypt(credential)
        else:
            raise CredentialValidationError(
                "Nothing to check",
                errors=["Provide 'credentials' or the 'node_id' of stored values"],
            )

        result = check_credentials(data.node_type, values)

        logger.info(
            "node_credentials_checked",
            user_id=user_id,
            node_type=data.node_type,
            node_id=data.node_id,
            success=result.success,
        )

        return CredentialCheckRead(**result.to_dict())

    async def get_status(
        self,
        user_id: str,
        node_id: str,
        workflow_id: str | None = None,
    ) -> NodeCredentialStatus:
        """Masked values and configuration status for a node.

        Raises:
            CredentialNotFoundError: If nothing is stored for the node
        """
        credential = await self._find(user_id, node_id, workflow_id)
        if credential is None:
            raise CredentialNotFoundError(f"No credentials stored for node '{node_id}'")

        values = self._decrypt(credential)
        node = await self._resolve_node(user_id, credential)
        return self._status(credential, analyze_node_credentials(node), values)

    async def workflow_status(self, user_id: str, workflow_id: str) -> list[NodeCredentialStatus]:
        """Status for every node of a saved workflow.

        Nodes without stored values are reported as 'empty' or 'not_required'.
        Returns an empty list when the workflow does not exist.
        """
        record = await self._find_workflow(user_id, workflow_id)
        if record is None:
            return []

        query = select(NodeCredential).where(
            NodeCredential.user_id == user_id,
            NodeCredential.workflow_id == workflow_id,
        )
        result = await self._session.execute(query)
        stored = {c.node_id: c for c in result.scalars().all()}

        statuses = []
        for node in record.get_document().nodes:
            requirement = analyze_node_credentials(node)
            credential = stored.get(node.id)
            if credential is None:
                statuses.append(
                    NodeCredentialStatus(
                        node_id=node.id,
                        node_type=node.type,
                        workflow_id=workflow_id,
                        status=get_credential_status(requirement, {}),
                    )
                )
            else:
                statuses.append(self._status(credential, requirement, self._decrypt(credential)))

        return statuses

    async def delete(
        self,
        user_id: str,
        node_id: str,
        workflow_id: str | None = None,
    ) -> None:
        """Delete a node's stored values.

        Raises:
            CredentialNotFoundError: If nothing is stored for the node
        """
        credential = await self._find(user_id, node_id, workflow_id)
        if credential is None:
            raise CredentialNotFoundError(f"No credentials stored for node '{node_id}'")

        await self._session.delete(credential)
        await self._session.commit()

        logger.info(
            "node_credentials_deleted",
            user_id=user_id,
            workflow_id=workflow_id,
            node_id=node_id,
        )

    async def _find(
        self,
        user_id: str,
        node_id: str,
        workflow_id: str | None,
    ) -> NodeCredential | None:
        query = select(NodeCredential).where(
            NodeCredential.user_id == user_id,
            NodeCredential.node_id == node_id,
        )
        if workflow_id is None:
            query = query.where(NodeCredential.workflow_id.is_(None))
        else:
            query = query.where(NodeCredential.workflow_id == workflow_id)
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def _find_workflow(self, user_id: str, workflow_id: str) -> WorkflowRecord | None:
        query = select(WorkflowRecord).where(
            WorkflowRecord.user_id == user_id,
            WorkflowRecord.workflow_id == workflow_id,
        )
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def _resolve_node(self, user_id: str, credential: NodeCredential) -> dict[str, Any]:
        """The node definition to infer requirements from.

        Uses the saved workflow's node when there is one, else the stored type.
        """
        if credential.workflow_id is not None:
            record = await self._find_workflow(user_id, credential.workflow_id)
            if record is not None:
                node = record.get_document().node_by_id(credential.node_id)
                if node is not None:
                    return node.model_dump()
        return {"type": credential.node_type, "parameters": {}}

    def _decrypt(self, credential: NodeCredential) -> dict[str, Any]:
        try:
            return self._encryption.decrypt(credential.credentials)
        except DecryptionError as e:
            logger.error(
                "node_credentials_decryption_failed",
                credential_id=credential.id,
                node_id=credential.node_id,
            )
            raise CredentialServiceError("Failed to decrypt stored credentials") from e

    def _status(
        self,
        credential: NodeCredential,
        requirement: NodeCredentialRequirement,
        values: dict[str, Any],
    ) -> NodeCredentialStatus:
        return NodeCredentialStatus(
            node_id=credential.node_id,
            node_type=credential.node_type,
            workflow_id=credential.workflow_id,
            status=get_credential_status(requirement, values),
            masked_values=mask_credentials(values),
            updated_at=credential.updated_at,
        )
