"""Fernet encryption for node credential values.

Credential values entered for a workflow node are serialized to JSON and
encrypted as a whole before they reach the credential_storage table.

SECURITY NOTES:
- Fernet provides AES-128-CBC with HMAC-SHA256 authentication
- The key must be 32 url-safe base64-encoded bytes (ENCRYPTION_KEY)
- Decrypted values never leave the service layer; responses carry masked values
"""

import json
from typing import Any

import structlog
from cryptography.fernet import Fernet, InvalidToken

logger = structlog.get_logger()


class EncryptionError(Exception):
    """Base exception for encryption operations."""


class EncryptionKeyError(EncryptionError):
    """Invalid or missing encryption key."""


class DecryptionError(EncryptionError):
    """Stored credentials could not be decrypted."""


class CredentialEncryption:
    """Encrypts and decrypts node credential dictionaries.

    Stateless apart from the key, so one instance can be shared.

    Example usage:
        encryption = CredentialEncryption(settings.encryption_key.get_secret_value())
        token = encryption.encrypt({"accessToken": "123:abc"})
        values = encryption.decrypt(token)
    """

    def __init__(self, key: str) -> None:
        """Initialize with a Fernet key.

        Raises:
            EncryptionKeyError: If key is not a valid Fernet key
        """
        try:
            self._fernet = Fernet(key.encode())
        except (ValueError, TypeError) as e:
            logger.error("encryption_key_invalid", error_type=type(e).__name__)
            raise EncryptionKeyError(
                "Invalid ENCRYPTION_KEY. Generate one with: "
                "python -c 'from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())'"
            ) from e

    def encrypt(self, values: dict[str, Any]) -> str:
        """Encrypt a node's credential values.

        Raises:
            EncryptionError: If the values cannot be serialized
        """
        try:
            payload = json.dumps(values, separators=(",", ":"), sort_keys=True)
        except (TypeError, ValueError) as e:
            logger.error("credential_serialization_failed", error_type=type(e).__name__)
            raise EncryptionError("Credential values must be JSON serializable") from e
        return self._fernet.encrypt(payload.encode("utf-8")).decode("utf-8")

    def decrypt(self, token: str) -> dict[str, Any]:
        """Decrypt a node's credential values.

        Raises:
            DecryptionError: Wrong key, tampered token or non-object payload
        """
        try:
            payload = self._fernet.decrypt(token.encode("utf-8"))
        except InvalidToken as e:
            logger.warning("decryption_invalid_token")
            raise DecryptionError(
                "Failed to decrypt: invalid token (wrong key or corrupted data)"
            ) from e

        try:
            values = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error("decryption_invalid_json")
            raise DecryptionError("Decrypted data is not valid JSON") from e

        if not isinstance(values, dict):
            raise DecryptionError("Decrypted data is not a JSON object")
        return values

    @staticmethod
    def generate_key() -> str:
        """Generate a new url-safe base64-encoded Fernet key."""
        return Fernet.generate_key().decode("utf-8")


def mask_credential_value(value: Any, visible_chars: int = 4) -> str:
    """Mask a credential value for display and logging.

    Shows the first few characters followed by at most eight asterisks;
    values no longer than visible_chars are fully masked.

    >>> mask_credential_value("sk-abcdef")
    'sk-a*****'
    """
    text = "" if value is None else str(value)
    if len(text) <= visible_chars:
        return "*" * len(text)
    return text[:visible_chars] + "*" * min(8, len(text) - visible_chars)


def mask_credentials(values: dict[str, Any], visible_chars: int = 4) -> dict[str, str]:
    """Mask every value of a credential dictionary."""
    return {key: mask_credential_value(value, visible_chars) for key, value in values.items()}
