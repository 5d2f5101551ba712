"""
Credential validation.

Runs before any network call: an OpenAI key must be a non-empty string
starting with ``sk-``.
"""

from typing import Any

KEY_PREFIX = "sk-"


class CredentialError(ValueError):
    """Base class for keys rejected before reaching the upstream API."""
    status_code = 400
    message = "Invalid API key"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)

    @property
    def error(self) -> str:
        return str(self)


class MissingCredential(CredentialError):
    """No key, an empty key, or a key that is not a string."""
    message = "API key is required"


class MalformedCredential(CredentialError):
    """Key without the ``sk-`` prefix."""
    message = f'Invalid API key format. OpenAI keys start with "{KEY_PREFIX}"'


def validate_credential(value: Any) -> str:
    """Return ``value`` unchanged if it looks like an OpenAI key, else raise."""
    if not value or not isinstance(value, str):
        raise MissingCredential()

    if not value.startswith(KEY_PREFIX):
        raise MalformedCredential()

    return value


def key_preview(value: Any) -> str:
    """First seven characters of a key for log lines."""
    if not value or not isinstance(value, str):
        return "No key"
    return f"{value[:7]}..."
