"""Error taxonomy and sanitization utilities."""

from __future__ import annotations

import re
from typing import Any

from kubernetes.client.exceptions import ApiException

# Patterns that might expose sensitive information
SENSITIVE_PATTERNS = [
    r"password[:=\s]+([^\s,;\)]+)",
    r"POSTGRES_PASSWORD[\"':=\s]+([^\s,;\)\"']+)",
    r"token[:=\s]+([^\s,;\)]+)",
    r"client-key-data[:=\s]+([^\s,;\)]+)",
]

# Fields to redact completely
SENSITIVE_FIELDS = {
    "password",
    "secret",
    "credentials",
    "token",
    "kubeconfig",
}


class ProviderError(Exception):
    """Base class for every error surfaced by a reconcile invocation.

    ``retryable`` tells the controller whether the key is requeued with
    backoff or left until the next event or resync.
    """

    retryable = True


class InputError(ProviderError):
    """The record is not of the expected kind or a required reference is missing."""

    retryable = False


class NotFoundError(ProviderError):
    """A resource in the target system does not exist."""


class TransientError(ProviderError):
    """A network or API failure that is expected to heal on its own."""


class PermanentError(ProviderError):
    """Declared parameters are malformed; the record has to be edited."""


class ConflictError(ProviderError):
    """An optimistic-concurrency write lost against a concurrent modification."""


class AlreadyExistsError(ConflictError):
    """A create call hit an object that already exists."""


def from_api_exception(error: ApiException, stage: str) -> ProviderError:
    """Map a Kubernetes API failure to the error taxonomy.

    Args:
        error: Exception raised by the kubernetes client
        stage: Human readable stage prefix, e.g. "storage-claim create failed"

    Returns:
        Error instance whose message is ``"<stage>: <cause>"``
    """
    status = getattr(error, "status", None)
    cause = error.reason or str(error)
    message = f"{stage}: {cause}"
    if status == 404:
        return NotFoundError(message)
    if status == 409:
        if "AlreadyExists" in _body_text(error):
            return AlreadyExistsError(message)
        return ConflictError(message)
    if status in (400, 422):
        return PermanentError(message)
    return TransientError(message)


def _body_text(error: ApiException) -> str:
    body = getattr(error, "body", None) or ""
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    return str(body)


def wrap_error(error: Exception, stage: str) -> ProviderError:
    """Wrap any exception into a single stage-identifying ProviderError."""
    if isinstance(error, ApiException):
        return from_api_exception(error, stage)
    if isinstance(error, ProviderError):
        wrapped = type(error)(f"{stage}: {error}")
        wrapped.__cause__ = error
        return wrapped
    wrapped_transient = TransientError(f"{stage}: {error}")
    wrapped_transient.__cause__ = error
    return wrapped_transient


def sanitize_error_message(message: str) -> str:
    """Sanitize error message to remove sensitive information.

    Args:
        message: Original error message

    Returns:
        Sanitized error message with sensitive data redacted
    """
    sanitized = message

    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(
            pattern,
            lambda m: m.group(0).replace(m.group(1), "[REDACTED]"),
            sanitized,
            flags=re.IGNORECASE,
        )

    return sanitized


def sanitize_exception(error: BaseException) -> str:
    """Sanitize exception message.

    Args:
        error: Exception object

    Returns:
        Sanitized error message
    """
    return sanitize_error_message(str(error))


def sanitize_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """Sanitize dictionary by redacting sensitive fields.

    Args:
        data: Dictionary to sanitize
        sensitive_keys: Additional keys to redact (merged with SENSITIVE_FIELDS)

    Returns:
        Sanitized dictionary with sensitive values redacted
    """
    if sensitive_keys is None:
        sensitive_keys = set()

    all_sensitive = SENSITIVE_FIELDS | sensitive_keys
    sanitized: dict[str, Any] = {}

    for key, value in data.items():
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in all_sensitive):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_dict(value, sensitive_keys)
        elif isinstance(value, str):
            sanitized[key] = sanitize_error_message(value)
        else:
            sanitized[key] = value

    return sanitized
