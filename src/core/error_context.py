"""Redaction of sensitive values in error contexts.

Collection errors carry context (entity, operation, rejected payload fields)
that ends up in logs and error responses. A key is sensitive when one of its
``_``-separated segments is a known secret name, or when it contains one of
``LogConfig.sensitive_fields``; its value is replaced with ``[REDACTED]``.
"""

import re
from functools import lru_cache
from typing import Any, Final

from src.core.config import get_settings

REDACTED: Final = "[REDACTED]"
MAX_DEPTH: Final = 10

SENSITIVE_KEYWORDS: Final = (
    "password",
    "passwd",
    "pwd",
    "secret",
    "token",
    "api_key",
    "apikey",
    "auth",
    "authorization",
    "credential",
    "credentials",
    "private_key",
    "access_key",
    "secret_key",
    "session",
    "ssn",
    "pin",
    "cvv",
    "cvc",
    "card_number",
    "connection_string",
)

_SENSITIVE_KEY = re.compile(
    r"(?:^|_)(?:" + "|".join(SENSITIVE_KEYWORDS) + r")(?:$|_)", re.IGNORECASE
)


@lru_cache(maxsize=1)
def _get_sensitive_fields() -> tuple[str, ...]:
    return tuple(field.lower() for field in get_settings().log_config.sensitive_fields)


def is_sensitive_field(field_name: str) -> bool:
    """Whether values stored under ``field_name`` must be redacted."""
    normalized = field_name.lower().replace("-", "_")
    if _SENSITIVE_KEY.search(normalized):
        return True
    return any(field in normalized for field in _get_sensitive_fields())


def sanitize_value(value: Any, field_name: str = "", depth: int = 0) -> Any:  # noqa: ANN401 - arbitrary nested data
    """Redact ``value`` if its key is sensitive, recursing into containers.

    Anything nested deeper than ``MAX_DEPTH`` is redacted.
    """
    if depth > MAX_DEPTH or (field_name and is_sensitive_field(field_name)):
        return REDACTED
    if isinstance(value, dict):
        return {k: sanitize_value(v, str(k), depth + 1) for k, v in value.items()}
    if isinstance(value, list | tuple):
        items = [sanitize_value(item, "", depth + 1) for item in value]
        return tuple(items) if isinstance(value, tuple) else items
    return value


def sanitize_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Redacted copy of ``data``."""
    return {key: sanitize_value(value, key) for key, value in data.items()}


def sanitize_error_context(
    error: Exception, context: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Build the log fields describing ``error``.

    Args:
        error: The exception being handled.
        context: Request details to log alongside it.

    Returns:
        dict[str, Any]: ``error_type``, ``error_message``, the redacted
            ``context`` entries and, when the error carries its own context,
            ``error_details``.
    """
    fields: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        **sanitize_dict(context or {}),
    }
    details = getattr(error, "context", None)
    if isinstance(details, dict) and details:
        fields["error_details"] = sanitize_dict(details)
    return fields
