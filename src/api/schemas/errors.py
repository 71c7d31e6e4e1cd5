"""Body of every error response.

Validation failures list their messages per field under
``details["validation_errors"]``, e.g.
``{"validation_errors": {"email": ["value is not a valid email address"]}}``.
Malformed JSON is reported under the ``body`` key.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


class ServiceInfo(BaseModel):
    """Which deployment produced the error."""

    name: str = Field(examples=["Horizon"])
    version: str = Field(examples=["0.1.0"])
    environment: str = Field(examples=["development", "production"])


class ErrorResponse(BaseModel):
    error_code: str = Field(
        description="Stable identifier of the error kind",
        examples=["VALIDATION_ERROR", "NOT_FOUND", "PERSISTENCE_ERROR"],
    )
    message: str = Field(examples=["invalid Feedback payload", "Feedback not found"])
    details: dict[str, Any] | None = Field(
        default=None, description="Sanitized error context"
    )
    correlation_id: str | None = Field(
        default=None, description="Echo of the request's X-Correlation-ID"
    )
    request_id: str | None = Field(default=None, examples=["req-550e8400-..."])
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    severity: str | None = Field(default=None, examples=["LOW", "HIGH"])
    service_info: ServiceInfo | None = None
    debug_info: dict[str, Any] | None = Field(
        default=None,
        description="Stack trace and cause; development environment only",
    )
