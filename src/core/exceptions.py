"""Errors raised by the collection layer and translated at the HTTP edge.

- **ValidationError**: An inbound payload failed binding or constraints
- **NotFoundError**: A point lookup, find_one, patch or delete matched nothing
- **IdentityError**: A record without a usable identity reached an update or delete
- **PersistenceError**: The store failed; the driver error is kept as ``cause``

Every error carries an ``ErrorCode``, a ``Severity`` that decides whether it
is logged as a warning or alerted on, and a ``context`` dict that is
sanitized before it is logged or returned.

Upsert is the only operation that recovers from ``NotFoundError``. Change
notification failures never surface as exceptions.
"""

import hashlib
import traceback
from enum import Enum
from typing import Any, ClassVar

FINGERPRINT_FRAMES = 5


class ErrorCode(Enum):
    """Machine-readable error identifiers sent in ``ErrorResponse.error_code``."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    IDENTITY_ERROR = "IDENTITY_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"


class Severity(Enum):
    LOW = "LOW"
    """Caller mistakes: bad payloads, unknown identities."""

    MEDIUM = "MEDIUM"
    """Programming mistakes that do not endanger stored data."""

    HIGH = "HIGH"
    """Store failures; the operation did not take effect."""

    CRITICAL = "CRITICAL"


class HorizonError(Exception):
    """Base of all Horizon errors.

    Args:
        error_code: An ``ErrorCode`` or a custom code string.
        message: Human-readable description.
        severity: Drives log level and alerting.
        context: Structured details; sanitized before leaving the process.
        cause: The exception this error wraps, also set as ``__cause__``.
    """

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

        # Without the frame of this __init__
        self.stack_trace = traceback.format_stack()[:-1]
        self.fingerprint = self._fingerprint()

    def _fingerprint(self) -> str:
        """Hash of the error type, code and the project frames that raised it."""
        parts = [type(self).__name__, self.error_code]
        for frame in self.stack_trace[-FINGERPRINT_FRAMES:]:
            if "src/" in frame and "site-packages" not in frame:
                parts.append(frame.strip().splitlines()[0])
        return hashlib.sha256(":".join(parts).encode()).hexdigest()[:16]

    @property
    def is_expected(self) -> bool:
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    @property
    def should_alert(self) -> bool:
        return self.severity in (Severity.HIGH, Severity.CRITICAL)

    def __str__(self) -> str:
        text = f"[{self.error_code}] {self.message}"
        return f"{text}: {self.cause}" if self.cause is not None else text

    def __repr__(self) -> str:
        context = f", context={self.context}" if self.context else ""
        return (
            f"{type(self).__name__}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context})"
        )


class _CollectionError(HorizonError):
    """Error with a fixed default code and severity per subclass."""

    default_code: ClassVar[ErrorCode]
    severity_level: ClassVar[Severity]

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            error_code or self.default_code,
            message,
            self.severity_level,
            context,
            cause,
        )


class ValidationError(_CollectionError):
    """Payload rejected; ``context["validation_errors"]`` maps fields to messages."""

    default_code = ErrorCode.VALIDATION_ERROR
    severity_level = Severity.LOW


class NotFoundError(_CollectionError):
    default_code = ErrorCode.NOT_FOUND
    severity_level = Severity.LOW


class IdentityError(_CollectionError):
    """The record's identity is missing or nil."""

    default_code = ErrorCode.IDENTITY_ERROR
    severity_level = Severity.MEDIUM


class PersistenceError(_CollectionError):
    """The store failed an operation, e.g. "failed to create Feedback"."""

    default_code = ErrorCode.PERSISTENCE_ERROR
    severity_level = Severity.HIGH
