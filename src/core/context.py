"""Correlation IDs scoped to the current request or task.

``RequestContextMiddleware`` sets the ID for each HTTP request. Collection
managers run in the same context, so ``ChangeNotifier.publish`` can stamp the
ID onto every change event and worker logs point back at the request.
"""

import uuid
from contextvars import ContextVar

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


class RequestContext:
    """Accessors for the correlation ID of the running context."""

    @staticmethod
    def set_correlation_id(correlation_id: str) -> None:
        _correlation_id.set(correlation_id)

    @staticmethod
    def get_correlation_id() -> str | None:
        """Current correlation ID, ``None`` outside a request."""
        return _correlation_id.get()

    @staticmethod
    def clear() -> None:
        _correlation_id.set(None)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def generate_request_id() -> str:
    """Identifier for one error response, ``req-<uuid4>``."""
    return f"req-{uuid.uuid4()}"
