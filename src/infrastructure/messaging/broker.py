"""Messaging collaborator contract and bundled broker implementations.

The collection layer only needs fire-and-forget, multi-topic fan-out:
``await broker.dispatch(topics, payload)``. Real transports (NATS, Redis,
Kafka) live outside this package and only have to satisfy ``MessageBroker``.

Bundled implementations:
- **InMemoryBroker**: Records every published message (tests, local runs)
- **LoggingBroker**: Logs each dispatch (default when no transport is wired)
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol, cast, runtime_checkable

import orjson
from loguru import logger
from pydantic import BaseModel


@runtime_checkable
class MessageBroker(Protocol):
    """Multi-topic publish used for change notifications."""

    async def dispatch(self, topics: Sequence[str], payload: Any) -> None:  # noqa: ANN401 - any JSON-serializable payload
        """Publish ``payload`` to every topic in ``topics``."""
        ...


def encode_payload(payload: Any) -> bytes:  # noqa: ANN401 - any JSON-serializable payload
    """Serialize a change payload to JSON bytes.

    Pydantic models are dumped in JSON mode, by alias, first; orjson handles
    UUIDs and datetimes natively.

    Raises:
        orjson.JSONEncodeError: If the payload is not serializable.
    """
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json", by_alias=True)
    return orjson.dumps(payload)


@dataclass(frozen=True)
class PublishedMessage:
    """A message recorded by ``InMemoryBroker``."""

    topic: str
    data: bytes

    def json(self) -> Any:  # noqa: ANN401 - decoded JSON value
        """Decode the message body."""
        return orjson.loads(self.data)


class InMemoryBroker:
    """Broker that keeps published messages in memory.

    Each dispatch encodes the payload once and appends one message per topic,
    preserving topic order.

    Example:
        >>> broker = InMemoryBroker()
        >>> await broker.dispatch(["feedback.create"], {"id": "..."})
        >>> broker.topics()
        ['feedback.create']
    """

    def __init__(self) -> None:
        self.messages: list[PublishedMessage] = []
        self._lock = asyncio.Lock()
        self._published = asyncio.Condition(self._lock)

    async def dispatch(self, topics: Sequence[str], payload: Any) -> None:  # noqa: ANN401 - any JSON-serializable payload
        """Record ``payload`` under every topic."""
        data = encode_payload(payload)
        async with self._published:
            self.messages.extend(PublishedMessage(topic, data) for topic in topics)
            self._published.notify_all()
        logger.debug("Recorded message for topics {}", list(topics))

    async def wait_for(self, topic: str, timeout: float = 1.0) -> PublishedMessage:
        """Wait until a message for ``topic`` has been recorded.

        Raises:
            TimeoutError: If no such message arrives within ``timeout`` seconds.
        """

        def _find() -> PublishedMessage | None:
            return next((m for m in self.messages if m.topic == topic), None)

        async with self._published:
            message = await asyncio.wait_for(self._published.wait_for(_find), timeout)
        return cast("PublishedMessage", message)

    def topics(self) -> list[str]:
        """Topics of all recorded messages, in publish order."""
        return [message.topic for message in self.messages]

    def for_topic(self, topic: str) -> list[PublishedMessage]:
        """All recorded messages for ``topic``."""
        return [message for message in self.messages if message.topic == topic]

    def clear(self) -> None:
        """Forget every recorded message."""
        self.messages.clear()


class LoggingBroker:
    """Broker that only logs what would have been published."""

    async def dispatch(self, topics: Sequence[str], payload: Any) -> None:  # noqa: ANN401 - any JSON-serializable payload
        """Log the topics and encoded payload size."""
        data = encode_payload(payload)
        logger.info(
            "Change event for topics {}",
            list(topics),
            payload_bytes=len(data),
        )
