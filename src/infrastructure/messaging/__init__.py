"""Change notification messaging.

- **broker**: ``MessageBroker`` contract plus in-memory and logging brokers
- **notifier**: Bounded, non-blocking ``ChangeNotifier`` and topic helpers
"""

from src.infrastructure.messaging.broker import (
    InMemoryBroker,
    LoggingBroker,
    MessageBroker,
    PublishedMessage,
    encode_payload,
)
from src.infrastructure.messaging.notifier import (
    ChangeEvent,
    ChangeNotifier,
    close_messaging,
    configure_broker,
    get_notifier,
    topic_builder,
)

__all__ = [
    "ChangeEvent",
    "ChangeNotifier",
    "InMemoryBroker",
    "LoggingBroker",
    "MessageBroker",
    "PublishedMessage",
    "close_messaging",
    "configure_broker",
    "encode_payload",
    "get_notifier",
    "topic_builder",
]
