"""Asynchronous change notification for collection mutations.

Mutating operations hand a ``ChangeEvent`` to the ``ChangeNotifier`` and return
without waiting for delivery. The notifier owns a bounded queue drained by a
fixed pool of worker tasks, so a slow or failing broker never stalls the
caller and the number of in-flight dispatches stays bounded.

Delivery policy:
- **Best effort**: Broker failures are logged and never reach the caller
- **Bounded**: When the queue is full the event is dropped with a warning
- **Ordered per worker**: Events are taken in publish order; with several
  workers, delivery order across events is not guaranteed
- **Graceful stop**: ``stop`` drains queued events within the configured
  shutdown timeout, then cancels the workers

The module also holds the process-wide notifier used by the API, managed the
same way the database engine is.
"""

import asyncio
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from src.core.config import MessagingConfig, get_settings
from src.core.context import RequestContext
from src.infrastructure.database.identity import get_identity
from src.infrastructure.messaging.broker import LoggingBroker, MessageBroker

type TopicBuilder = Callable[[Any], list[str]]


def topic_builder(resource: str, action: str) -> TopicBuilder:
    """Build a topic function for one resource and action.

    The returned function maps a record to the resource-wide topic followed by
    the record-specific one, e.g. ``feedback.create`` and
    ``feedback.create.<id>``.

    Example:
        >>> created = topic_builder("feedback", "create")
        >>> created(feedback)
        ['feedback.create', 'feedback.create.8f14e45f-...']
    """
    base = f"{resource}.{action}"

    def build(record: Any) -> list[str]:  # noqa: ANN401 - any Identifiable record
        return [base, f"{base}.{get_identity(record)}"]

    return build


@dataclass(frozen=True)
class ChangeEvent:
    """A change to deliver: target topics and the record snapshot."""

    topics: tuple[str, ...]
    payload: Any
    correlation_id: str | None = field(default=None)


class ChangeNotifier:
    """Bounded, non-blocking dispatcher of change events.

    Workers are started lazily on the first publish (or explicitly with
    ``start``) and bound to the running event loop. Once stopped, the
    notifier drops new events until ``start`` is called again.

    Args:
        broker: Destination of every event.
        worker_count: Number of concurrent dispatch tasks.
        queue_size: Maximum number of queued events.
        shutdown_timeout: Seconds ``stop`` waits for the queue to drain.
    """

    def __init__(
        self,
        broker: MessageBroker,
        *,
        worker_count: int = 4,
        queue_size: int = 1000,
        shutdown_timeout: float = 5.0,
    ) -> None:
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self.broker = broker
        self.worker_count = worker_count
        self.queue_size = queue_size
        self.shutdown_timeout = shutdown_timeout
        self.dropped = 0
        self._queue: asyncio.Queue[ChangeEvent] | None = None
        self._workers: list[asyncio.Task[None]] = []
        self._stopped = False

    @classmethod
    def from_config(
        cls, broker: MessageBroker, config: MessagingConfig
    ) -> "ChangeNotifier":
        """Create a notifier sized from messaging configuration."""
        return cls(
            broker,
            worker_count=config.worker_count,
            queue_size=config.queue_size,
            shutdown_timeout=config.shutdown_timeout,
        )

    @property
    def is_running(self) -> bool:
        """Whether worker tasks are active."""
        return bool(self._workers)

    @property
    def pending(self) -> int:
        """Number of events queued but not yet taken by a worker."""
        return 0 if self._queue is None else self._queue.qsize()

    async def start(self) -> None:
        """Start the worker tasks if they are not running."""
        self._stopped = False
        self._ensure_started()

    def _ensure_started(self) -> asyncio.Queue[ChangeEvent]:
        if self._queue is not None and self._workers:
            return self._queue

        queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=self.queue_size)
        self._queue = queue
        self._workers = [
            asyncio.create_task(self._worker(queue), name=f"change-notifier-{i}")
            for i in range(self.worker_count)
        ]
        logger.info(
            "Started change notifier - workers: {}, queue_size: {}",
            self.worker_count,
            self.queue_size,
        )
        return queue

    def publish(self, topics: Sequence[str], payload: Any) -> bool:  # noqa: ANN401 - any JSON-serializable payload
        """Queue an event for delivery without waiting for it.

        Must be called from a running event loop.

        Returns:
            bool: ``True`` if the event was queued, ``False`` if it was
                dropped (no topics, queue full or notifier stopped).
        """
        if not topics:
            logger.debug("Skipping change event without topics")
            return False
        if self._stopped:
            self.dropped += 1
            logger.warning(
                "Change notifier stopped, dropping event for {}",
                list(topics),
                dropped=self.dropped,
            )
            return False

        queue = self._ensure_started()
        event = ChangeEvent(
            topics=tuple(topics),
            payload=payload,
            correlation_id=RequestContext.get_correlation_id(),
        )
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Change event queue full, dropping event for {}",
                list(event.topics),
                queue_size=self.queue_size,
                dropped=self.dropped,
            )
            return False
        return True

    async def _worker(self, queue: asyncio.Queue[ChangeEvent]) -> None:
        while True:
            event = await queue.get()
            try:
                await self._deliver(event)
            finally:
                queue.task_done()

    async def _deliver(self, event: ChangeEvent) -> None:
        with logger.contextualize(correlation_id=event.correlation_id):
            try:
                await self.broker.dispatch(list(event.topics), event.payload)
            except Exception:  # noqa: BLE001 - delivery failures never reach callers
                logger.opt(exception=True).error(
                    "Failed to dispatch change event to {}",
                    list(event.topics),
                    topics=list(event.topics),
                )
            else:
                logger.debug("Dispatched change event to {}", list(event.topics))

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self, timeout: float | None = None) -> None:
        """Drain the queue, then cancel the worker tasks.

        Events published afterwards are dropped until ``start`` is called.

        Args:
            timeout: Seconds to wait for queued events; defaults to
                ``shutdown_timeout``.
        """
        self._stopped = True
        if self._queue is None or not self._workers:
            return

        wait = self.shutdown_timeout if timeout is None else timeout
        try:
            await asyncio.wait_for(self._queue.join(), wait)
        except TimeoutError:
            logger.warning(
                "Change notifier stopped with {} undelivered events",
                self._queue.qsize(),
            )

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._queue = None
        logger.info("Change notifier stopped")


class _MessagingManager:
    """Internal holder of the process-wide broker and notifier."""

    def __init__(self) -> None:
        self._broker: MessageBroker | None = None
        self._notifier: ChangeNotifier | None = None
        self._lock = threading.Lock()

    def configure(self, broker: MessageBroker) -> None:
        """Use ``broker`` for notifiers created from now on."""
        with self._lock:
            self._broker = broker

    def get_notifier(self) -> ChangeNotifier:
        """Get or create the notifier.

        Returns:
            ChangeNotifier: The notifier instance.
        """
        if self._notifier is None:
            with self._lock:
                if self._notifier is None:
                    broker = self._broker or LoggingBroker()
                    self._notifier = ChangeNotifier.from_config(
                        broker, get_settings().messaging_config
                    )
                    logger.info(
                        "Created change notifier with {}", type(broker).__name__
                    )
        return self._notifier

    async def close(self) -> None:
        """Stop the notifier, flushing queued events."""
        if self._notifier is not None:
            await self._notifier.stop()
            self._notifier = None

    def reset(self) -> None:
        """Reset the manager state. Used primarily for testing."""
        self._broker = None
        self._notifier = None


_messaging_manager = _MessagingManager()


def configure_broker(broker: MessageBroker) -> None:
    """Set the broker used by the global notifier."""
    _messaging_manager.configure(broker)


def get_notifier() -> ChangeNotifier:
    """Get or create the global change notifier."""
    return _messaging_manager.get_notifier()


async def close_messaging() -> None:
    """Stop the global notifier.

    Call during application shutdown, before the database is closed.
    """
    await _messaging_manager.close()
