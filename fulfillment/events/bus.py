"""Pure event transport: publish -> queue -> deliver to subscribers.
In-process only. No journal, no retries, no cross-process delivery."""

import asyncio
import logging
import time
import uuid
from collections import defaultdict
from typing import Any, Awaitable, Callable

from fulfillment.events.models import Event

logger = logging.getLogger(__name__)

Subscriber = Callable[[Event], Awaitable[None]]


class EventBus:
    """Async event bus: publish enqueues, dispatch loop delivers to subscribers."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._subscribers: dict[str, list[tuple[Subscriber, str]]] = defaultdict(list)
        self._inflight: set[asyncio.Task[None]] = set()
        self._dispatch_task: asyncio.Task[None] | None = None
        self._stopped = True

    async def publish(
        self,
        topic: str,
        source: str,
        payload: Any,
        correlation_id: str | None = None,
    ) -> str:
        """Enqueue event and return its id. Fire-and-forget for caller."""
        event = Event(
            id=uuid.uuid4().hex,
            topic=topic,
            source=source,
            payload=payload,
            created_at=time.time(),
            correlation_id=correlation_id,
        )
        self._queue.put_nowait(event)
        return event.id

    def subscribe(self, topic: str, handler: Subscriber, subscriber_id: str) -> None:
        """Register handler in memory. Called at startup."""
        self._subscribers[topic].append((handler, subscriber_id))

    def unsubscribe(self, topic: str, subscriber_id: str) -> None:
        """Remove every handler registered by subscriber_id for topic."""
        remaining = [s for s in self._subscribers.get(topic, []) if s[1] != subscriber_id]
        if remaining:
            self._subscribers[topic] = remaining
        else:
            self._subscribers.pop(topic, None)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    @property
    def is_running(self) -> bool:
        return self._dispatch_task is not None and not self._dispatch_task.done()

    async def start(self) -> None:
        """Start the dispatch loop as an asyncio Task."""
        if self.is_running:
            return
        self._stopped = False
        self._dispatch_task = asyncio.create_task(self._dispatch_loop())
        logger.info("EventBus dispatch loop started")

    async def stop(self) -> None:
        """Graceful shutdown: deliver what is queued, wait for in-flight deliveries."""
        if self._dispatch_task is None:
            return
        await self.wait_idle()
        self._stopped = True
        self._dispatch_task.cancel()
        try:
            await self._dispatch_task
        except asyncio.CancelledError:
            pass
        self._dispatch_task = None
        logger.info("EventBus stopped")

    async def wait_idle(self) -> None:
        """Block until the queue is drained and no delivery is running."""
        while True:
            await self._queue.join()
            if not self._inflight:
                return
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _dispatch_loop(self) -> None:
        """Main loop: take the next event, deliver it in its own task."""
        while not self._stopped:
            event = await self._queue.get()
            task = asyncio.create_task(self._deliver(event))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            # Mark done only after the delivery task is registered so wait_idle sees it.
            self._queue.task_done()

    async def _deliver(self, event: Event) -> None:
        """Deliver event to subscribers in subscription order; one failure never stops the rest."""
        handlers = list(self._subscribers.get(event.topic, []))
        if not handlers:
            logger.debug("EventBus: no subscribers for %s/%s", event.topic, event.id)
            return

        for handler, subscriber_id in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.exception(
                    "EventBus subscriber %s failed for event %s/%s: %s",
                    subscriber_id,
                    event.topic,
                    event.id,
                    e,
                )
