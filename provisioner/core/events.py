"""Per-deployment progress channel.

Each deployment id is a topic. Every subscriber gets its own queue and
its own copy of each event published after it subscribed; there is no
replay, so a late subscriber reads the record from the store first. A
topic disappears when its last subscriber leaves.

Queues are bounded. A subscriber that stops reading loses its oldest
events first; the terminal event is always the newest, so it is kept.
"""

import asyncio
from collections.abc import AsyncIterator
from functools import lru_cache

from provisioner.config import settings
from provisioner.models.deployment import ProgressEvent
from provisioner.utils.logging import get_logger

logger = get_logger("events")


class Subscription:
    """One consumer's view of a deployment's events.

    Usable as an async context manager (unsubscribes on exit) and as an
    async iterator that stops after the deployment's terminal event.
    """

    def __init__(self, channel: "ProgressChannel", deployment_id: str, maxsize: int = 256):
        self.channel = channel
        self.deployment_id = deployment_id
        self.queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = 0

    async def get(self, timeout: float | None = None) -> ProgressEvent | None:
        """Next event, or None if ``timeout`` seconds pass first."""
        if timeout is None:
            return await self.queue.get()
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def deliver(self, event: ProgressEvent) -> None:
        """Queue an event without blocking the publisher."""
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
            logger.warning(
                "events.dropped",
                deployment_id=self.deployment_id,
                dropped=self.dropped,
            )
        self.queue.put_nowait(event)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.channel.unsubscribe(self)

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self.queue.get()
            yield event
            if event.is_terminal:
                return


class ProgressChannel:
    """Fan-out of progress events to subscribers, keyed by deployment id."""

    def __init__(self, queue_size: int = 256):
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self.queue_size = queue_size
        self._topics: dict[str, set[Subscription]] = {}

    def subscribe(self, deployment_id: str) -> Subscription:
        """Start receiving events for a deployment."""
        subscription = Subscription(self, deployment_id, self.queue_size)
        self._topics.setdefault(deployment_id, set()).add(subscription)
        logger.debug(
            "events.subscribed",
            deployment_id=deployment_id,
            subscribers=len(self._topics[deployment_id]),
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Stop delivering to a subscription, dropping the topic if it was the last."""
        subscribers = self._topics.get(subscription.deployment_id)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        subscription.closed = True
        if not subscribers:
            del self._topics[subscription.deployment_id]
            logger.debug("events.topic.evicted", deployment_id=subscription.deployment_id)

    async def publish(self, event: ProgressEvent) -> int:
        """Deliver an event to every current subscriber. Returns how many got it."""
        subscribers = self._topics.get(event.deployment_id)
        if not subscribers:
            return 0
        for subscription in list(subscribers):
            subscription.deliver(event.model_copy(deep=True))
        return len(subscribers)

    def subscriber_count(self, deployment_id: str) -> int:
        return len(self._topics.get(deployment_id, ()))

    def __contains__(self, deployment_id: str) -> bool:
        return deployment_id in self._topics


@lru_cache
def get_progress_channel() -> ProgressChannel:
    """Get the progress channel singleton."""
    return ProgressChannel(queue_size=settings.progress_queue_size)
