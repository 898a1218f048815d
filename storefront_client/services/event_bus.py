"""In-process publish/subscribe bus for session, cart and notification signals

Components never hold references to each other's observers: the Session
Manager publishes `session-acquired` / `session-cleared`, the Cart Service
publishes `cart-changed`, and anything mounted in between subscribes for
the lifetime it is active.
"""

import asyncio
import inspect
from enum import Enum
from typing import Any, Callable, Dict, List, Set

from ..utils.logger import get_logger

logger = get_logger(__name__)


class Topic(Enum):
    """Signals carried by the bus"""
    SESSION_ACQUIRED = "session-acquired"   # payload: SessionSnapshot
    SESSION_CLEARED = "session-cleared"     # payload: SessionSnapshot
    CART_CHANGED = "cart-changed"           # payload: CartSnapshot
    NOTIFICATION = "notification"           # payload: Notification


Handler = Callable[[Any], Any]


class Subscription:
    """Unsubscribe capability returned by EventBus.subscribe()"""

    def __init__(self, bus: 'EventBus', topic: Topic, handler: Handler):
        self._bus = bus
        self.topic = topic
        self.handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        """Stop receiving publishes; safe to call more than once"""
        if not self.active:
            return
        self.active = False
        self._bus._remove(self)

    def __enter__(self) -> 'Subscription':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()


class EventBus:
    """Synchronous, ordered, process-local publish/subscribe"""

    def __init__(self):
        self._subscriptions: Dict[Topic, List[Subscription]] = {topic: [] for topic in Topic}
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, topic: Topic, handler: Handler) -> Subscription:
        """
        Register a handler for a topic

        Args:
            topic: Topic to observe
            handler: Callable receiving the payload; coroutine functions are
                scheduled on the running loop

        Returns:
            Subscription whose unsubscribe() tears the registration down
        """
        subscription = Subscription(self, topic, handler)
        self._subscriptions[topic].append(subscription)
        logger.debug(f"[EventBus] Subscribed {_handler_name(handler)} to {topic.value}")
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        subscribers = self._subscriptions[subscription.topic]
        if subscription in subscribers:
            subscribers.remove(subscription)
            logger.debug(f"[EventBus] Unsubscribed {_handler_name(subscription.handler)} "
                         f"from {subscription.topic.value}")

    def publish(self, topic: Topic, payload: Any = None) -> int:
        """
        Deliver payload to every subscriber registered at the time of the call

        Args:
            topic: Topic to publish on
            payload: Value passed unchanged to each handler

        Returns:
            Number of handlers invoked
        """
        # Iterate a copy: unsubscribes during dispatch only affect later publishes
        subscribers = list(self._subscriptions[topic])
        logger.debug(f"[EventBus] Publishing {topic.value} to {len(subscribers)} subscriber(s)")

        delivered = 0
        for subscription in subscribers:
            try:
                result = subscription.handler(payload)
                if inspect.isawaitable(result):
                    self._schedule(topic, subscription.handler, result)
                delivered += 1
            except Exception as e:
                logger.error(f"[EventBus] Handler {_handler_name(subscription.handler)} "
                             f"failed on {topic.value}: {e}", exc_info=True)
        return delivered

    def _schedule(self, topic: Topic, handler: Handler, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"[EventBus] No running loop for async handler "
                         f"{_handler_name(handler)} on {topic.value}; dropped")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = loop.create_task(awaitable)
        self._pending.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._pending.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                logger.error(f"[EventBus] Async handler {_handler_name(handler)} "
                             f"failed on {topic.value}: {error}")

        task.add_done_callback(_done)

    async def drain(self) -> None:
        """Wait until every async handler scheduled so far has finished"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def subscriber_count(self, topic: Topic) -> int:
        return len(self._subscriptions[topic])


def _handler_name(handler: Handler) -> str:
    return getattr(handler, '__qualname__', None) or repr(handler)
