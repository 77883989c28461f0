"""
In-process publish/subscribe event bus.

Listeners subscribe to string addresses. Publishing delivers a message to
every listener currently subscribed to the address.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Any]


class Subscription:
    """Handle for one listener registration."""

    def __init__(self, bus: "EventBus", address: str, listener: Listener):
        self._bus = bus
        self.address = address
        self.listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        """Stop delivering messages to the listener. Safe to call twice."""
        if self.active:
            self.active = False
            self._bus._remove(self)


class EventBus:
    """
    Event bus for lifecycle notifications and completion signals.

    Delivery is synchronous on the publishing thread. A listener returning
    an awaitable has it scheduled as a task. Listener errors are logged and
    never reach the publisher.
    """

    def __init__(self):
        """Initialize the event bus."""
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)
        self._pending: set[asyncio.Future] = set()

    def subscribe(self, address: str, listener: Listener) -> Subscription:
        """
        Register a listener for an address.

        Args:
            address: The address to listen on.
            listener: Callable invoked with each published message.

        Returns:
            Subscription that unregisters the listener.
        """
        subscription = Subscription(self, address, listener)
        self._subscriptions[address].append(subscription)
        return subscription

    def publish(self, address: str, message: Any) -> int:
        """
        Deliver a message to every listener on an address.

        Args:
            address: The target address.
            message: The payload.

        Returns:
            Number of listeners the message was delivered to.
        """
        subscriptions = list(self._subscriptions.get(address, ()))

        for subscription in subscriptions:
            try:
                result = subscription.listener(message)
                if inspect.isawaitable(result):
                    future = asyncio.ensure_future(result)
                    self._pending.add(future)
                    future.add_done_callback(self._listener_done)
            except Exception:
                logger.exception(
                    "Event listener raised",
                    extra={"address": address},
                )

        return len(subscriptions)

    def listener_count(self, address: str | None = None) -> int:
        """
        Get the number of registered listeners.

        Args:
            address: Optional address filter.

        Returns:
            Number of listeners.
        """
        if address is not None:
            return len(self._subscriptions.get(address, []))
        return sum(len(subs) for subs in self._subscriptions.values())

    def _listener_done(self, future: asyncio.Future) -> None:
        self._pending.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.error(
                "Async event listener raised",
                exc_info=future.exception(),
            )

    def _remove(self, subscription: Subscription) -> None:
        subscriptions = self._subscriptions.get(subscription.address)
        if subscriptions is None:
            return
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        if not subscriptions:
            del self._subscriptions[subscription.address]
