"""
Synchronization bus - in-process publish/subscribe between panels.

Delivery is synchronous, in registration order, and best-effort: a handler
that raises is logged and skipped, the rest still receive the message.
Nothing is persisted or retried.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Union

from cartsync.config import CART_CHANNEL
from cartsync.logging import get_logger
from cartsync.models import Notification

logger = get_logger(__name__)

Handler = Callable[[Notification], Any]


class SubscriptionState(str, Enum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBED = "subscribed"


@dataclass(eq=False)
class Subscription:
    """Handle returned by ``SynchronizationBus.subscribe``."""
    channel: str
    handler: Handler
    bus: "SynchronizationBus" = field(repr=False)
    active: bool = True

    def unsubscribe(self) -> None:
        self.bus.unsubscribe(self)


class SynchronizationBus:
    """Topic-less message bus keyed only by channel name."""

    def __init__(self):
        self._subscriptions: dict[str, list[Subscription]] = {}

    def subscribe(self, channel: str, handler: Handler) -> Subscription:
        subscription = Subscription(channel=channel, handler=handler, bus=self)
        self._subscriptions.setdefault(channel, []).append(subscription)
        logger.debug(f"Subscribed handler to {channel}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if not subscription.active:
            return
        subscription.active = False
        handlers = self._subscriptions.get(subscription.channel, [])
        if subscription in handlers:
            handlers.remove(subscription)
        logger.debug(f"Unsubscribed handler from {subscription.channel}")

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscriptions.get(channel, []))

    def publish(self, channel: str, message: Union[Notification, dict]) -> int:
        """
        Deliver a notification to every current subscriber of ``channel``.

        Args:
            channel: Channel name
            message: Notification or its wire mapping

        Returns:
            Number of handlers that returned without raising

        Raises:
            pydantic.ValidationError: payload is not a valid notification
        """
        notification = Notification.parse(message)
        delivered = 0
        # Snapshot so handlers may (un)subscribe during delivery
        for subscription in list(self._subscriptions.get(channel, [])):
            if not subscription.active:
                continue
            try:
                subscription.handler(notification.model_copy())
                delivered += 1
            except Exception as e:
                logger.error(f"Handler failed on {channel}: {e}", exc_info=True)
        return delivered


class ChannelSubscriber:
    """
    One component's subscription to a channel.

    ``subscribe`` is a no-op while already subscribed; ``unsubscribe``
    releases the handle so torn-down components stop receiving messages.
    """

    def __init__(self, bus: SynchronizationBus, channel: str, handler: Handler):
        self.bus = bus
        self.channel = channel
        self.handler = handler
        self._subscription: Optional[Subscription] = None

    @property
    def state(self) -> SubscriptionState:
        if self._subscription is not None and self._subscription.active:
            return SubscriptionState.SUBSCRIBED
        return SubscriptionState.UNSUBSCRIBED

    def subscribe(self) -> bool:
        if self.state is SubscriptionState.SUBSCRIBED:
            return False
        self._subscription = self.bus.subscribe(self.channel, self.handler)
        return True

    def unsubscribe(self) -> bool:
        if self.state is SubscriptionState.UNSUBSCRIBED:
            return False
        self._subscription.unsubscribe()
        self._subscription = None
        return True


# Process-wide bus
_bus: Optional[SynchronizationBus] = None


def get_bus() -> SynchronizationBus:
    """Get the process-wide bus (singleton)."""
    global _bus
    if _bus is None:
        _bus = SynchronizationBus()
    return _bus


def reset_bus() -> None:
    """Drop the process-wide bus; subscribers of the old one are orphaned."""
    global _bus
    _bus = None


__all__ = [
    "CART_CHANNEL",
    "ChannelSubscriber",
    "Handler",
    "Subscription",
    "SubscriptionState",
    "SynchronizationBus",
    "get_bus",
    "reset_bus",
]
