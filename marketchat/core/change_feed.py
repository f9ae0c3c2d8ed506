"""
In-process change feed: fan row-level change events out to subscribers.

Subscribers join a named channel scoped to one table and receive every
INSERT/UPDATE/DELETE event for that table in publish order. Delivery is
at-most-once; consumers that need consistency re-read the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from marketchat.infra.logging_config import get_logger
from marketchat.schemas.change_event import ChangeEvent

logger = get_logger("change_feed")

ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]


@dataclass(eq=False)
class Subscription:
    channel: str
    table: str
    handler: ChangeHandler
    _feed: Optional["ChangeFeed"] = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self._feed is not None

    def unsubscribe(self) -> None:
        """Release the channel. Safe to call more than once."""
        if self._feed is not None:
            self._feed._remove(self)
            self._feed = None


class ChangeFeed:
    def __init__(self) -> None:
        self._subscriptions: List[Subscription] = []

    def subscribe(self, channel: str, table: str, handler: ChangeHandler) -> Subscription:
        sub = Subscription(channel=channel, table=table, handler=handler, _feed=self)
        self._subscriptions.append(sub)
        logger.debug("Subscribed %s to table %s", channel, table)
        return sub

    def subscriptions(self, table: Optional[str] = None) -> List[Subscription]:
        if table is None:
            return list(self._subscriptions)
        return [s for s in self._subscriptions if s.table == table]

    async def publish(self, event: ChangeEvent) -> int:
        """Deliver event to every subscriber of its table. Returns the delivery count."""
        delivered = 0
        # Snapshot: handlers may unsubscribe (or subscribe) while we iterate
        for sub in list(self._subscriptions):
            if sub.table != event.table or not sub.active:
                continue
            try:
                await sub.handler(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "Change handler on channel %s failed for %s event",
                    sub.channel,
                    event.event_type.value,
                )
        return delivered

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug("Unsubscribed %s", subscription.channel)
