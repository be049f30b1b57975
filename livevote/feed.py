"""In-process change feed of rating inserts and its group-scoped listener."""

import logging
from collections import defaultdict
from typing import Any

from .models import RatingRecord
from .ports import ChangeFeedSource, OnInsert

logger = logging.getLogger(__name__)


class SubscriptionError(RuntimeError):
    """Raised when a change-feed subscription cannot be opened."""

    def __init__(self, message: str, group_id: str | None = None):
        super().__init__(message)
        self.group_id = group_id


class FeedSubscription:
    """Open subscription on a ChangeFeed. ``close()`` is idempotent."""

    def __init__(self, feed: "ChangeFeed", group_id: str, on_insert: OnInsert) -> None:
        self._feed = feed
        self.group_id = group_id
        self.on_insert = on_insert
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._feed._remove(self)

    def deliver(self, record: RatingRecord) -> None:
        if self.closed:
            return
        self.on_insert(record)


class ChangeFeed:
    """Push broker that fans rating inserts out to group subscriptions.

    Delivery is synchronous and in publish order. A subscriber that raises
    is logged and does not prevent delivery to the others.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[FeedSubscription]] = defaultdict(list)

    def subscribe(self, group_id: str, on_insert: OnInsert) -> FeedSubscription:
        subscription = FeedSubscription(self, group_id, on_insert)
        self._subscriptions[group_id].append(subscription)
        logger.debug("Opened feed subscription. GroupId: %s", group_id)
        return subscription

    def publish(self, record: RatingRecord) -> int:
        """Deliver a record to every open subscription for its group.

        Returns:
            Number of subscriptions the record was delivered to
        """
        delivered = 0
        for subscription in list(self._subscriptions.get(record.group_id, ())):
            if subscription.closed:
                continue
            try:
                subscription.deliver(record)
                delivered += 1
            except Exception:
                logger.exception(
                    "Feed subscriber failed. GroupId: %s, RecordId: %s",
                    record.group_id, record.id,
                )
        return delivered

    def subscriber_count(self, group_id: str) -> int:
        return len(self._subscriptions.get(group_id, ()))

    def _remove(self, subscription: FeedSubscription) -> None:
        subscriptions = self._subscriptions.get(subscription.group_id)
        if not subscriptions:
            return
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        if not subscriptions:
            del self._subscriptions[subscription.group_id]
        logger.debug("Closed feed subscription. GroupId: %s", subscription.group_id)


class ChangeFeedListener:
    """Holds at most one subscription, scoped to the active group.

    Switching groups closes the old subscription before the new one is
    opened, so two groups are never live at once.
    """

    def __init__(self, feed: ChangeFeedSource, on_notification: OnInsert) -> None:
        self._feed = feed
        self._on_notification = on_notification
        self._subscription: Any = None
        self._group_id: str | None = None

    @property
    def group_id(self) -> str | None:
        return self._group_id

    @property
    def is_listening(self) -> bool:
        return self._subscription is not None

    def listen(self, group_id: str) -> None:
        """Subscribe to a group's inserts, replacing any previous subscription.

        Raises:
            SubscriptionError: The feed refused the subscription. Not retried.
        """
        if self._subscription is not None and self._group_id == group_id:
            return

        self.close()

        try:
            self._subscription = self._feed.subscribe(group_id, self._on_notification)
        except Exception as e:
            logger.error(
                "Failed to subscribe to change feed. GroupId: %s, Error: %s", group_id, e
            )
            raise SubscriptionError(str(e), group_id=group_id) from e

        self._group_id = group_id
        logger.info("Listening for votes. GroupId: %s", group_id)

    def close(self) -> None:
        if self._subscription is None:
            return
        subscription, self._subscription = self._subscription, None
        group_id, self._group_id = self._group_id, None
        subscription.close()
        logger.info("Stopped listening for votes. GroupId: %s", group_id)

    def __enter__(self) -> "ChangeFeedListener":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
