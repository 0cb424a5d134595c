"""In-process change feed publishing committed row changes per channel.

SQLAlchemy session hooks collect inserted, updated and deleted rows of the
tracked models during each flush and hand them to the :class:`ChangeFeed`
once the enclosing transaction commits. Rolled-back work is discarded, so a
subscriber never sees a row that was not persisted.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import AsyncIterator
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import event, inspect, select
from sqlalchemy.orm import Session

from wanderbuddy.core.channels import (
    EVENT_DELETE,
    EVENT_INSERT,
    EVENT_SUBSCRIBED,
    EVENT_UPDATE,
    TABLE_ACTIVITIES,
    TABLE_ACTIVITY_RESPONSES,
    TABLE_JOIN_REQUESTS,
    TABLE_MESSAGES,
    TABLE_NOTIFICATIONS,
    meetup_channel,
    user_channel,
)
from wanderbuddy.core.errors import AuthorizationError
from wanderbuddy.core.settings import settings
from wanderbuddy.models import Activity, ActivityResponse, JoinRequest, Meetup, Message, Notification

logger = logging.getLogger(__name__)

_PENDING_KEY = "wanderbuddy.pending_changes"

TRACKED_TABLES: dict[type, str] = {
    Message: TABLE_MESSAGES,
    Activity: TABLE_ACTIVITIES,
    ActivityResponse: TABLE_ACTIVITY_RESPONSES,
    JoinRequest: TABLE_JOIN_REQUESTS,
    Notification: TABLE_NOTIFICATIONS,
}


_REVOKED: dict[str, Any] = {"event": "REVOKED"}


def subscribed_event(channel: str) -> dict[str, Any]:
    return {"event": EVENT_SUBSCRIBED, "channel": channel}


class SubscriptionRevoked(AuthorizationError):
    """The subscriber lost access to the channel after subscribing."""


class Subscription:
    """One consumer's bounded queue on a single channel."""

    def __init__(
        self,
        feed: ChangeFeed,
        channel: str,
        loop: asyncio.AbstractEventLoop,
        maxsize: int,
        user_id: str | None = None,
    ) -> None:
        self.feed = feed
        self.channel = channel
        self.loop = loop
        self.user_id = user_id
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self.revoked = False

    def _offer(self, change: dict[str, Any]) -> None:
        try:
            self.queue.put_nowait(change)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Dropping %s event on %s: subscriber queue full",
                change.get("event"),
                self.channel,
            )

    def _revoke(self) -> None:
        # Queued changes were authorized; the revocation must still get through.
        while self.queue.full():
            self.queue.get_nowait()
        self.queue.put_nowait(_REVOKED)

    async def get(self) -> dict[str, Any]:
        change = await self.queue.get()
        if change is _REVOKED:
            self.revoked = True
            raise SubscriptionRevoked("Unable to subscribe")
        return change

    def close(self) -> None:
        self.feed.unsubscribe(self)

    async def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        while True:
            yield await self.get()


class ChangeFeed:
    """Fan committed change events out to the subscribers of each channel."""

    def __init__(self, queue_size: int | None = None) -> None:
        self.queue_size = queue_size or settings.realtime_queue_size
        self._subscribers: dict[str, set[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, channel: str, user_id: str | None = None) -> Subscription:
        """Register a subscriber bound to the running event loop.

        ``user_id`` names the profile the channel was authorized for, so the
        subscription can be revoked when that profile loses access.
        """
        loop = asyncio.get_running_loop()
        subscription = Subscription(self, channel, loop, self.queue_size, user_id=user_id)
        with self._lock:
            self._subscribers.setdefault(channel, set()).add(subscription)
        logger.debug("Subscribed to %s", channel)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.channel)
            if subscribers is None:
                return
            subscribers.discard(subscription)
            if not subscribers:
                del self._subscribers[subscription.channel]

    def revoke(self, channel: str, user_id: str) -> int:
        """End every subscription ``user_id`` holds on ``channel``.

        The subscriptions stop receiving changes at once; their consumers see
        :class:`SubscriptionRevoked` on the next read.
        """
        with self._lock:
            subscribers = self._subscribers.get(channel, set())
            revoked = [sub for sub in subscribers if sub.user_id == user_id]
            subscribers.difference_update(revoked)
            if not subscribers:
                self._subscribers.pop(channel, None)
        for subscription in revoked:
            try:
                subscription.loop.call_soon_threadsafe(subscription._revoke)
            except RuntimeError:
                logger.debug("Subscriber loop on %s already closed", channel)
        if revoked:
            logger.info("Revoked %d subscription(s) of %s on %s", len(revoked), user_id, channel)
        return len(revoked)

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, ()))

    def publish(self, change: dict[str, Any]) -> None:
        """Deliver a change to every subscriber of its channel.

        Safe to call from any thread; delivery is scheduled on each
        subscriber's own loop.
        """
        with self._lock:
            targets = list(self._subscribers.get(change["channel"], ()))
        for subscription in targets:
            try:
                subscription.loop.call_soon_threadsafe(subscription._offer, change)
            except RuntimeError:
                # Loop already closed; the consumer is gone.
                self.unsubscribe(subscription)


change_feed = ChangeFeed()


def get_change_feed() -> ChangeFeed:
    return change_feed


def _row_snapshot(obj: Any) -> dict[str, Any]:
    mapper = inspect(obj).mapper
    values = {attr.key: getattr(obj, attr.key) for attr in mapper.column_attrs}
    return jsonable_encoder(values)


def _response_meetup_id(session: Session, response: ActivityResponse) -> int | None:
    activity = response.__dict__.get("activity")
    if activity is None:
        for candidate in session.deleted:
            if isinstance(candidate, Activity) and candidate.id == response.activity_id:
                activity = candidate
                break
    if activity is not None:
        return activity.meetup_id
    return session.execute(
        select(Activity.meetup_id).where(Activity.id == response.activity_id)
    ).scalar_one_or_none()


def _request_creator_id(session: Session, request: JoinRequest) -> str | None:
    meetup = request.__dict__.get("meetup")
    if meetup is None:
        for candidate in session.deleted:
            if isinstance(candidate, Meetup) and candidate.id == request.meetup_id:
                meetup = candidate
                break
    if meetup is not None:
        return meetup.creator_id
    return session.execute(
        select(Meetup.creator_id).where(Meetup.id == request.meetup_id)
    ).scalar_one_or_none()


def _channels_of(session: Session, obj: Any) -> list[str]:
    if isinstance(obj, ActivityResponse):
        meetup_id = _response_meetup_id(session, obj)
        return [meetup_channel(meetup_id)] if meetup_id is not None else []
    if isinstance(obj, JoinRequest):
        # Only the requester and the deciding creator may see a request.
        channels = [user_channel(obj.user_id)]
        creator_id = _request_creator_id(session, obj)
        if creator_id is not None and creator_id != obj.user_id:
            channels.append(user_channel(creator_id))
        return channels
    return [obj.channel_key]


def _build_changes(session: Session, kind: str, obj: Any) -> list[dict[str, Any]]:
    channels = _channels_of(session, obj)
    if not channels:
        logger.debug("No channel for %s row %s", type(obj).__name__, obj.id)
        return []
    table = TRACKED_TABLES[type(obj)]
    if kind == EVENT_DELETE:
        new, old = None, {"id": obj.id}
    else:
        new = _row_snapshot(obj)
        old = {"id": obj.id} if kind == EVENT_UPDATE else None
    return [
        {"event": kind, "table": table, "channel": channel, "new": new, "old": old}
        for channel in channels
    ]


@event.listens_for(Session, "after_flush")
def _collect_changes(session: Session, flush_context: Any) -> None:
    pending: list[dict[str, Any]] = session.info.setdefault(_PENDING_KEY, [])
    batches = (
        (EVENT_INSERT, session.new),
        (EVENT_UPDATE, session.dirty),
        (EVENT_DELETE, session.deleted),
    )
    for kind, objects in batches:
        for obj in list(objects):
            if type(obj) not in TRACKED_TABLES:
                continue
            if kind == EVENT_UPDATE and not session.is_modified(obj, include_collections=False):
                continue
            pending.extend(_build_changes(session, kind, obj))


@event.listens_for(Session, "after_commit")
def _publish_changes(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, None)
    if not pending:
        return
    for change in pending:
        change_feed.publish(change)


@event.listens_for(Session, "after_rollback")
def _discard_changes(session: Session) -> None:
    discarded = session.info.pop(_PENDING_KEY, None)
    if discarded:
        logger.debug("Discarded %d uncommitted change(s)", len(discarded))
