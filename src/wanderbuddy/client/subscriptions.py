"""Client-side realtime subscription manager.

A :class:`SubscriptionManager` keeps at most one open :class:`ChannelHandle`,
mirroring the single mounted chat screen. A handle loads the channel's
ordered messages (and, for meetups, activities) into a :class:`ChannelView`
and then reconciles change events one at a time in arrival order:

* message inserts and updates trigger a point re-read of the row, because
  the event payload lacks the author's profile;
* message deletes remove the row by id;
* any activity or RSVP change triggers a full activity re-read;
* a repeated ``SUBSCRIBED`` event (a reconnect) re-reads everything to fill
  the gap.

Results that arrive after the handle closed are discarded.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from wanderbuddy.core.channels import (
    EVENT_DELETE,
    EVENT_INSERT,
    EVENT_SUBSCRIBED,
    EVENT_UPDATE,
    TABLE_ACTIVITIES,
    TABLE_ACTIVITY_RESPONSES,
    TABLE_MESSAGES,
    ChannelKey,
    parse_channel,
)
from wanderbuddy.core.errors import ValidationError, WanderBuddyError

from .transport import ChangeSource, Row, RowStore

logger = logging.getLogger(__name__)

MESSAGE_MAX_LENGTH = 5000

LOAD_MESSAGES_ERROR = "Unable to load messages"
LOAD_ACTIVITIES_ERROR = "Unable to load activities"
SEND_MESSAGE_ERROR = "Unable to send message"


def check_message_text(text: str) -> str:
    """Local pre-send check; the server repeats it and also strips markup."""
    trimmed = (text or "").strip()
    if not trimmed:
        raise ValidationError("Message cannot be empty")
    if len(trimmed) > MESSAGE_MAX_LENGTH:
        raise ValidationError(f"Message must be less than {MESSAGE_MAX_LENGTH} characters")
    return trimmed


def _sort_key(row: Row) -> tuple[str, int]:
    return (str(row.get("created_at") or ""), int(row.get("id") or 0))


@dataclass
class ChannelView:
    """Renderable state of one open channel."""

    channel: ChannelKey
    messages: list[Row] = field(default_factory=list)
    activities: list[Row] = field(default_factory=list)
    loading: bool = True
    error: str | None = None
    sending: bool = False

    def message_ids(self) -> list[int]:
        return [row["id"] for row in self.messages if row.get("id") is not None]

    def _index_of(self, message_id: int) -> int | None:
        for index, row in enumerate(self.messages):
            if row.get("id") == message_id:
                return index
        return None

    def _provisional_index(self, client_token: str | None) -> int | None:
        if not client_token:
            return None
        for index, row in enumerate(self.messages):
            if row.get("provisional") and row.get("client_token") == client_token:
                return index
        return None

    def add_message(self, row: Row) -> None:
        """Insert a delivered row; already-present ids are left untouched."""
        if self._index_of(row["id"]) is not None:
            return
        provisional = self._provisional_index(row.get("client_token"))
        if provisional is not None:
            self.messages[provisional] = row
            return
        position = len(self.messages)
        key = _sort_key(row)
        while position > 0:
            previous = self.messages[position - 1]
            if previous.get("provisional") or _sort_key(previous) <= key:
                break
            position -= 1
        self.messages.insert(position, row)

    def replace_message(self, row: Row) -> None:
        index = self._index_of(row["id"])
        if index is not None:
            self.messages[index] = row

    def remove_message(self, message_id: int) -> None:
        self.messages = [row for row in self.messages if row.get("id") != message_id]

    def add_provisional(self, content: str, client_token: str, author_id: str | None = None) -> None:
        self.messages.append(
            {
                "id": None,
                "content": content,
                "user_id": author_id,
                "client_token": client_token,
                "provisional": True,
            }
        )

    def drop_provisional(self, client_token: str) -> None:
        index = self._provisional_index(client_token)
        if index is not None:
            del self.messages[index]


class ChannelHandle:
    """Scoped subscription to one channel; use as an async context manager."""

    def __init__(self, manager: SubscriptionManager, channel: ChannelKey) -> None:
        self.manager = manager
        self.channel = channel
        self.view = ChannelView(channel=channel)
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self._opened = False
        self._subscribed_count = 0
        self._send_lock = asyncio.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> ChannelHandle:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def open(self) -> None:
        if self._opened:
            return
        self._opened = True
        await self.manager._activate(self)
        await self._load_initial()
        if self._closed:
            return
        self._task = asyncio.create_task(self._consume())

    async def close(self) -> None:
        """Stop processing events and release the subscription."""
        if self._closed:
            return
        self._closed = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.manager._release(self)

    async def _load_initial(self) -> None:
        messages_loaded = await self._refetch_messages()
        activities_loaded = await self._refetch_activities()
        if self._closed:
            return
        if messages_loaded and activities_loaded:
            self.view.loading = False

    async def _refetch_messages(self) -> bool:
        store = self.manager.store
        try:
            rows = await store.fetch_messages(self.channel)
        except WanderBuddyError as exc:
            logger.warning("Loading messages for %s failed: %s", self.channel, exc)
            if not self._closed:
                self.view.error = LOAD_MESSAGES_ERROR
            return False
        if self._closed:
            return False
        provisional = [row for row in self.view.messages if row.get("provisional")]
        self.view.messages = sorted(rows, key=_sort_key)
        for row in provisional:
            if self.view._provisional_index(row["client_token"]) is None and not any(
                stored.get("client_token") == row["client_token"] for stored in rows
            ):
                self.view.messages.append(row)
        return True

    async def _refetch_activities(self) -> bool:
        if not self.channel.is_meetup or self.channel.meetup_id is None:
            return True
        try:
            rows = await self.manager.store.fetch_activities(self.channel.meetup_id)
        except WanderBuddyError as exc:
            logger.warning("Loading activities for %s failed: %s", self.channel, exc)
            if not self._closed:
                self.view.error = LOAD_ACTIVITIES_ERROR
            return False
        if self._closed:
            return False
        self.view.activities = rows
        return True

    async def _consume(self) -> None:
        stream = self.manager.source.stream(str(self.channel))
        try:
            async for change in stream:
                if self._closed:
                    break
                await self.handle_change(change)
        except WanderBuddyError as exc:
            logger.warning("Change stream for %s ended: %s", self.channel, exc)
        finally:
            await stream.aclose()

    async def handle_change(self, change: Row) -> None:
        """Apply one change event to the view."""
        kind = change.get("event")
        if kind == EVENT_SUBSCRIBED:
            self._subscribed_count += 1
            if self._subscribed_count > 1:
                logger.info("Resubscribed to %s; refetching", self.channel)
                if await self._refetch_messages() and await self._refetch_activities():
                    self.view.loading = False
            return

        table = change.get("table")
        if table == TABLE_MESSAGES:
            await self._handle_message_change(kind, change)
        elif table in (TABLE_ACTIVITIES, TABLE_ACTIVITY_RESPONSES):
            await self._refetch_activities()

    async def _handle_message_change(self, kind: str | None, change: Row) -> None:
        if kind == EVENT_DELETE:
            old = change.get("old") or {}
            if old.get("id") is not None:
                self.view.remove_message(old["id"])
            return
        new = change.get("new") or {}
        message_id = new.get("id")
        if message_id is None or kind not in (EVENT_INSERT, EVENT_UPDATE):
            return
        try:
            row = await self.manager.store.fetch_message(message_id)
        except WanderBuddyError as exc:
            logger.warning("Re-reading message %s failed: %s", message_id, exc)
            return
        if self._closed or row is None:
            return
        if kind == EVENT_INSERT:
            self.view.add_message(row)
        else:
            self.view.replace_message(row)

    async def send_message(self, text: str, optimistic: bool = False) -> bool:
        """Post a message; the row appears when its change event arrives.

        Returns False without sending when a send is already in flight or
        when the send fails (``view.error`` is set). With ``optimistic`` a
        provisional row is shown until the echo replaces it.
        """
        if self._send_lock.locked() or self.view.sending:
            return False
        async with self._send_lock:
            content = check_message_text(text)
            client_token = uuid.uuid4().hex if optimistic else None
            if client_token:
                self.view.add_provisional(content, client_token, self.manager.user_id)
            self.view.sending = True
            try:
                await self.manager.store.send_message(self.channel, content, client_token)
            except WanderBuddyError as exc:
                logger.warning("Sending to %s failed: %s", self.channel, exc)
                if client_token:
                    self.view.drop_provisional(client_token)
                self.view.error = SEND_MESSAGE_ERROR
                return False
            finally:
                self.view.sending = False
            return True


class SubscriptionManager:
    """Owns the single open channel handle of a client session."""

    def __init__(self, store: RowStore, source: ChangeSource, user_id: str | None = None) -> None:
        self.store = store
        self.source = source
        self.user_id = user_id
        self._current: ChannelHandle | None = None

    @property
    def current(self) -> ChannelHandle | None:
        return self._current

    def open_channel(self, channel: str | ChannelKey) -> ChannelHandle:
        """Return a handle for ``channel``; entering it closes any previous handle."""
        key = parse_channel(channel) if isinstance(channel, str) else channel
        return ChannelHandle(self, key)

    async def _activate(self, handle: ChannelHandle) -> None:
        previous = self._current
        self._current = handle
        if previous is not None and previous is not handle:
            await previous.close()

    def _release(self, handle: ChannelHandle) -> None:
        if self._current is handle:
            self._current = None

    async def close(self) -> None:
        if self._current is not None:
            await self._current.close()
