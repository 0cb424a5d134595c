"""Transports used by the client subscription manager.

A *row store* performs reads and writes against the REST API; a *change
source* yields change events for one channel, starting every (re)connection
with a ``SUBSCRIBED`` control event.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

import httpx

from wanderbuddy.core.channels import EVENT_SUBSCRIBED, ChannelKey, parse_channel
from wanderbuddy.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TransientError,
    ValidationError,
    WanderBuddyError,
)

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class RowStore(Protocol):
    async def fetch_messages(self, channel: ChannelKey) -> list[Row]: ...

    async def fetch_message(self, message_id: int) -> Row | None: ...

    async def fetch_activities(self, meetup_id: int) -> list[Row]: ...

    async def send_message(self, channel: ChannelKey, content: str, client_token: str | None = None) -> None: ...


class ChangeSource(Protocol):
    def stream(self, channel: str) -> AsyncIterator[Row]: ...


_STATUS_ERRORS: dict[int, type[WanderBuddyError]] = {
    403: AuthorizationError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
}


def _raise_for_status(response: httpx.Response, action: str) -> None:
    if response.is_success:
        return
    try:
        detail = response.json().get("detail")
    except ValueError:
        detail = None
    if not isinstance(detail, str):
        detail = f"Unable to {action}"
    error_cls = _STATUS_ERRORS.get(response.status_code, TransientError)
    raise error_cls(detail)


def _messages_path(channel: ChannelKey) -> str:
    if channel.is_community:
        return "/api/v1/community/messages"
    if channel.is_meetup:
        return f"/api/v1/meetups/{channel.meetup_id}/messages"
    raise ValueError(f"{channel} is not a chat channel")


class HttpRowStore:
    """Row store backed by the WanderBuddy REST API."""

    def __init__(self, client: httpx.AsyncClient, token: str | None = None) -> None:
        self.client = client
        self.headers = {"Authorization": f"Bearer {token}"} if token else {}

    async def _get(self, path: str, action: str) -> httpx.Response:
        try:
            response = await self.client.get(path, headers=self.headers)
        except httpx.HTTPError as exc:
            logger.warning("GET %s failed: %s", path, exc)
            raise TransientError(f"Unable to {action}") from exc
        return response

    async def fetch_messages(self, channel: ChannelKey) -> list[Row]:
        response = await self._get(_messages_path(channel), "load messages")
        _raise_for_status(response, "load messages")
        return response.json()

    async def fetch_message(self, message_id: int) -> Row | None:
        response = await self._get(f"/api/v1/messages/{message_id}", "load message")
        if response.status_code == 404:
            return None
        _raise_for_status(response, "load message")
        return response.json()

    async def fetch_activities(self, meetup_id: int) -> list[Row]:
        response = await self._get(f"/api/v1/meetups/{meetup_id}/activities", "load activities")
        _raise_for_status(response, "load activities")
        return response.json()

    async def send_message(self, channel: ChannelKey, content: str, client_token: str | None = None) -> None:
        payload: dict[str, Any] = {"content": content}
        if client_token:
            payload["client_token"] = client_token
        try:
            response = await self.client.post(_messages_path(channel), json=payload, headers=self.headers)
        except httpx.HTTPError as exc:
            logger.warning("Sending message to %s failed: %s", channel, exc)
            raise TransientError("Unable to send message") from exc
        _raise_for_status(response, "send message")


async def parse_sse(lines: AsyncIterator[str]) -> AsyncIterator[Row]:
    """Decode ``data:`` payloads of a text/event-stream into JSON objects.

    Comment lines (keep-alives) are skipped; multi-line data fields are
    joined with newlines before decoding.
    """
    data_lines: list[str] = []
    async for raw_line in lines:
        line = raw_line.rstrip("\r")
        if not line:
            if data_lines:
                payload = "\n".join(data_lines)
                data_lines = []
                try:
                    yield json.loads(payload)
                except ValueError:
                    logger.warning("Skipping malformed event payload: %r", payload[:200])
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if field == "data":
            data_lines.append(value[1:] if value.startswith(" ") else value)
    if data_lines:
        try:
            yield json.loads("\n".join(data_lines))
        except ValueError:
            logger.warning("Skipping truncated event payload")


class SseChangeSource:
    """Change source reading the server-sent event stream over httpx.

    Reconnects after a dropped connection; each new connection starts with a
    fresh ``SUBSCRIBED`` event so the consumer can gap-fill.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        token: str | None = None,
        reconnect_delay: float = 2.0,
    ) -> None:
        self.client = client
        self.headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.reconnect_delay = reconnect_delay

    async def stream(self, channel: str) -> AsyncIterator[Row]:
        params = {"channel": channel}
        while True:
            try:
                async with self.client.stream(
                    "GET",
                    "/api/v1/realtime/stream",
                    params=params,
                    headers=self.headers,
                    timeout=None,
                ) as response:
                    if not response.is_success:
                        await response.aread()
                        _raise_for_status(response, "subscribe")
                    async for change in parse_sse(response.aiter_lines()):
                        yield change
            except httpx.HTTPError as exc:
                logger.warning("Change stream for %s dropped: %s", channel, exc)
            await asyncio.sleep(self.reconnect_delay)


class FeedChangeSource:
    """Change source subscribed directly to an in-process change feed."""

    def __init__(self, feed: Any) -> None:
        self.feed = feed

    async def stream(self, channel: str) -> AsyncIterator[Row]:
        parse_channel(channel)
        subscription = self.feed.subscribe(channel)
        try:
            yield {"event": EVENT_SUBSCRIBED, "channel": channel}
            while True:
                yield await subscription.get()
        finally:
            subscription.close()
