"""Channel keys naming the logical partitions of the change feed.

``community`` is the single global chat, ``meetup:<id>`` scopes a meetup's
chat, activities and join requests, and ``user:<id>`` carries a user's
notifications.
"""

from __future__ import annotations

from dataclasses import dataclass

COMMUNITY_CHANNEL = "community"
MEETUP_PREFIX = "meetup:"
USER_PREFIX = "user:"


@dataclass(frozen=True)
class ChannelKey:
    """Parsed channel key."""

    kind: str
    meetup_id: int | None = None
    user_id: str | None = None

    @property
    def is_community(self) -> bool:
        return self.kind == "community"

    @property
    def is_meetup(self) -> bool:
        return self.kind == "meetup"

    def __str__(self) -> str:
        if self.kind == "meetup":
            return meetup_channel(self.meetup_id)  # type: ignore[arg-type]
        if self.kind == "user":
            return user_channel(self.user_id)  # type: ignore[arg-type]
        return COMMUNITY_CHANNEL


def meetup_channel(meetup_id: int) -> str:
    return f"{MEETUP_PREFIX}{meetup_id}"


def user_channel(user_id: str) -> str:
    return f"{USER_PREFIX}{user_id}"


def channel_for_meetup(meetup_id: int | None) -> str:
    """Return the chat channel of a message row (``None`` means community)."""
    if meetup_id is None:
        return COMMUNITY_CHANNEL
    return meetup_channel(meetup_id)


def parse_channel(raw: str) -> ChannelKey:
    """Parse a channel key string.

    Raises:
        ValueError: If the key does not name a known channel.
    """
    value = raw.strip()
    if value == COMMUNITY_CHANNEL:
        return ChannelKey(kind="community")
    if value.startswith(MEETUP_PREFIX):
        suffix = value[len(MEETUP_PREFIX):]
        if not suffix.isdigit():
            raise ValueError(f"Invalid meetup channel: {raw!r}")
        return ChannelKey(kind="meetup", meetup_id=int(suffix))
    if value.startswith(USER_PREFIX):
        suffix = value[len(USER_PREFIX):]
        if not suffix:
            raise ValueError(f"Invalid user channel: {raw!r}")
        return ChannelKey(kind="user", user_id=suffix)
    raise ValueError(f"Unknown channel: {raw!r}")


# Table names carried in change events.
TABLE_MESSAGES = "messages"
TABLE_ACTIVITIES = "activities"
TABLE_ACTIVITY_RESPONSES = "activity_responses"
TABLE_JOIN_REQUESTS = "join_requests"
TABLE_NOTIFICATIONS = "notifications"

EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"
# Control event emitted by a stream once the subscription is live.
EVENT_SUBSCRIBED = "SUBSCRIBED"
