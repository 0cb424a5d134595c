"""Client library for consuming WanderBuddy channels in realtime."""

from .subscriptions import ChannelHandle, ChannelView, SubscriptionManager
from .transport import FeedChangeSource, HttpRowStore, SseChangeSource, parse_sse

__all__ = [
    "ChannelHandle",
    "ChannelView",
    "FeedChangeSource",
    "HttpRowStore",
    "SseChangeSource",
    "SubscriptionManager",
    "parse_sse",
]
