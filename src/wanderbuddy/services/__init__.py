"""Service layer for WanderBuddy.

Importing the package registers the change-feed session hooks.
"""

from . import realtime  # noqa: F401
from .realtime import ChangeFeed, change_feed, get_change_feed

__all__ = ["ChangeFeed", "change_feed", "get_change_feed"]
