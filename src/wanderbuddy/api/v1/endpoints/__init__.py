"""API endpoint modules for version 1."""

from .activities import router as activities_router
from .meetups import join_requests_router
from .meetups import router as meetups_router
from .messages import router as messages_router
from .notifications import router as notifications_router
from .profiles import router as profiles_router
from .realtime import router as realtime_router

__all__ = [
    "activities_router",
    "join_requests_router",
    "meetups_router",
    "messages_router",
    "notifications_router",
    "profiles_router",
    "realtime_router",
]
