"""Version 1 API endpoints."""

from .endpoints import (
    activities_router,
    join_requests_router,
    meetups_router,
    messages_router,
    notifications_router,
    profiles_router,
    realtime_router,
)

__all__ = [
    "activities_router",
    "join_requests_router",
    "meetups_router",
    "messages_router",
    "notifications_router",
    "profiles_router",
    "realtime_router",
]
