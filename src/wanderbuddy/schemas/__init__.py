"""Pydantic schemas for the WanderBuddy API."""

from .activity import (
    ActivityCreate,
    ActivityOut,
    ActivityRsvp,
    ActivityRsvpOut,
    ActivityUpdate,
)
from .meetup import (
    JoinRequestOut,
    JoinStatusOut,
    MeetupCreate,
    MeetupMemberOut,
    MeetupOut,
    MeetupUpdate,
)
from .message import MessageCreate, MessageOut, MessageUpdate, PinUpdate, SendResult
from .notification import NotificationOut, UnreadCountOut
from .profile import (
    OnboardingRequest,
    OnboardingStatus,
    ProfileOut,
    ProfileSummary,
    ProfileUpdate,
    PublicProfileOut,
)

__all__ = [
    "ActivityCreate",
    "ActivityOut",
    "ActivityRsvp",
    "ActivityRsvpOut",
    "ActivityUpdate",
    "JoinRequestOut",
    "JoinStatusOut",
    "MeetupCreate",
    "MeetupMemberOut",
    "MeetupOut",
    "MeetupUpdate",
    "MessageCreate",
    "MessageOut",
    "MessageUpdate",
    "NotificationOut",
    "OnboardingRequest",
    "OnboardingStatus",
    "PinUpdate",
    "ProfileOut",
    "ProfileSummary",
    "ProfileUpdate",
    "PublicProfileOut",
    "SendResult",
    "UnreadCountOut",
]
