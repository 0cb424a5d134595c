"""SQLAlchemy models for the WanderBuddy application."""

from .activity import Activity, ActivityResponse
from .fanout import FanoutTask
from .meetup import JoinRequest, Meetup, MeetupMember
from .message import Message
from .notification import Notification
from .profile import Profile

__all__ = [
    "Activity", "ActivityResponse",
    "FanoutTask",
    "JoinRequest", "Meetup", "MeetupMember",
    "Message",
    "Notification",
    "Profile",
]
