"""Activity and RSVP Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .profile import ProfileSummary

RsvpValue = Literal["going", "not_going", "maybe"]


class ActivityCreate(BaseModel):
    title: str = Field(..., min_length=2, max_length=100)
    description: str | None = Field(None, max_length=500)
    activity_time: datetime
    location: str | None = Field(None, max_length=200)


class ActivityUpdate(BaseModel):
    title: str | None = Field(None, min_length=2, max_length=100)
    description: str | None = Field(None, max_length=500)
    activity_time: datetime | None = None
    location: str | None = Field(None, max_length=200)


class ActivityRsvp(BaseModel):
    response: RsvpValue


class ActivityRsvpOut(BaseModel):
    id: int
    activity_id: int
    user_id: str
    response: str
    created_at: datetime
    updated_at: datetime
    profile: ProfileSummary

    model_config = ConfigDict(from_attributes=True)


class ActivityOut(BaseModel):
    """An activity with its RSVPs embedded."""

    id: int
    meetup_id: int
    created_by: str
    title: str
    description: str | None
    activity_time: datetime
    location: str | None
    created_at: datetime
    updated_at: datetime
    creator: ProfileSummary
    responses: list[ActivityRsvpOut] = []

    model_config = ConfigDict(from_attributes=True)
