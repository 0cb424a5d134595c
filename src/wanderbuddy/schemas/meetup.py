"""Meetup-related Pydantic schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from wanderbuddy.services.validation import social_link_error

from .profile import ProfileSummary

MAX_MEMBERS_LIMIT = 999_999


def _clean_social_link(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    link = value.strip()
    error = social_link_error(link)
    if error:
        raise ValueError(error)
    return link


class MeetupCreate(BaseModel):
    """Schema for creating a new meetup."""

    title: str = Field(..., min_length=3, max_length=100)
    destination: str = Field(..., min_length=2, max_length=200)
    start_date: date
    end_date: date
    meeting_point: str | None = Field(None, max_length=300)
    description: str | None = Field(None, max_length=2000)
    image_url: str | None = None
    type: Literal["open", "locked"] = "open"
    max_members: int = Field(MAX_MEMBERS_LIMIT, ge=2, le=MAX_MEMBERS_LIMIT)
    is_paid: bool = False
    amount: Decimal | None = Field(None, ge=0, le=100000)
    social_group_link: str | None = None

    @field_validator("social_group_link")
    @classmethod
    def _check_social_link(cls, value: str | None) -> str | None:
        return _clean_social_link(value)

    @model_validator(mode="after")
    def _check_dates(self) -> "MeetupCreate":
        if self.end_date < self.start_date:
            raise ValueError("End date must be on or after start date")
        return self


class MeetupUpdate(BaseModel):
    """Partial meetup update; only the creator may apply it."""

    title: str | None = Field(None, min_length=3, max_length=100)
    destination: str | None = Field(None, min_length=2, max_length=200)
    start_date: date | None = None
    end_date: date | None = None
    meeting_point: str | None = Field(None, max_length=300)
    description: str | None = Field(None, max_length=2000)
    image_url: str | None = None
    type: Literal["open", "locked"] | None = None
    max_members: int | None = Field(None, ge=2, le=MAX_MEMBERS_LIMIT)
    is_paid: bool | None = None
    amount: Decimal | None = Field(None, ge=0, le=100000)
    social_group_link: str | None = None

    @field_validator("social_group_link")
    @classmethod
    def _check_social_link(cls, value: str | None) -> str | None:
        return _clean_social_link(value)


class MeetupOut(BaseModel):
    """Schema for meetup information returned by the API."""

    id: int
    title: str
    destination: str
    start_date: date
    end_date: date
    meeting_point: str | None
    description: str | None
    image_url: str | None
    type: str
    max_members: int
    is_paid: bool
    amount: Decimal | None
    social_group_link: str | None
    creator_id: str
    creator_username: str | None = None
    member_count: int = 0
    is_member: bool = False
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MeetupMemberOut(BaseModel):
    user_id: str
    joined_at: datetime
    profile: ProfileSummary

    model_config = ConfigDict(from_attributes=True)


class JoinRequestOut(BaseModel):
    id: int
    meetup_id: int
    user_id: str
    status: str
    created_at: datetime
    updated_at: datetime
    profile: ProfileSummary

    model_config = ConfigDict(from_attributes=True)


class JoinStatusOut(BaseModel):
    is_member: bool
    request_status: str | None
