"""Chat message Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .profile import ProfileSummary


class MessageCreate(BaseModel):
    """Text message body; length and markup are checked by the message service."""

    content: str
    client_token: str | None = Field(
        None,
        max_length=64,
        description="Opaque token echoed on the stored row for optimistic rendering",
    )


class MessageUpdate(BaseModel):
    content: str


class PinUpdate(BaseModel):
    pinned: bool


class SendResult(BaseModel):
    status: str = "sent"


class MessageOut(BaseModel):
    """A message joined with its author's display fields."""

    id: int
    meetup_id: int | None
    user_id: str
    message_type: str
    content: str
    file_url: str | None
    file_name: str | None
    file_size: int | None
    pinned: bool
    pinned_by: str | None
    pinned_at: datetime | None
    client_token: str | None
    created_at: datetime
    updated_at: datetime
    author: ProfileSummary

    model_config = ConfigDict(from_attributes=True)
