"""SQLAlchemy model for chat messages in meetup and community channels."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wanderbuddy.core.channels import channel_for_meetup
from wanderbuddy.db.session import Base
from wanderbuddy.db.time import utcnow

if TYPE_CHECKING:
    from .meetup import Meetup
    from .profile import Profile

MESSAGE_TYPE_TEXT = "text"
MESSAGE_TYPE_IMAGE = "image"
MESSAGE_TYPE_FILE = "file"
MESSAGE_TYPE_LOCATION = "location"

MESSAGE_TYPES = (
    MESSAGE_TYPE_TEXT,
    MESSAGE_TYPE_IMAGE,
    MESSAGE_TYPE_FILE,
    MESSAGE_TYPE_LOCATION,
)


class Message(Base):
    """A chat message.

    ``meetup_id`` is NULL for the global community channel. Pin state only
    applies to meetup channels.
    """

    __tablename__ = "chat_message"
    __table_args__ = (
        CheckConstraint(
            "message_type IN ('text', 'image', 'file', 'location')",
            name="ck_chat_message_type",
        ),
        Index("ix_chat_message_channel_created", "meetup_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    meetup_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("meetup.id", ondelete="CASCADE"),
        nullable=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("profile.id", ondelete="CASCADE"),
        nullable=False,
    )
    message_type: Mapped[str] = mapped_column(String(10), nullable=False, default=MESSAGE_TYPE_TEXT)
    # Text body, or the original filename for uploads.
    content: Mapped[str] = mapped_column(Text, nullable=False)
    file_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pinned_by: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("profile.id", ondelete="SET NULL"),
        nullable=True,
    )
    pinned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Echoed back so a client can reconcile a provisional row with the stored one.
    client_token: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    meetup: Mapped[Meetup | None] = relationship("Meetup", back_populates="messages")
    author: Mapped[Profile] = relationship("Profile", foreign_keys=[user_id], lazy="joined")

    @property
    def channel_key(self) -> str:
        return channel_for_meetup(self.meetup_id)
