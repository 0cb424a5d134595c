"""SQLAlchemy model for per-recipient notifications."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from wanderbuddy.core.channels import user_channel
from wanderbuddy.db.session import Base
from wanderbuddy.db.time import utcnow

NOTIFICATION_MESSAGE = "message"
NOTIFICATION_ACTIVITY = "activity"
NOTIFICATION_JOIN_REQUEST = "join_request"
NOTIFICATION_REQUEST_ACCEPTED = "request_accepted"


class Notification(Base):
    """Notification written by the fan-out dispatcher, never by clients.

    Recipients may only flip ``is_read`` or delete their own rows.
    """

    __tablename__ = "notification"
    __table_args__ = (
        CheckConstraint(
            "type IN ('message', 'activity', 'join_request', 'request_accepted')",
            name="ck_notification_type",
        ),
        Index("ix_notification_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("profile.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    meetup_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("meetup.id", ondelete="CASCADE"),
        nullable=True,
    )
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    @property
    def channel_key(self) -> str:
        return user_channel(self.user_id)
