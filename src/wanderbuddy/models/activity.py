"""SQLAlchemy models for scheduled meetup activities and RSVPs."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wanderbuddy.core.channels import meetup_channel
from wanderbuddy.db.session import Base
from wanderbuddy.db.time import utcnow

if TYPE_CHECKING:
    from .meetup import Meetup
    from .profile import Profile

RESPONSE_GOING = "going"
RESPONSE_NOT_GOING = "not_going"
RESPONSE_MAYBE = "maybe"


class Activity(Base):
    """A scheduled sub-activity within a meetup."""

    __tablename__ = "meetup_activity"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    meetup_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("meetup.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_by: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("profile.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    activity_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    meetup: Mapped[Meetup] = relationship("Meetup", back_populates="activities")
    creator: Mapped[Profile] = relationship("Profile", lazy="joined")
    responses: Mapped[list[ActivityResponse]] = relationship(
        "ActivityResponse",
        back_populates="activity",
        cascade="all, delete-orphan",
        order_by="ActivityResponse.id",
    )

    @property
    def channel_key(self) -> str:
        return meetup_channel(self.meetup_id)


class ActivityResponse(Base):
    """A member's RSVP; at most one per (activity, user)."""

    __tablename__ = "activity_response"
    __table_args__ = (
        UniqueConstraint("activity_id", "user_id", name="uq_activity_response"),
        CheckConstraint(
            "response IN ('going', 'not_going', 'maybe')",
            name="ck_activity_response_value",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    activity_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("meetup_activity.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("profile.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    response: Mapped[str] = mapped_column(String(10), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    activity: Mapped[Activity] = relationship("Activity", back_populates="responses")
    profile: Mapped[Profile] = relationship("Profile", lazy="joined")

    @property
    def channel_key(self) -> str:
        return meetup_channel(self.activity.meetup_id)
