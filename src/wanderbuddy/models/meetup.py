"""SQLAlchemy models for meetups, memberships and join requests."""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wanderbuddy.core.channels import meetup_channel
from wanderbuddy.db.session import Base
from wanderbuddy.db.time import utcnow

if TYPE_CHECKING:
    from .activity import Activity
    from .message import Message
    from .notification import Notification
    from .profile import Profile

MEETUP_TYPE_OPEN = "open"
MEETUP_TYPE_LOCKED = "locked"

# Sentinel capacity meaning "no limit".
UNLIMITED_MEMBERS = 999_999

JOIN_STATUS_PENDING = "pending"
JOIN_STATUS_APPROVED = "approved"
JOIN_STATUS_REJECTED = "rejected"


class Meetup(Base):
    """A planned group trip and the channel scoping its chat and activities."""

    __tablename__ = "meetup"
    __table_args__ = (
        CheckConstraint("type IN ('open', 'locked')", name="ck_meetup_type"),
        CheckConstraint("end_date >= start_date", name="ck_meetup_dates"),
        Index("ix_meetup_start_date", "start_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    destination: Mapped[str] = mapped_column(String(200), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    meeting_point: Mapped[str | None] = mapped_column(String(300), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(10), nullable=False, default=MEETUP_TYPE_OPEN)
    max_members: Mapped[int] = mapped_column(Integer, nullable=False, default=UNLIMITED_MEMBERS)
    # Nominal only; no settlement happens anywhere.
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    amount: Mapped[float | None] = mapped_column(Numeric(10, 2), nullable=True)
    social_group_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    creator_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("profile.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    creator: Mapped[Profile] = relationship("Profile", lazy="joined")
    members: Mapped[list[MeetupMember]] = relationship(
        "MeetupMember",
        back_populates="meetup",
        cascade="all, delete-orphan",
    )
    join_requests: Mapped[list[JoinRequest]] = relationship(
        "JoinRequest",
        back_populates="meetup",
        cascade="all, delete-orphan",
    )
    messages: Mapped[list[Message]] = relationship(
        "Message",
        back_populates="meetup",
        cascade="all, delete-orphan",
    )
    activities: Mapped[list[Activity]] = relationship(
        "Activity",
        back_populates="meetup",
        cascade="all, delete-orphan",
    )
    notifications: Mapped[list[Notification]] = relationship(
        "Notification",
        cascade="all, delete-orphan",
    )

    @property
    def is_unlimited(self) -> bool:
        return self.max_members >= UNLIMITED_MEMBERS

    @property
    def channel_key(self) -> str:
        return meetup_channel(self.id)


class MeetupMember(Base):
    """Membership granting read/write access to a meetup's channel."""

    __tablename__ = "meetup_member"
    __table_args__ = (
        UniqueConstraint("meetup_id", "user_id", name="uq_meetup_member"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    meetup_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("meetup.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("profile.id", ondelete="CASCADE"),
        nullable=False,
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    meetup: Mapped[Meetup] = relationship("Meetup", back_populates="members")
    profile: Mapped[Profile] = relationship("Profile", lazy="joined")


class JoinRequest(Base):
    """Request to join a locked meetup, decided by the meetup creator.

    One row per (meetup, user); a rejected request is resubmitted by
    resetting the same row to pending.
    """

    __tablename__ = "meetup_join_request"
    __table_args__ = (
        UniqueConstraint("meetup_id", "user_id", name="uq_meetup_join_request"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_join_request_status",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    meetup_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("meetup.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("profile.id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String(10), nullable=False, default=JOIN_STATUS_PENDING)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    meetup: Mapped[Meetup] = relationship("Meetup", back_populates="join_requests")
    profile: Mapped[Profile] = relationship("Profile", lazy="joined")
