"""SQLAlchemy model for user profiles."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import JSON, Date, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from wanderbuddy.db.session import Base
from wanderbuddy.db.time import utcnow


class Profile(Base):
    """Public profile keyed by the identity provider's user id.

    A row is provisioned with empty optional fields the first time an
    authenticated identity reaches the API.
    """

    __tablename__ = "profile"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str | None] = mapped_column(String(30), unique=True, nullable=True)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    location: Mapped[str | None] = mapped_column(String(100), nullable=True)
    instagram: Mapped[str | None] = mapped_column(String(30), nullable=True)

    languages: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    countries_traveled: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    interests: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    @property
    def display_name(self) -> str:
        """Name, else username, else a stable ``traveler_<n>`` label."""
        if self.name:
            return self.name
        if self.username:
            return self.username
        return f"traveler_{sum(ord(ch) for ch in self.id) % 9000 + 1000}"
