"""Meetup lifecycle, discovery and expiry cleanup."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from wanderbuddy.core.errors import ValidationError
from wanderbuddy.db.time import today as utc_today
from wanderbuddy.models import Meetup, MeetupMember, Profile
from wanderbuddy.schemas.meetup import MeetupCreate, MeetupUpdate
from wanderbuddy.services import membership
from wanderbuddy.services.validation import sanitize_text

logger = logging.getLogger(__name__)

TRIP_TYPE_ALL = "all"
TRIP_TYPE_PAID = "paid"
TRIP_TYPE_FREE = "free"

_TEXT_FIELDS = ("title", "destination", "meeting_point", "description")
_REQUIRED_FIELDS = frozenset(
    {"title", "destination", "start_date", "end_date", "type", "max_members", "is_paid"}
)


def _clean_fields(values: dict[str, Any]) -> dict[str, Any]:
    cleaned = dict(values)
    for field in _TEXT_FIELDS:
        value = cleaned.get(field)
        if isinstance(value, str):
            stripped = sanitize_text(value)
            if field in ("title", "destination") and not stripped:
                raise ValidationError(f"{field.capitalize()} cannot be empty")
            cleaned[field] = stripped or None
    if not cleaned.get("is_paid", True):
        cleaned["amount"] = None
    return cleaned


def create_meetup(db: Session, user: Profile, data: MeetupCreate) -> Meetup:
    """Create a meetup and enrol its creator as the first member."""
    values = _clean_fields(data.model_dump())
    meetup = Meetup(creator_id=user.id, **values)
    db.add(meetup)
    db.flush()
    db.add(MeetupMember(meetup_id=meetup.id, user_id=user.id))
    db.commit()
    db.refresh(meetup)
    logger.info("User %s created meetup %s", user.id, meetup.id)
    return meetup


def update_meetup(db: Session, meetup_id: int, user: Profile, data: MeetupUpdate) -> Meetup:
    meetup = membership.require_creator(db, meetup_id, user.id, "update meetup")
    changes = _clean_fields(data.model_dump(exclude_unset=True))
    start = changes.get("start_date") or meetup.start_date
    end = changes.get("end_date") or meetup.end_date
    if end < start:
        raise ValidationError("End date must be on or after start date")
    new_max = changes.get("max_members")
    if new_max is not None and new_max < membership.member_count(db, meetup_id):
        raise ValidationError("Capacity cannot be lower than the current member count")
    for key, value in changes.items():
        if key in _REQUIRED_FIELDS and value is None:
            continue
        setattr(meetup, key, value)
    db.commit()
    db.refresh(meetup)
    return meetup


def delete_meetup(db: Session, meetup_id: int, user: Profile) -> None:
    """Delete a meetup with its members, requests, messages, activities and notifications."""
    meetup = membership.require_creator(db, meetup_id, user.id, "delete meetup")
    db.delete(meetup)
    db.commit()
    logger.info("User %s deleted meetup %s", user.id, meetup_id)


def member_counts(db: Session, meetup_ids: list[int]) -> dict[int, int]:
    if not meetup_ids:
        return {}
    rows = (
        db.query(MeetupMember.meetup_id, func.count(MeetupMember.id))
        .filter(MeetupMember.meetup_id.in_(meetup_ids))
        .group_by(MeetupMember.meetup_id)
        .all()
    )
    return {meetup_id: count for meetup_id, count in rows}


def list_meetups(
    db: Session,
    q: str | None = None,
    trip_type: str = TRIP_TYPE_ALL,
    min_members: int | None = None,
    max_members: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    today: date | None = None,
) -> list[Meetup]:
    """Return upcoming or ongoing meetups ordered by start date.

    ``min_members``/``max_members`` bound the meetup's capacity. The date
    window keeps meetups overlapping ``[date_from, date_to]``; either end may
    be omitted.
    """
    current = today or utc_today()
    query = db.query(Meetup).filter(Meetup.end_date >= current)
    if q and q.strip():
        pattern = f"%{q.strip().lower()}%"
        query = query.filter(
            or_(func.lower(Meetup.title).like(pattern), func.lower(Meetup.destination).like(pattern))
        )
    if trip_type == TRIP_TYPE_PAID:
        query = query.filter(Meetup.is_paid.is_(True))
    elif trip_type == TRIP_TYPE_FREE:
        query = query.filter(Meetup.is_paid.is_(False))
    if min_members is not None:
        query = query.filter(Meetup.max_members >= min_members)
    if max_members is not None:
        query = query.filter(Meetup.max_members <= max_members)
    if date_from is not None:
        query = query.filter(Meetup.end_date >= date_from)
    if date_to is not None:
        query = query.filter(Meetup.start_date <= date_to)
    return query.order_by(Meetup.start_date, Meetup.id).all()


def my_meetups(db: Session, user: Profile) -> list[Meetup]:
    """Meetups the user created or belongs to."""
    member_of = select(MeetupMember.meetup_id).where(MeetupMember.user_id == user.id)
    return (
        db.query(Meetup)
        .filter(or_(Meetup.creator_id == user.id, Meetup.id.in_(member_of)))
        .order_by(Meetup.start_date, Meetup.id)
        .all()
    )


def cleanup_expired_meetups(db: Session, today: date | None = None) -> list[int]:
    """Delete every meetup whose end date has passed and return their ids."""
    current = today or utc_today()
    expired = db.query(Meetup).filter(Meetup.end_date < current).all()
    deleted_ids = [meetup.id for meetup in expired]
    for meetup in expired:
        db.delete(meetup)
    db.commit()
    if deleted_ids:
        logger.info("Deleted %d expired meetup(s): %s", len(deleted_ids), deleted_ids)
    return deleted_ids
