"""Scheduled activities within a meetup and their RSVPs."""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from wanderbuddy.core.errors import AuthorizationError, NotFoundError
from wanderbuddy.models import Activity, ActivityResponse, Profile
from wanderbuddy.models.notification import NOTIFICATION_ACTIVITY
from wanderbuddy.schemas.activity import ActivityCreate, ActivityUpdate
from wanderbuddy.services import membership
from wanderbuddy.services.notifications import enqueue_fanout
from wanderbuddy.services.validation import sanitize_text

logger = logging.getLogger(__name__)


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = sanitize_text(value)
    return cleaned or None


def create_activity(db: Session, meetup_id: int, user: Profile, data: ActivityCreate) -> Activity:
    membership.require_member(db, meetup_id, user.id, "create activity")
    activity = Activity(
        meetup_id=meetup_id,
        created_by=user.id,
        title=sanitize_text(data.title) or data.title.strip(),
        description=_clean_optional(data.description),
        activity_time=data.activity_time,
        location=_clean_optional(data.location),
    )
    db.add(activity)
    db.flush()
    enqueue_fanout(
        db,
        kind=NOTIFICATION_ACTIVITY,
        source_id=activity.id,
        meetup_id=meetup_id,
        actor_id=user.id,
    )
    db.commit()
    db.refresh(activity)
    return activity


def list_activities(db: Session, meetup_id: int, user: Profile) -> list[Activity]:
    """Return the meetup's activities by ``activity_time`` with RSVPs loaded."""
    membership.get_meetup(db, meetup_id)
    if not membership.is_member(db, meetup_id, user.id):
        raise AuthorizationError("Unable to load activities")
    return (
        db.query(Activity)
        .options(selectinload(Activity.responses))
        .filter(Activity.meetup_id == meetup_id)
        .order_by(Activity.activity_time, Activity.id)
        .all()
    )


def _own_activity(db: Session, activity_id: int, user: Profile, action: str) -> Activity:
    activity = db.get(Activity, activity_id)
    if activity is None:
        raise NotFoundError("Activity not found")
    if activity.created_by != user.id:
        raise AuthorizationError(f"Unable to {action}")
    return activity


def update_activity(db: Session, activity_id: int, user: Profile, data: ActivityUpdate) -> Activity:
    activity = _own_activity(db, activity_id, user, "update activity")
    changes = data.model_dump(exclude_unset=True)
    if "title" in changes and changes["title"] is not None:
        activity.title = sanitize_text(changes["title"]) or changes["title"].strip()
    if "description" in changes:
        activity.description = _clean_optional(changes["description"])
    if "location" in changes:
        activity.location = _clean_optional(changes["location"])
    if changes.get("activity_time") is not None:
        activity.activity_time = changes["activity_time"]
    db.commit()
    db.refresh(activity)
    return activity


def delete_activity(db: Session, activity_id: int, user: Profile) -> None:
    activity = _own_activity(db, activity_id, user, "delete activity")
    db.delete(activity)
    db.commit()


def _find_response(db: Session, activity_id: int, user_id: str) -> ActivityResponse | None:
    return (
        db.query(ActivityResponse)
        .filter(ActivityResponse.activity_id == activity_id, ActivityResponse.user_id == user_id)
        .first()
    )


def respond(db: Session, activity_id: int, user: Profile, response: str) -> ActivityResponse:
    """Upsert the caller's RSVP; at most one row exists per (activity, user).

    A concurrent first insert that loses the unique-key race is retried as
    an update of the winner's row.
    """
    activity = db.get(Activity, activity_id)
    if activity is None:
        raise NotFoundError("Activity not found")
    membership.require_member(db, activity.meetup_id, user.id, "respond to activity")

    existing = _find_response(db, activity_id, user.id)
    if existing is not None:
        existing.response = response
        db.commit()
        db.refresh(existing)
        return existing

    rsvp = ActivityResponse(activity_id=activity_id, user_id=user.id, response=response)
    db.add(rsvp)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.debug("RSVP race on activity %s for %s; updating instead", activity_id, user.id)
        existing = _find_response(db, activity_id, user.id)
        if existing is None:
            raise
        existing.response = response
        db.commit()
        rsvp = existing
    db.refresh(rsvp)
    return rsvp


def remove_response(db: Session, activity_id: int, user: Profile) -> None:
    existing = _find_response(db, activity_id, user.id)
    if existing is None:
        raise NotFoundError("Response not found")
    db.delete(existing)
    db.commit()
