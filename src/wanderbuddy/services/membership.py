"""Membership and join gate for meetups.

Open meetups admit members directly; locked meetups route through a single
:class:`JoinRequest` row per (meetup, user) that the creator decides. Every
path that creates a membership checks capacity first.
"""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wanderbuddy.core.channels import ChannelKey, meetup_channel
from wanderbuddy.core.errors import (
    AuthorizationError,
    CapacityError,
    ConflictError,
    NotFoundError,
)
from wanderbuddy.models import JoinRequest, Meetup, MeetupMember, Profile
from wanderbuddy.models.meetup import (
    JOIN_STATUS_APPROVED,
    JOIN_STATUS_PENDING,
    JOIN_STATUS_REJECTED,
    MEETUP_TYPE_LOCKED,
)
from wanderbuddy.models.notification import (
    NOTIFICATION_JOIN_REQUEST,
    NOTIFICATION_REQUEST_ACCEPTED,
)
from wanderbuddy.services.notifications import enqueue_fanout
from wanderbuddy.services.realtime import get_change_feed

logger = logging.getLogger(__name__)


def get_meetup(db: Session, meetup_id: int) -> Meetup:
    meetup = db.get(Meetup, meetup_id)
    if meetup is None:
        raise NotFoundError("Meetup not found")
    return meetup


def is_member(db: Session, meetup_id: int, user_id: str) -> bool:
    return (
        db.query(MeetupMember.id)
        .filter(MeetupMember.meetup_id == meetup_id, MeetupMember.user_id == user_id)
        .first()
        is not None
    )


def member_count(db: Session, meetup_id: int) -> int:
    return (
        db.query(func.count(MeetupMember.id))
        .filter(MeetupMember.meetup_id == meetup_id)
        .scalar()
        or 0
    )


def has_capacity(db: Session, meetup: Meetup) -> bool:
    """Return True while another member fits; the unlimited sentinel always fits."""
    if meetup.is_unlimited:
        return True
    return member_count(db, meetup.id) < meetup.max_members


def require_member(db: Session, meetup_id: int, user_id: str, action: str) -> Meetup:
    """Return the meetup when ``user_id`` belongs to it.

    Raises:
        NotFoundError: The meetup does not exist.
        AuthorizationError: The user is not a member; the detail names ``action``.
    """
    meetup = get_meetup(db, meetup_id)
    if not is_member(db, meetup_id, user_id):
        raise AuthorizationError(f"Unable to {action}")
    return meetup


def require_creator(db: Session, meetup_id: int, user_id: str, action: str) -> Meetup:
    meetup = get_meetup(db, meetup_id)
    if meetup.creator_id != user_id:
        raise AuthorizationError(f"Unable to {action}")
    return meetup


def can_read_channel(db: Session, channel: ChannelKey, user_id: str) -> bool:
    if channel.is_community:
        return True
    if channel.is_meetup:
        return channel.meetup_id is not None and is_member(db, channel.meetup_id, user_id)
    return channel.user_id == user_id


def _add_member(db: Session, meetup: Meetup, user_id: str) -> MeetupMember:
    if not has_capacity(db, meetup):
        raise CapacityError("This meetup is full")
    membership = MeetupMember(meetup_id=meetup.id, user_id=user_id)
    db.add(membership)
    return membership


def join_meetup(db: Session, meetup_id: int, user: Profile) -> MeetupMember:
    """Join an open meetup directly."""
    meetup = get_meetup(db, meetup_id)
    if is_member(db, meetup_id, user.id):
        raise ConflictError("Already a member of this meetup")
    if meetup.type == MEETUP_TYPE_LOCKED:
        raise ConflictError("This meetup requires approval to join")
    membership = _add_member(db, meetup, user.id)
    try:
        db.commit()
    except IntegrityError as err:
        db.rollback()
        raise ConflictError("Already a member of this meetup") from err
    db.refresh(membership)
    logger.info("User %s joined meetup %s", user.id, meetup_id)
    return membership


def request_to_join(db: Session, meetup_id: int, user: Profile) -> JoinRequest:
    """Submit, or resubmit after rejection, a request to join a locked meetup."""
    meetup = get_meetup(db, meetup_id)
    if is_member(db, meetup_id, user.id):
        raise ConflictError("Already a member of this meetup")
    if meetup.type != MEETUP_TYPE_LOCKED:
        raise ConflictError("This meetup is open; join it directly")
    if not has_capacity(db, meetup):
        raise CapacityError("This meetup is full")

    request = (
        db.query(JoinRequest)
        .filter(JoinRequest.meetup_id == meetup_id, JoinRequest.user_id == user.id)
        .first()
    )
    if request is not None:
        if request.status == JOIN_STATUS_PENDING:
            raise ConflictError("Request already sent")
        # Rejected, or approved for a member who has since left.
        request.status = JOIN_STATUS_PENDING
    else:
        request = JoinRequest(meetup_id=meetup_id, user_id=user.id, status=JOIN_STATUS_PENDING)
        db.add(request)
    db.flush()

    enqueue_fanout(
        db,
        kind=NOTIFICATION_JOIN_REQUEST,
        source_id=request.id,
        meetup_id=meetup_id,
        actor_id=user.id,
        recipient_ids=[meetup.creator_id],
    )
    try:
        db.commit()
    except IntegrityError as err:
        db.rollback()
        raise ConflictError("Request already sent") from err
    db.refresh(request)
    return request


def get_join_status(db: Session, meetup_id: int, user_id: str) -> str | None:
    request = (
        db.query(JoinRequest)
        .filter(JoinRequest.meetup_id == meetup_id, JoinRequest.user_id == user_id)
        .first()
    )
    return request.status if request else None


def list_requests(
    db: Session,
    meetup_id: int,
    actor: Profile,
    status: str | None = JOIN_STATUS_PENDING,
) -> list[JoinRequest]:
    require_creator(db, meetup_id, actor.id, "view join requests")
    query = db.query(JoinRequest).filter(JoinRequest.meetup_id == meetup_id)
    if status is not None:
        query = query.filter(JoinRequest.status == status)
    return query.order_by(JoinRequest.created_at, JoinRequest.id).all()


def decide_request(db: Session, request_id: int, actor: Profile, approve: bool) -> JoinRequest:
    """Approve or reject a pending request; approval creates the membership."""
    request = db.get(JoinRequest, request_id)
    if request is None:
        raise NotFoundError("Join request not found")
    action = "approve request" if approve else "reject request"
    meetup = require_creator(db, request.meetup_id, actor.id, action)
    if request.status != JOIN_STATUS_PENDING:
        raise ConflictError("Request already handled")

    if approve:
        if not is_member(db, meetup.id, request.user_id):
            _add_member(db, meetup, request.user_id)
        request.status = JOIN_STATUS_APPROVED
        db.flush()
        enqueue_fanout(
            db,
            kind=NOTIFICATION_REQUEST_ACCEPTED,
            source_id=request.id,
            meetup_id=meetup.id,
            actor_id=actor.id,
            recipient_ids=[request.user_id],
        )
    else:
        request.status = JOIN_STATUS_REJECTED
    db.commit()
    db.refresh(request)
    logger.info("Join request %s %s", request.id, request.status)
    return request


def leave_meetup(db: Session, meetup_id: int, user: Profile) -> None:
    meetup = get_meetup(db, meetup_id)
    if meetup.creator_id == user.id:
        raise ConflictError("The creator cannot leave their own meetup")
    membership = (
        db.query(MeetupMember)
        .filter(MeetupMember.meetup_id == meetup_id, MeetupMember.user_id == user.id)
        .first()
    )
    if membership is None:
        raise NotFoundError("Not a member of this meetup")
    db.delete(membership)
    db.commit()
    get_change_feed().revoke(meetup_channel(meetup_id), user.id)


def list_members(db: Session, meetup_id: int) -> list[MeetupMember]:
    get_meetup(db, meetup_id)
    return (
        db.query(MeetupMember)
        .filter(MeetupMember.meetup_id == meetup_id)
        .order_by(MeetupMember.joined_at, MeetupMember.id)
        .all()
    )


def member_ids(db: Session, meetup_id: int) -> list[str]:
    rows = (
        db.query(MeetupMember.user_id)
        .filter(MeetupMember.meetup_id == meetup_id)
        .order_by(MeetupMember.id)
        .all()
    )
    return [row[0] for row in rows]
