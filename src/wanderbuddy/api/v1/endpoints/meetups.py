"""Meetup and membership endpoints for the WanderBuddy API."""

from __future__ import annotations

from datetime import date
from typing import Literal

from fastapi import APIRouter, Query, Response, status
from sqlalchemy.orm import Session

from wanderbuddy.api.v1.dependencies import CurrentUserDep, SessionDep
from wanderbuddy.models import JoinRequest, Meetup, MeetupMember, Profile
from wanderbuddy.schemas.meetup import (
    JoinRequestOut,
    JoinStatusOut,
    MeetupCreate,
    MeetupMemberOut,
    MeetupOut,
    MeetupUpdate,
)
from wanderbuddy.services import meetups as meetup_service
from wanderbuddy.services import membership
from wanderbuddy.services.notifications import drain_fanout

router = APIRouter(prefix="/meetups", tags=["meetups"])
join_requests_router = APIRouter(prefix="/join-requests", tags=["meetups"])


def _meetup_out(db: Session, meetups: list[Meetup], viewer: Profile) -> list[MeetupOut]:
    counts = meetup_service.member_counts(db, [meetup.id for meetup in meetups])
    joined = {
        row[0]
        for row in db.query(MeetupMember.meetup_id)
        .filter(MeetupMember.user_id == viewer.id)
        .all()
    }
    results = []
    for meetup in meetups:
        out = MeetupOut.model_validate(meetup)
        out.member_count = counts.get(meetup.id, 0)
        out.creator_username = meetup.creator.username if meetup.creator else None
        out.is_member = meetup.id in joined
        results.append(out)
    return results


@router.get("/", response_model=list[MeetupOut])
async def list_meetups(
    current_user: CurrentUserDep,
    db: SessionDep,
    q: str | None = Query(None, max_length=200),
    trip_type: Literal["all", "paid", "free"] = "all",
    min_members: int | None = Query(None, ge=2),
    max_members: int | None = Query(None, ge=2),
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[MeetupOut]:
    """Discover upcoming and ongoing meetups."""
    meetups = meetup_service.list_meetups(
        db,
        q=q,
        trip_type=trip_type,
        min_members=min_members,
        max_members=max_members,
        date_from=date_from,
        date_to=date_to,
    )
    return _meetup_out(db, meetups, current_user)


@router.get("/mine", response_model=list[MeetupOut])
async def my_meetups(current_user: CurrentUserDep, db: SessionDep) -> list[MeetupOut]:
    """Meetups the caller created or joined."""
    return _meetup_out(db, meetup_service.my_meetups(db, current_user), current_user)


@router.post("/", response_model=MeetupOut, status_code=status.HTTP_201_CREATED)
async def create_meetup(
    meetup_data: MeetupCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> MeetupOut:
    """Create a meetup; the creator becomes its first member."""
    meetup = meetup_service.create_meetup(db, current_user, meetup_data)
    return _meetup_out(db, [meetup], current_user)[0]


@router.get("/{meetup_id}", response_model=MeetupOut)
async def get_meetup(meetup_id: int, current_user: CurrentUserDep, db: SessionDep) -> MeetupOut:
    meetup = membership.get_meetup(db, meetup_id)
    return _meetup_out(db, [meetup], current_user)[0]


@router.patch("/{meetup_id}", response_model=MeetupOut)
async def update_meetup(
    meetup_id: int,
    meetup_data: MeetupUpdate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> MeetupOut:
    meetup = meetup_service.update_meetup(db, meetup_id, current_user, meetup_data)
    return _meetup_out(db, [meetup], current_user)[0]


@router.delete(
    "/{meetup_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def delete_meetup(meetup_id: int, current_user: CurrentUserDep, db: SessionDep) -> Response:
    meetup_service.delete_meetup(db, meetup_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{meetup_id}/join", status_code=status.HTTP_201_CREATED)
async def join_meetup(meetup_id: int, current_user: CurrentUserDep, db: SessionDep) -> dict[str, str]:
    """Join an open meetup."""
    membership.join_meetup(db, meetup_id, current_user)
    return {"status": "joined"}


@router.delete(
    "/{meetup_id}/leave",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def leave_meetup(meetup_id: int, current_user: CurrentUserDep, db: SessionDep) -> Response:
    membership.leave_meetup(db, meetup_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{meetup_id}/members", response_model=list[MeetupMemberOut])
async def list_members(
    meetup_id: int,
    _current_user: CurrentUserDep,
    db: SessionDep,
) -> list[MeetupMember]:
    return membership.list_members(db, meetup_id)


@router.get("/{meetup_id}/join-status", response_model=JoinStatusOut)
async def join_status(meetup_id: int, current_user: CurrentUserDep, db: SessionDep) -> JoinStatusOut:
    membership.get_meetup(db, meetup_id)
    return JoinStatusOut(
        is_member=membership.is_member(db, meetup_id, current_user.id),
        request_status=membership.get_join_status(db, meetup_id, current_user.id),
    )


@router.post(
    "/{meetup_id}/requests",
    response_model=JoinRequestOut,
    status_code=status.HTTP_201_CREATED,
)
async def request_to_join(meetup_id: int, current_user: CurrentUserDep, db: SessionDep) -> JoinRequest:
    """Ask to join a locked meetup, or resubmit after a rejection."""
    request = membership.request_to_join(db, meetup_id, current_user)
    drain_fanout(db)
    return request


@router.get("/{meetup_id}/requests", response_model=list[JoinRequestOut])
async def list_requests(
    meetup_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    status_filter: Literal["pending", "approved", "rejected"] | None = Query("pending", alias="status"),
) -> list[JoinRequest]:
    """Join requests for a meetup, visible to its creator only."""
    return membership.list_requests(db, meetup_id, current_user, status_filter)


@join_requests_router.post("/{request_id}/approve", response_model=JoinRequestOut)
async def approve_request(request_id: int, current_user: CurrentUserDep, db: SessionDep) -> JoinRequest:
    request = membership.decide_request(db, request_id, current_user, approve=True)
    drain_fanout(db)
    return request


@join_requests_router.post("/{request_id}/reject", response_model=JoinRequestOut)
async def reject_request(request_id: int, current_user: CurrentUserDep, db: SessionDep) -> JoinRequest:
    return membership.decide_request(db, request_id, current_user, approve=False)
