"""Activity scheduling and RSVP endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from wanderbuddy.api.v1.dependencies import CurrentUserDep, SessionDep
from wanderbuddy.models import Activity, ActivityResponse
from wanderbuddy.schemas.activity import (
    ActivityCreate,
    ActivityOut,
    ActivityRsvp,
    ActivityRsvpOut,
    ActivityUpdate,
)
from wanderbuddy.services import activities as activity_service
from wanderbuddy.services.notifications import drain_fanout

router = APIRouter(tags=["activities"])


@router.get("/meetups/{meetup_id}/activities", response_model=list[ActivityOut])
async def list_activities(meetup_id: int, current_user: CurrentUserDep, db: SessionDep) -> list[Activity]:
    """List a meetup's activities by scheduled time, RSVPs embedded."""
    return activity_service.list_activities(db, meetup_id, current_user)


@router.post(
    "/meetups/{meetup_id}/activities",
    response_model=ActivityOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_activity(
    meetup_id: int,
    activity_data: ActivityCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> Activity:
    activity = activity_service.create_activity(db, meetup_id, current_user, activity_data)
    drain_fanout(db)
    return activity


@router.patch("/activities/{activity_id}", response_model=ActivityOut)
async def update_activity(
    activity_id: int,
    activity_data: ActivityUpdate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> Activity:
    return activity_service.update_activity(db, activity_id, current_user, activity_data)


@router.delete(
    "/activities/{activity_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def delete_activity(activity_id: int, current_user: CurrentUserDep, db: SessionDep) -> Response:
    activity_service.delete_activity(db, activity_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/activities/{activity_id}/response", response_model=ActivityRsvpOut)
async def respond_to_activity(
    activity_id: int,
    rsvp: ActivityRsvp,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> ActivityResponse:
    """Set the caller's RSVP, replacing any earlier answer."""
    return activity_service.respond(db, activity_id, current_user, rsvp.response)


@router.delete(
    "/activities/{activity_id}/response",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def remove_response(activity_id: int, current_user: CurrentUserDep, db: SessionDep) -> Response:
    activity_service.remove_response(db, activity_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
