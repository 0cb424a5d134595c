"""Recipient-side notification endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query, Response, status

from wanderbuddy.api.v1.dependencies import CurrentUserDep, SessionDep
from wanderbuddy.models import Notification
from wanderbuddy.schemas.notification import NotificationOut, UnreadCountOut
from wanderbuddy.services import notifications as notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=list[NotificationOut])
async def list_notifications(
    current_user: CurrentUserDep,
    db: SessionDep,
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
) -> list[Notification]:
    """The caller's notifications, newest first."""
    return notification_service.list_notifications(db, current_user, unread_only, limit)


@router.get("/unread-count", response_model=UnreadCountOut)
async def unread_count(current_user: CurrentUserDep, db: SessionDep) -> UnreadCountOut:
    return UnreadCountOut(unread=notification_service.unread_count(db, current_user))


@router.post("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(notification_id: int, current_user: CurrentUserDep, db: SessionDep) -> Notification:
    return notification_service.mark_read(db, notification_id, current_user)


@router.delete(
    "/{notification_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def delete_notification(notification_id: int, current_user: CurrentUserDep, db: SessionDep) -> Response:
    notification_service.delete_notification(db, notification_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
