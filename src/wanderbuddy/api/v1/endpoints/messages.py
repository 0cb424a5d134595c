"""Chat endpoints for meetup channels and the community channel."""

from __future__ import annotations

from fastapi import APIRouter, File, Form, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from wanderbuddy.api.v1.dependencies import CurrentUserDep, SessionDep
from wanderbuddy.core.channels import COMMUNITY_CHANNEL, ChannelKey, parse_channel
from wanderbuddy.models import Message, Profile
from wanderbuddy.schemas.message import (
    MessageCreate,
    MessageOut,
    MessageUpdate,
    PinUpdate,
    SendResult,
)
from wanderbuddy.services import messages as message_service
from wanderbuddy.services.notifications import drain_fanout

router = APIRouter(tags=["messages"])

COMMUNITY = parse_channel(COMMUNITY_CHANNEL)


def _meetup(meetup_id: int) -> ChannelKey:
    return ChannelKey(kind="meetup", meetup_id=meetup_id)


async def _upload(
    channel: ChannelKey,
    file: UploadFile,
    client_token: str | None,
    current_user: Profile,
    db: Session,
) -> SendResult:
    data = await file.read()
    message_service.upload_attachment(
        db,
        channel,
        current_user,
        filename=file.filename,
        content_type=file.content_type,
        data=data,
        client_token=client_token,
    )
    if channel.is_meetup:
        drain_fanout(db)
    return SendResult()


@router.post(
    "/meetups/{meetup_id}/messages",
    response_model=SendResult,
    status_code=status.HTTP_201_CREATED,
)
async def send_meetup_message(
    meetup_id: int,
    payload: MessageCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> SendResult:
    """Post a text message to a meetup channel.

    The row is not returned; it reaches clients through the change feed.
    """
    message_service.send_message(
        db, _meetup(meetup_id), current_user, payload.content, payload.client_token
    )
    drain_fanout(db)
    return SendResult()


@router.get("/meetups/{meetup_id}/messages", response_model=list[MessageOut])
async def list_meetup_messages(
    meetup_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    limit: int | None = Query(None, ge=1, le=1000),
) -> list[Message]:
    return message_service.list_messages(db, _meetup(meetup_id), current_user, limit)


@router.get("/meetups/{meetup_id}/messages/pinned", response_model=list[MessageOut])
async def list_pinned_messages(meetup_id: int, current_user: CurrentUserDep, db: SessionDep) -> list[Message]:
    return message_service.list_pinned(db, meetup_id, current_user)


@router.post(
    "/meetups/{meetup_id}/attachments",
    response_model=SendResult,
    status_code=status.HTTP_201_CREATED,
)
async def upload_meetup_attachment(
    meetup_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    file: UploadFile = File(...),
    client_token: str | None = Form(None, max_length=64),
) -> SendResult:
    """Upload an image or file to a meetup channel."""
    return await _upload(_meetup(meetup_id), file, client_token, current_user, db)


@router.post(
    "/community/messages",
    response_model=SendResult,
    status_code=status.HTTP_201_CREATED,
)
async def send_community_message(
    payload: MessageCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> SendResult:
    """Post to the global community channel; community messages never notify."""
    message_service.send_message(db, COMMUNITY, current_user, payload.content, payload.client_token)
    return SendResult()


@router.get("/community/messages", response_model=list[MessageOut])
async def list_community_messages(
    current_user: CurrentUserDep,
    db: SessionDep,
    limit: int | None = Query(None, ge=1, le=1000),
) -> list[Message]:
    return message_service.list_messages(db, COMMUNITY, current_user, limit)


@router.post(
    "/community/attachments",
    response_model=SendResult,
    status_code=status.HTTP_201_CREATED,
)
async def upload_community_attachment(
    current_user: CurrentUserDep,
    db: SessionDep,
    file: UploadFile = File(...),
    client_token: str | None = Form(None, max_length=64),
) -> SendResult:
    return await _upload(COMMUNITY, file, client_token, current_user, db)


@router.get("/messages/{message_id}", response_model=MessageOut)
async def get_message(message_id: int, current_user: CurrentUserDep, db: SessionDep) -> Message:
    """Point read of one message with its author's profile."""
    return message_service.get_message(db, message_id, current_user)


@router.patch("/messages/{message_id}", response_model=MessageOut)
async def edit_message(
    message_id: int,
    payload: MessageUpdate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> Message:
    return message_service.edit_message(db, message_id, current_user, payload.content)


@router.delete(
    "/messages/{message_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def delete_message(message_id: int, current_user: CurrentUserDep, db: SessionDep) -> Response:
    message_service.delete_message(db, message_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/messages/{message_id}/pin", response_model=MessageOut)
async def pin_message(
    message_id: int,
    payload: PinUpdate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> Message:
    """Pin or unpin a meetup message (meetup creator only)."""
    return message_service.set_pinned(db, message_id, current_user, payload.pinned)
