"""Realtime change streams over WebSocket and server-sent events.

Both transports subscribe to the in-process change feed before emitting the
``SUBSCRIBED`` control event, so nothing committed after that event is missed.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import (
    APIRouter,
    HTTPException,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from wanderbuddy.api.v1.dependencies import CurrentUserDep, SessionDep, authenticate_token
from wanderbuddy.core.channels import ChannelKey, parse_channel
from wanderbuddy.models import Profile
from wanderbuddy.services import membership
from wanderbuddy.services.realtime import (
    Subscription,
    SubscriptionRevoked,
    get_change_feed,
    subscribed_event,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/realtime", tags=["realtime"])

KEEPALIVE_SECONDS = 15.0


def _authorize_channel(db: Session, raw_channel: str, user: Profile) -> ChannelKey:
    try:
        key = parse_channel(raw_channel)
    except ValueError as err:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown channel") from err
    if not membership.can_read_channel(db, key, user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unable to subscribe")
    return key


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


async def _pump(websocket: WebSocket, subscription: Subscription) -> None:
    receiver = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        while True:
            getter = asyncio.create_task(subscription.get())
            done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if getter not in done:
                getter.cancel()
                return
            await websocket.send_json(getter.result())
    finally:
        receiver.cancel()


@router.websocket("/ws")
async def channel_socket(
    websocket: WebSocket,
    db: SessionDep,
    channel: str = Query(...),
    token: str = Query(...),
) -> None:
    """Stream change events of one channel to an authenticated subscriber."""
    try:
        user = authenticate_token(token, db)
        key = _authorize_channel(db, channel, user)
    except HTTPException as exc:
        logger.info("Rejected realtime subscription to %s: %s", channel, exc.detail)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    # The socket may stay open for hours; return the connection to the pool.
    db.commit()

    await websocket.accept()
    subscription = get_change_feed().subscribe(str(key), user_id=user.id)
    try:
        await websocket.send_json(subscribed_event(str(key)))
        await _pump(websocket, subscription)
    except WebSocketDisconnect:
        logger.debug("Subscriber to %s disconnected", key)
    except SubscriptionRevoked:
        logger.info("Closing revoked subscription of %s to %s", user.id, key)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
    finally:
        subscription.close()


def _format_sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


@router.get("/stream")
async def channel_stream(
    request: Request,
    current_user: CurrentUserDep,
    db: SessionDep,
    channel: str = Query(...),
) -> StreamingResponse:
    """Server-sent event stream of one channel's change events."""
    key = _authorize_channel(db, channel, current_user)
    db.commit()
    subscription = get_change_feed().subscribe(str(key), user_id=current_user.id)

    async def event_source() -> AsyncIterator[str]:
        try:
            yield _format_sse(subscribed_event(str(key)))
            while not await request.is_disconnected():
                try:
                    change = await asyncio.wait_for(subscription.get(), timeout=KEEPALIVE_SECONDS)
                except TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                except SubscriptionRevoked:
                    logger.info("Ending revoked stream of %s to %s", current_user.id, key)
                    return
                yield _format_sse(change)
        finally:
            subscription.close()

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
