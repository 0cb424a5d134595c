"""Notification fan-out and recipient-side notification operations.

Triggering inserts write a :class:`FanoutTask` in their own transaction. The
dispatcher turns each task into one :class:`Notification` per recipient,
either inline right after the request commits or later from
:class:`NotificationFanoutWorker`. A failing task is retried and never
affects the row that triggered it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import and_, func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wanderbuddy.core.errors import NotFoundError
from wanderbuddy.core.settings import settings
from wanderbuddy.db.session import SessionLocal
from wanderbuddy.db.time import utcnow
from wanderbuddy.models import (
    Activity,
    FanoutTask,
    JoinRequest,
    Meetup,
    MeetupMember,
    Message,
    Notification,
    Profile,
)
from wanderbuddy.models.fanout import (
    FANOUT_STATUS_DONE,
    FANOUT_STATUS_FAILED,
    FANOUT_STATUS_PENDING,
    FANOUT_STATUS_PROCESSING,
)
from wanderbuddy.models.notification import (
    NOTIFICATION_ACTIVITY,
    NOTIFICATION_JOIN_REQUEST,
    NOTIFICATION_MESSAGE,
    NOTIFICATION_REQUEST_ACCEPTED,
)

logger = logging.getLogger(__name__)

FALLBACK_SENDER_NAME = "Someone"


class FanoutSourceMissing(LookupError):
    """The row a task refers to no longer exists."""


def enqueue_fanout(
    db: Session,
    *,
    kind: str,
    source_id: int,
    meetup_id: int,
    actor_id: str,
    recipient_ids: list[str] | None = None,
) -> FanoutTask:
    """Add a fan-out task to the caller's transaction without committing.

    Message and activity tasks default to every other member of the meetup as
    seen by the caller's transaction, i.e. the members at insert time.
    """
    if recipient_ids is None:
        if kind in (NOTIFICATION_MESSAGE, NOTIFICATION_ACTIVITY):
            recipient_ids = _other_member_ids(db, meetup_id, actor_id)
        else:
            recipient_ids = []
    task = FanoutTask(
        kind=kind,
        source_id=source_id,
        meetup_id=meetup_id,
        actor_id=actor_id,
        recipient_ids=list(recipient_ids),
        status=FANOUT_STATUS_PENDING,
        retry_count=0,
    )
    db.add(task)
    return task


def _sender_name(db: Session, user_id: str) -> str:
    profile = db.get(Profile, user_id)
    if profile is not None and profile.username:
        return profile.username
    return FALLBACK_SENDER_NAME


def _other_member_ids(db: Session, meetup_id: int, exclude: str) -> list[str]:
    rows = (
        db.query(MeetupMember.user_id)
        .filter(MeetupMember.meetup_id == meetup_id, MeetupMember.user_id != exclude)
        .order_by(MeetupMember.id)
        .all()
    )
    return [row[0] for row in rows]


def _build_message_notifications(db: Session, task: FanoutTask, meetup: Meetup) -> list[Notification]:
    message = db.get(Message, task.source_id)
    if message is None:
        raise FanoutSourceMissing(f"message {task.source_id}")
    preview = message.content[: settings.notification_preview_chars]
    title = f"New message in {meetup.title}"
    body = f"{_sender_name(db, task.actor_id)}: {preview}"
    return [
        Notification(
            user_id=user_id,
            type=NOTIFICATION_MESSAGE,
            title=title,
            message=body,
            meetup_id=meetup.id,
        )
        for user_id in task.recipient_ids
    ]


def _build_activity_notifications(db: Session, task: FanoutTask, meetup: Meetup) -> list[Notification]:
    activity = db.get(Activity, task.source_id)
    if activity is None:
        raise FanoutSourceMissing(f"activity {task.source_id}")
    title = f"New activity in {meetup.title}"
    body = f"{_sender_name(db, task.actor_id)}: created {activity.title}"
    return [
        Notification(
            user_id=user_id,
            type=NOTIFICATION_ACTIVITY,
            title=title,
            message=body,
            meetup_id=meetup.id,
        )
        for user_id in task.recipient_ids
    ]


def _build_join_request_notifications(
    db: Session, task: FanoutTask, meetup: Meetup
) -> list[Notification]:
    request = db.get(JoinRequest, task.source_id)
    if request is None:
        raise FanoutSourceMissing(f"join request {task.source_id}")
    return [
        Notification(
            user_id=user_id,
            type=NOTIFICATION_JOIN_REQUEST,
            title=f"New join request for {meetup.title}",
            message=f"{_sender_name(db, request.user_id)} wants to join {meetup.title}",
            meetup_id=meetup.id,
        )
        for user_id in task.recipient_ids
    ]


def _build_request_accepted_notifications(
    db: Session, task: FanoutTask, meetup: Meetup
) -> list[Notification]:
    request = db.get(JoinRequest, task.source_id)
    if request is None:
        raise FanoutSourceMissing(f"join request {task.source_id}")
    return [
        Notification(
            user_id=user_id,
            type=NOTIFICATION_REQUEST_ACCEPTED,
            title=f"Request accepted for {meetup.title}",
            message=f"You are now a member of {meetup.title}",
            meetup_id=meetup.id,
        )
        for user_id in task.recipient_ids
    ]


_BUILDERS: dict[str, Callable[[Session, FanoutTask, Meetup], list[Notification]]] = {
    NOTIFICATION_MESSAGE: _build_message_notifications,
    NOTIFICATION_ACTIVITY: _build_activity_notifications,
    NOTIFICATION_JOIN_REQUEST: _build_join_request_notifications,
    NOTIFICATION_REQUEST_ACCEPTED: _build_request_accepted_notifications,
}


def _claimable(now: datetime):
    stale_before = now - timedelta(seconds=settings.fanout_claim_timeout_seconds)
    return or_(
        FanoutTask.status == FANOUT_STATUS_PENDING,
        and_(FanoutTask.status == FANOUT_STATUS_PROCESSING, FanoutTask.claimed_at < stale_before),
    )


def claim_task(db: Session, task: FanoutTask) -> bool:
    """Atomically take ``task`` for this dispatcher; False if someone else has it."""
    now = utcnow()
    result = db.execute(
        update(FanoutTask)
        .where(FanoutTask.id == task.id, _claimable(now))
        .values(status=FANOUT_STATUS_PROCESSING, claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        return False
    db.refresh(task)
    return True


def process_task(db: Session, task: FanoutTask) -> int:
    """Claim one task, write its notifications and mark it done.

    Returns the number of notifications written; 0 when another dispatcher
    claimed the task first. Commits on success; on a database error the
    caller's transaction is rolled back and the task is released for retry
    in a fresh transaction.
    """
    task_id = task.id
    try:
        claimed = claim_task(db, task)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Could not claim fan-out task %s: %s", task_id, exc)
        return 0
    if not claimed:
        logger.debug("Fan-out task %s already claimed", task_id)
        return 0
    try:
        builder = _BUILDERS.get(task.kind)
        if builder is None:
            raise ValueError(f"Unknown fan-out kind {task.kind!r}")
        meetup = db.get(Meetup, task.meetup_id)
        if meetup is None:
            raise FanoutSourceMissing(f"meetup {task.meetup_id}")
        notifications = builder(db, task, meetup)
        db.add_all(notifications)
        task.status = FANOUT_STATUS_DONE
        task.last_error = None
        db.commit()
        return len(notifications)
    except FanoutSourceMissing as exc:
        # Source deleted before dispatch; nothing left to notify about.
        db.rollback()
        logger.info("Skipping fan-out task %s: %s no longer exists", task_id, exc)
        _finish_task(db, task_id, FANOUT_STATUS_DONE, None)
        return 0
    except (SQLAlchemyError, ValueError, TypeError, KeyError, AttributeError) as exc:
        db.rollback()
        logger.error("Fan-out task %s failed: %s", task_id, exc, exc_info=True)
        _record_failure(db, task_id, str(exc))
        return 0


def _finish_task(db: Session, task_id: int, status: str, error: str | None) -> None:
    task = db.get(FanoutTask, task_id)
    if task is None:
        return
    task.status = status
    task.last_error = error
    task.claimed_at = None
    db.commit()


def _record_failure(db: Session, task_id: int, error: str) -> None:
    try:
        task = db.get(FanoutTask, task_id)
        if task is None:
            return
        task.retry_count += 1
        task.last_error = error[:1000]
        task.claimed_at = None
        if task.retry_count >= settings.fanout_max_retries:
            task.status = FANOUT_STATUS_FAILED
            logger.warning("Fan-out task %s marked failed after %d attempts", task_id, task.retry_count)
        else:
            task.status = FANOUT_STATUS_PENDING
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Could not record failure for fan-out task %s: %s", task_id, exc)


def pending_tasks(db: Session, limit: int | None = None) -> list[FanoutTask]:
    return (
        db.query(FanoutTask)
        .filter(_claimable(utcnow()))
        .order_by(FanoutTask.id)
        .limit(limit or settings.fanout_batch_size)
        .all()
    )


def drain_fanout(db: Session, limit: int | None = None) -> int:
    """Dispatch up to ``limit`` pending tasks; returns notifications written.

    Called inline after a triggering request commits. Never raises for a
    task failure, so the caller's already-committed insert stands.
    """
    try:
        tasks = pending_tasks(db, limit)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Could not load pending fan-out tasks: %s", exc)
        return 0
    written = 0
    for task in tasks:
        written += process_task(db, task)
    return written


class NotificationFanoutWorker:
    """Periodically dispatches fan-out tasks left pending by failed inline drains."""

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        interval: float | None = None,
    ) -> None:
        self._session_factory = session_factory or SessionLocal
        self._interval = interval
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background dispatch loop."""
        if not self.running:
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background dispatch loop."""
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None

    async def _run(self) -> None:
        interval = max(0.1, float(self._interval or settings.fanout_poll_interval_seconds))
        while not self._stopping.is_set():
            try:
                await asyncio.to_thread(self.run_once)
            except SQLAlchemyError as exc:
                logger.warning("NotificationFanoutWorker encountered database error: %s", exc)
                await self._sleep(min(interval * 4, 30.0))
                continue
            await self._sleep(interval)

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except TimeoutError:
            pass

    def run_once(self) -> int:
        with self._session_factory() as db:
            written = drain_fanout(db)
        if written:
            logger.debug("NotificationFanoutWorker wrote %d notification(s)", written)
        return written


def list_notifications(
    db: Session,
    user: Profile,
    unread_only: bool = False,
    limit: int = 50,
) -> list[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user.id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(db: Session, user: Profile) -> int:
    return (
        db.query(func.count(Notification.id))
        .filter(Notification.user_id == user.id, Notification.is_read.is_(False))
        .scalar()
        or 0
    )


def _own_notification(db: Session, notification_id: int, user: Profile) -> Notification:
    notification = db.get(Notification, notification_id)
    # Other users' rows are reported as missing.
    if notification is None or notification.user_id != user.id:
        raise NotFoundError("Notification not found")
    return notification


def mark_read(db: Session, notification_id: int, user: Profile) -> Notification:
    notification = _own_notification(db, notification_id, user)
    if not notification.is_read:
        notification.is_read = True
        db.commit()
        db.refresh(notification)
    return notification


def delete_notification(db: Session, notification_id: int, user: Profile) -> None:
    notification = _own_notification(db, notification_id, user)
    db.delete(notification)
    db.commit()
