"""Tests for the notification fan-out outbox and its background worker."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from wanderbuddy.core.settings import settings
from wanderbuddy.db.time import utcnow
from wanderbuddy.models import FanoutTask, Message, Notification
from wanderbuddy.models.fanout import (
    FANOUT_STATUS_DONE,
    FANOUT_STATUS_FAILED,
    FANOUT_STATUS_PENDING,
    FANOUT_STATUS_PROCESSING,
)
from wanderbuddy.models.notification import NOTIFICATION_MESSAGE
from wanderbuddy.services import membership
from wanderbuddy.services import notifications as notification_service
from wanderbuddy.services.notifications import (
    NotificationFanoutWorker,
    drain_fanout,
    enqueue_fanout,
    pending_tasks,
    process_task,
)


@pytest.fixture
def pending_message_task(db_session, meetup, alice, bob, carol):
    """A committed meetup message whose fan-out has not been dispatched yet."""
    membership.join_meetup(db_session, meetup.id, bob)
    membership.join_meetup(db_session, meetup.id, carol)
    message = Message(meetup_id=meetup.id, user_id=alice.id, content="outbox")
    db_session.add(message)
    db_session.flush()
    task = enqueue_fanout(
        db_session,
        kind=NOTIFICATION_MESSAGE,
        source_id=message.id,
        meetup_id=meetup.id,
        actor_id=alice.id,
    )
    db_session.commit()
    return task


def test_worker_run_once_dispatches_pending(session_factory, db_session, pending_message_task) -> None:
    worker = NotificationFanoutWorker(session_factory=session_factory)
    assert worker.run_once() == 2

    db_session.expire_all()
    assert db_session.get(FanoutTask, pending_message_task.id).status == FANOUT_STATUS_DONE
    assert db_session.query(Notification).count() == 2
    assert worker.run_once() == 0


def test_failure_is_retried_then_marked_failed(mocker, monkeypatch, db_session, pending_message_task) -> None:
    monkeypatch.setattr(settings, "fanout_max_retries", 2)
    failing = mocker.Mock(side_effect=OperationalError("INSERT", {}, Exception("database is locked")))
    mocker.patch.dict(notification_service._BUILDERS, {NOTIFICATION_MESSAGE: failing})

    assert drain_fanout(db_session) == 0
    task = db_session.get(FanoutTask, pending_message_task.id)
    assert task.status == FANOUT_STATUS_PENDING
    assert task.retry_count == 1
    assert "database is locked" in task.last_error

    drain_fanout(db_session)
    task = db_session.get(FanoutTask, pending_message_task.id)
    assert task.status == FANOUT_STATUS_FAILED
    assert task.retry_count == 2

    drain_fanout(db_session)
    assert failing.call_count == 2
    assert db_session.query(Notification).count() == 0
    # The triggering message is unaffected.
    assert db_session.query(Message).count() == 1


def _recipients(db_session) -> list[str]:
    return sorted(n.user_id for n in db_session.query(Notification).all())


def test_concurrent_dispatchers_write_once(session_factory, db_session, pending_message_task) -> None:
    with session_factory() as first, session_factory() as second:
        first_batch = pending_tasks(first)
        second_batch = pending_tasks(second)
        assert [t.id for t in first_batch] == [t.id for t in second_batch] == [pending_message_task.id]

        assert process_task(first, first_batch[0]) == 2
        assert process_task(second, second_batch[0]) == 0

    assert _recipients(db_session) == ["user-bob", "user-carol"]
    db_session.expire_all()
    assert db_session.get(FanoutTask, pending_message_task.id).status == FANOUT_STATUS_DONE


def test_fresh_claim_is_left_alone(db_session, pending_message_task) -> None:
    pending_message_task.status = FANOUT_STATUS_PROCESSING
    pending_message_task.claimed_at = utcnow()
    db_session.commit()

    assert pending_tasks(db_session) == []
    assert drain_fanout(db_session) == 0
    assert db_session.query(Notification).count() == 0


def test_stale_claim_is_taken_over(db_session, pending_message_task) -> None:
    pending_message_task.status = FANOUT_STATUS_PROCESSING
    pending_message_task.claimed_at = utcnow() - timedelta(seconds=settings.fanout_claim_timeout_seconds + 60)
    db_session.commit()

    assert drain_fanout(db_session) == 2
    assert _recipients(db_session) == ["user-bob", "user-carol"]


def test_recipients_fixed_at_insert_time(db_session, pending_message_task, meetup, carol, make_user) -> None:
    assert pending_message_task.recipient_ids == ["user-bob", "user-carol"]
    dave = make_user("user-dave", username="dave")
    membership.join_meetup(db_session, meetup.id, dave)
    membership.leave_meetup(db_session, meetup.id, carol)

    drain_fanout(db_session)
    assert _recipients(db_session) == ["user-bob", "user-carol"]


def test_missing_source_completes_task(db_session, meetup, alice) -> None:
    task = enqueue_fanout(
        db_session,
        kind=NOTIFICATION_MESSAGE,
        source_id=424242,
        meetup_id=meetup.id,
        actor_id=alice.id,
    )
    db_session.commit()

    assert drain_fanout(db_session) == 0
    assert db_session.get(FanoutTask, task.id).status == FANOUT_STATUS_DONE


def test_unknown_kind_counts_as_failure(db_session, meetup, alice) -> None:
    task = enqueue_fanout(db_session, kind="postcard", source_id=1, meetup_id=meetup.id, actor_id=alice.id)
    db_session.commit()
    drain_fanout(db_session)
    assert db_session.get(FanoutTask, task.id).retry_count == 1


async def test_worker_start_and_stop(mocker) -> None:
    worker = NotificationFanoutWorker(interval=0.1)
    run_once = mocker.patch.object(worker, "run_once", return_value=0)

    await worker.start()
    assert worker.running
    await asyncio.sleep(0.05)
    await worker.stop()

    assert not worker.running
    assert run_once.call_count >= 1
