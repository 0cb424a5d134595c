"""Tests for the in-process change feed and its session hooks."""

import asyncio

import pytest

from wanderbuddy.core.channels import EVENT_INSERT, TABLE_MESSAGES
from wanderbuddy.models import Activity, ActivityResponse, JoinRequest, Message, Notification
from wanderbuddy.services.realtime import ChangeFeed, SubscriptionRevoked, get_change_feed


async def _next(subscription, timeout: float = 1.0):
    return await asyncio.wait_for(subscription.get(), timeout=timeout)


async def test_commit_publishes_insert(db_session, alice) -> None:
    subscription = get_change_feed().subscribe("community")
    try:
        db_session.add(Message(meetup_id=None, user_id=alice.id, content="hi"))
        db_session.flush()
        await asyncio.sleep(0)
        assert subscription.queue.empty()

        db_session.commit()
        change = await _next(subscription)
        assert change["event"] == EVENT_INSERT
        assert change["table"] == TABLE_MESSAGES
        assert change["new"]["content"] == "hi"
        assert change["new"]["user_id"] == alice.id
    finally:
        subscription.close()


async def test_rollback_publishes_nothing(db_session, alice) -> None:
    subscription = get_change_feed().subscribe("community")
    try:
        db_session.add(Message(meetup_id=None, user_id=alice.id, content="oops"))
        db_session.flush()
        db_session.rollback()
        await asyncio.sleep(0.01)
        assert subscription.queue.empty()
    finally:
        subscription.close()


async def test_channels_are_isolated(db_session, meetup, alice) -> None:
    community = get_change_feed().subscribe("community")
    meetup_sub = get_change_feed().subscribe(f"meetup:{meetup.id}")
    try:
        db_session.add(Message(meetup_id=meetup.id, user_id=alice.id, content="private"))
        db_session.commit()
        change = await _next(meetup_sub)
        assert change["new"]["content"] == "private"
        assert community.queue.empty()
    finally:
        community.close()
        meetup_sub.close()


async def test_rsvp_and_notification_channels(db_session, meetup, alice, bob) -> None:
    activity = Activity(
        meetup_id=meetup.id,
        created_by=alice.id,
        title="Kayak",
        activity_time=meetup.created_at,
    )
    db_session.add(activity)
    db_session.commit()

    meetup_sub = get_change_feed().subscribe(f"meetup:{meetup.id}")
    user_sub = get_change_feed().subscribe(f"user:{bob.id}")
    try:
        db_session.add(ActivityResponse(activity_id=activity.id, user_id=alice.id, response="going"))
        db_session.add(
            Notification(user_id=bob.id, type="activity", title="t", message="m", meetup_id=meetup.id)
        )
        db_session.commit()
        rsvp = await _next(meetup_sub)
        assert rsvp["table"] == "activity_responses"
        notification = await _next(user_sub)
        assert notification["table"] == "notifications"
        assert notification["new"]["user_id"] == bob.id
    finally:
        meetup_sub.close()
        user_sub.close()


async def test_join_requests_reach_only_requester_and_creator(db_session, locked_meetup, alice, bob) -> None:
    feed = get_change_feed()
    meetup_sub = feed.subscribe(f"meetup:{locked_meetup.id}")
    creator_sub = feed.subscribe(f"user:{alice.id}")
    requester_sub = feed.subscribe(f"user:{bob.id}")
    try:
        db_session.add(JoinRequest(meetup_id=locked_meetup.id, user_id=bob.id))
        db_session.commit()
        for subscription in (creator_sub, requester_sub):
            change = await _next(subscription)
            assert change["table"] == "join_requests"
            assert change["new"]["user_id"] == bob.id
        await asyncio.sleep(0.01)
        assert meetup_sub.queue.empty()
    finally:
        meetup_sub.close()
        creator_sub.close()
        requester_sub.close()


async def test_full_queue_drops_and_counts() -> None:
    feed = ChangeFeed(queue_size=1)
    subscription = feed.subscribe("community")
    feed.publish({"event": "INSERT", "channel": "community", "table": "messages", "new": {"id": 1}})
    feed.publish({"event": "INSERT", "channel": "community", "table": "messages", "new": {"id": 2}})
    await asyncio.sleep(0)
    assert subscription.dropped == 1
    assert (await subscription.get())["new"]["id"] == 1


async def test_unsubscribe_stops_delivery() -> None:
    feed = ChangeFeed(queue_size=4)
    subscription = feed.subscribe("community")
    assert feed.subscriber_count("community") == 1
    subscription.close()
    assert feed.subscriber_count("community") == 0
    feed.publish({"event": "INSERT", "channel": "community", "table": "messages", "new": {"id": 1}})
    await asyncio.sleep(0)
    assert subscription.queue.empty()


def test_subscribe_requires_running_loop() -> None:
    with pytest.raises(RuntimeError):
        ChangeFeed().subscribe("community")


async def test_revoke_ends_only_that_users_subscription() -> None:
    feed = ChangeFeed(queue_size=1)
    leaver = feed.subscribe("meetup:1", user_id="user-bob")
    stayer = feed.subscribe("meetup:1", user_id="user-alice")
    feed.publish({"event": "INSERT", "channel": "meetup:1", "table": "messages", "new": {"id": 1}})
    await asyncio.sleep(0)

    assert feed.revoke("meetup:1", "user-bob") == 1
    assert feed.subscriber_count("meetup:1") == 1
    with pytest.raises(SubscriptionRevoked):
        await _next(leaver)
    assert leaver.revoked
    assert (await _next(stayer))["new"]["id"] == 1

    feed.publish({"event": "INSERT", "channel": "meetup:1", "table": "messages", "new": {"id": 2}})
    assert (await _next(stayer))["new"]["id"] == 2
    assert leaver.queue.empty()
    stayer.close()


def test_revoke_without_subscribers_is_a_no_op() -> None:
    assert ChangeFeed().revoke("meetup:1", "user-bob") == 0
