# mypy: ignore-errors
"""Tests for message fan-out and the recipient notification endpoints."""

from fastapi import status

from wanderbuddy.models import FanoutTask, Notification
from wanderbuddy.models.fanout import FANOUT_STATUS_DONE
from wanderbuddy.services import membership


def _post(client, meetup_id, headers, content):
    return client.post(f"/api/v1/meetups/{meetup_id}/messages", json={"content": content}, headers=headers)


def test_message_notifies_each_other_member_once(client, meetup, alice, bob, carol, alice_headers, db_session) -> None:
    membership.join_meetup(db_session, meetup.id, bob)
    membership.join_meetup(db_session, meetup.id, carol)

    _post(client, meetup.id, alice_headers, "Dinner at 8?")

    notifications = db_session.query(Notification).order_by(Notification.user_id).all()
    assert [n.user_id for n in notifications] == [bob.id, carol.id]
    assert all(n.type == "message" for n in notifications)
    assert notifications[0].title == "New message in Lisbon Weekend"
    assert notifications[0].message == "alice: Dinner at 8?"
    assert notifications[0].meetup_id == meetup.id
    assert db_session.query(Notification).filter_by(user_id=alice.id).count() == 0
    assert [task.status for task in db_session.query(FanoutTask)] == [FANOUT_STATUS_DONE]


def test_notification_preview_is_truncated(client, meetup, bob, alice_headers, db_session) -> None:
    membership.join_meetup(db_session, meetup.id, bob)
    _post(client, meetup.id, alice_headers, "x" * 300)
    notification = db_session.query(Notification).one()
    assert notification.message == "alice: " + "x" * 100


def test_sender_without_username_is_someone(client, meetup, make_user, auth_for, db_session) -> None:
    anonymous = make_user("user-anon")
    membership.join_meetup(db_session, meetup.id, anonymous)
    _post(client, meetup.id, auth_for(anonymous), "hi all")
    notification = db_session.query(Notification).one()
    assert notification.user_id == "user-alice"
    assert notification.message == "Someone: hi all"


def test_list_and_unread_count(client, meetup, bob, alice_headers, bob_headers, db_session) -> None:
    membership.join_meetup(db_session, meetup.id, bob)
    _post(client, meetup.id, alice_headers, "one")
    _post(client, meetup.id, alice_headers, "two")

    listing = client.get("/api/v1/notifications/", headers=bob_headers)
    assert listing.status_code == status.HTTP_200_OK
    assert [row["message"] for row in listing.json()] == ["alice: two", "alice: one"]

    count = client.get("/api/v1/notifications/unread-count", headers=bob_headers)
    assert count.json() == {"unread": 2}


def test_mark_read_and_delete(client, meetup, bob, alice_headers, bob_headers, db_session) -> None:
    membership.join_meetup(db_session, meetup.id, bob)
    _post(client, meetup.id, alice_headers, "ping")
    notification_id = db_session.query(Notification).one().id

    read = client.post(f"/api/v1/notifications/{notification_id}/read", headers=bob_headers)
    assert read.status_code == status.HTTP_200_OK
    assert read.json()["is_read"] is True
    assert client.get("/api/v1/notifications/unread-count", headers=bob_headers).json() == {"unread": 0}

    unread_only = client.get("/api/v1/notifications/", params={"unread_only": True}, headers=bob_headers)
    assert unread_only.json() == []

    deleted = client.delete(f"/api/v1/notifications/{notification_id}", headers=bob_headers)
    assert deleted.status_code == status.HTTP_204_NO_CONTENT
    assert db_session.query(Notification).count() == 0


def test_other_users_notifications_are_hidden(client, meetup, bob, alice_headers, carol_headers, db_session) -> None:
    membership.join_meetup(db_session, meetup.id, bob)
    _post(client, meetup.id, alice_headers, "secret")
    notification_id = db_session.query(Notification).one().id

    assert client.get("/api/v1/notifications/", headers=carol_headers).json() == []
    response = client.post(f"/api/v1/notifications/{notification_id}/read", headers=carol_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND
