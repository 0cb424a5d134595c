# mypy: ignore-errors
"""Tests for meetup activities and RSVPs."""

from datetime import UTC, datetime, timedelta

from fastapi import status

from wanderbuddy.models import ActivityResponse, Notification
from wanderbuddy.models.notification import NOTIFICATION_ACTIVITY
from wanderbuddy.services import membership


def _when(days: int) -> str:
    return (datetime.now(UTC) + timedelta(days=days)).isoformat()


def _create(client, meetup_id, headers, title="Sunset walk", days=1):
    return client.post(
        f"/api/v1/meetups/{meetup_id}/activities",
        json={"title": title, "activity_time": _when(days), "location": "Miradouro"},
        headers=headers,
    )


def test_member_creates_activity_and_others_are_notified(
    client, meetup, bob, carol, alice_headers, db_session
) -> None:
    membership.join_meetup(db_session, meetup.id, bob)
    membership.join_meetup(db_session, meetup.id, carol)

    response = _create(client, meetup.id, alice_headers)
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["title"] == "Sunset walk"
    assert data["creator"]["username"] == "alice"
    assert data["responses"] == []

    notified = sorted(n.user_id for n in db_session.query(Notification).filter_by(type=NOTIFICATION_ACTIVITY))
    assert notified == [bob.id, carol.id]


def test_non_member_cannot_create_or_list(client, meetup, bob_headers) -> None:
    assert _create(client, meetup.id, bob_headers).status_code == status.HTTP_403_FORBIDDEN
    listing = client.get(f"/api/v1/meetups/{meetup.id}/activities", headers=bob_headers)
    assert listing.status_code == status.HTTP_403_FORBIDDEN


def test_activities_ordered_by_time(client, meetup, alice_headers) -> None:
    _create(client, meetup.id, alice_headers, title="Later", days=3)
    _create(client, meetup.id, alice_headers, title="Sooner", days=1)
    response = client.get(f"/api/v1/meetups/{meetup.id}/activities", headers=alice_headers)
    assert [row["title"] for row in response.json()] == ["Sooner", "Later"]


def test_rsvp_upsert_keeps_single_row(client, meetup, bob, alice_headers, bob_headers, db_session) -> None:
    membership.join_meetup(db_session, meetup.id, bob)
    activity_id = _create(client, meetup.id, alice_headers).json()["id"]

    first = client.put(f"/api/v1/activities/{activity_id}/response", json={"response": "going"}, headers=bob_headers)
    assert first.status_code == status.HTTP_200_OK
    second = client.put(f"/api/v1/activities/{activity_id}/response", json={"response": "maybe"}, headers=bob_headers)
    assert second.status_code == status.HTTP_200_OK
    assert second.json()["id"] == first.json()["id"]

    rows = db_session.query(ActivityResponse).filter_by(activity_id=activity_id, user_id=bob.id).all()
    assert [row.response for row in rows] == ["maybe"]

    listing = client.get(f"/api/v1/meetups/{meetup.id}/activities", headers=alice_headers).json()
    assert [(r["user_id"], r["response"]) for r in listing[0]["responses"]] == [("user-bob", "maybe")]


def test_rsvp_rejects_unknown_value(client, meetup, alice_headers) -> None:
    activity_id = _create(client, meetup.id, alice_headers).json()["id"]
    response = client.put(
        f"/api/v1/activities/{activity_id}/response",
        json={"response": "probably"},
        headers=alice_headers,
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_rsvp_requires_membership(client, meetup, alice_headers, carol_headers) -> None:
    activity_id = _create(client, meetup.id, alice_headers).json()["id"]
    response = client.put(f"/api/v1/activities/{activity_id}/response", json={"response": "going"}, headers=carol_headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_remove_rsvp(client, meetup, alice_headers, db_session) -> None:
    activity_id = _create(client, meetup.id, alice_headers).json()["id"]
    client.put(f"/api/v1/activities/{activity_id}/response", json={"response": "going"}, headers=alice_headers)
    response = client.delete(f"/api/v1/activities/{activity_id}/response", headers=alice_headers)
    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert db_session.query(ActivityResponse).count() == 0

    missing = client.delete(f"/api/v1/activities/{activity_id}/response", headers=alice_headers)
    assert missing.status_code == status.HTTP_404_NOT_FOUND


def test_only_creator_updates_or_deletes(client, meetup, bob, alice_headers, bob_headers, db_session) -> None:
    membership.join_meetup(db_session, meetup.id, bob)
    activity_id = _create(client, meetup.id, alice_headers).json()["id"]

    forbidden = client.patch(f"/api/v1/activities/{activity_id}", json={"title": "Mine now"}, headers=bob_headers)
    assert forbidden.status_code == status.HTTP_403_FORBIDDEN

    updated = client.patch(
        f"/api/v1/activities/{activity_id}",
        json={"title": "Fado night", "location": None},
        headers=alice_headers,
    )
    assert updated.status_code == status.HTTP_200_OK
    assert updated.json()["title"] == "Fado night"
    assert updated.json()["location"] is None

    assert client.delete(f"/api/v1/activities/{activity_id}", headers=bob_headers).status_code == status.HTTP_403_FORBIDDEN
    assert client.delete(f"/api/v1/activities/{activity_id}", headers=alice_headers).status_code == status.HTTP_204_NO_CONTENT
