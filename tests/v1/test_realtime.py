# mypy: ignore-errors
"""Tests for the realtime WebSocket and SSE subscription endpoints."""

import pytest
from fastapi import status
from fastapi.websockets import WebSocketDisconnect

from wanderbuddy.core.security import create_access_token
from wanderbuddy.models import Message
from wanderbuddy.services import membership


def _ws_url(channel: str, user_id: str) -> str:
    return f"/api/v1/realtime/ws?channel={channel}&token={create_access_token(user_id)}"


def test_meetup_channel_streams_message_changes(client, meetup, alice, alice_headers, db_session) -> None:
    channel = f"meetup:{meetup.id}"
    with client.websocket_connect(_ws_url(channel, alice.id)) as ws:
        assert ws.receive_json() == {"event": "SUBSCRIBED", "channel": channel}

        client.post(f"/api/v1/meetups/{meetup.id}/messages", json={"content": "live!"}, headers=alice_headers)
        inserted = ws.receive_json()
        assert inserted["event"] == "INSERT"
        assert inserted["table"] == "messages"
        assert inserted["channel"] == channel
        assert inserted["new"]["content"] == "live!"
        assert inserted["old"] is None

        message_id = inserted["new"]["id"]
        client.patch(f"/api/v1/messages/{message_id}", json={"content": "still live"}, headers=alice_headers)
        updated = ws.receive_json()
        assert updated["event"] == "UPDATE"
        assert updated["new"]["content"] == "still live"

        client.delete(f"/api/v1/messages/{message_id}", headers=alice_headers)
        deleted = ws.receive_json()
        assert deleted["event"] == "DELETE"
        assert deleted["old"] == {"id": message_id}
        assert deleted["new"] is None


def test_activity_and_rsvp_changes_reach_meetup_channel(client, meetup, alice, alice_headers) -> None:
    channel = f"meetup:{meetup.id}"
    with client.websocket_connect(_ws_url(channel, alice.id)) as ws:
        ws.receive_json()
        created = client.post(
            f"/api/v1/meetups/{meetup.id}/activities",
            json={"title": "Tram 28", "activity_time": "2030-05-01T10:00:00+00:00"},
            headers=alice_headers,
        )
        activity_event = ws.receive_json()
        assert activity_event["table"] == "activities"
        assert activity_event["event"] == "INSERT"

        client.put(
            f"/api/v1/activities/{created.json()['id']}/response",
            json={"response": "going"},
            headers=alice_headers,
        )
        rsvp_event = ws.receive_json()
        assert rsvp_event["table"] == "activity_responses"
        assert rsvp_event["channel"] == channel


def test_user_channel_receives_notifications(client, meetup, bob, alice_headers, db_session) -> None:
    membership.join_meetup(db_session, meetup.id, bob)
    channel = f"user:{bob.id}"
    with client.websocket_connect(_ws_url(channel, bob.id)) as ws:
        ws.receive_json()
        client.post(f"/api/v1/meetups/{meetup.id}/messages", json={"content": "hey bob"}, headers=alice_headers)
        change = ws.receive_json()
        assert change["table"] == "notifications"
        assert change["new"]["user_id"] == bob.id
        assert change["new"]["message"] == "alice: hey bob"


def test_community_channel_open_to_everyone(client, alice, bob, bob_headers) -> None:
    with client.websocket_connect(_ws_url("community", alice.id)) as ws:
        ws.receive_json()
        client.post("/api/v1/community/messages", json={"content": "hola"}, headers=bob_headers)
        change = ws.receive_json()
        assert change["channel"] == "community"
        assert change["new"]["meetup_id"] is None


@pytest.mark.parametrize("channel_template", ["meetup:{meetup_id}", "user:user-alice", "nonsense"])
def test_unauthorized_subscription_is_closed(client, meetup, bob, channel_template) -> None:
    channel = channel_template.format(meetup_id=meetup.id)
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(_ws_url(channel, bob.id)) as ws:
            ws.receive_json()
    assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION


def test_leaving_closes_meetup_socket(client, meetup, bob, bob_headers, db_session) -> None:
    membership.join_meetup(db_session, meetup.id, bob)
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(_ws_url(f"meetup:{meetup.id}", bob.id)) as ws:
            ws.receive_json()
            left = client.delete(f"/api/v1/meetups/{meetup.id}/leave", headers=bob_headers)
            assert left.status_code == status.HTTP_204_NO_CONTENT
            ws.receive_json()
    assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION


def test_join_requests_stream_to_creator_channel(client, locked_meetup, alice, bob_headers) -> None:
    channel = f"user:{alice.id}"
    with client.websocket_connect(_ws_url(channel, alice.id)) as ws:
        ws.receive_json()
        client.post(f"/api/v1/meetups/{locked_meetup.id}/requests", headers=bob_headers)
        change = ws.receive_json()
        assert change["table"] == "join_requests"
        assert change["channel"] == channel
        assert change["new"]["user_id"] == "user-bob"


def test_socket_does_not_hold_a_transaction(client, meetup, alice, db_session) -> None:
    db_session.query(Message).count()
    assert db_session.in_transaction()
    with client.websocket_connect(_ws_url(f"meetup:{meetup.id}", alice.id)) as ws:
        ws.receive_json()
        assert not db_session.in_transaction()


def test_invalid_token_is_closed(client, meetup) -> None:
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/api/v1/realtime/ws?channel=community&token=garbage") as ws:
            ws.receive_json()
    assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION


def test_rolled_back_writes_are_not_streamed(client, meetup, alice, alice_headers, db_session) -> None:
    channel = f"meetup:{meetup.id}"
    with client.websocket_connect(_ws_url(channel, alice.id)) as ws:
        ws.receive_json()
        db_session.add(Message(meetup_id=meetup.id, user_id=alice.id, content="never committed"))
        db_session.flush()
        db_session.rollback()

        client.post(f"/api/v1/meetups/{meetup.id}/messages", json={"content": "committed"}, headers=alice_headers)
        change = ws.receive_json()
        assert change["new"]["content"] == "committed"


def test_stream_rejects_non_member(client, meetup, bob_headers) -> None:
    response = client.get(
        "/api/v1/realtime/stream",
        params={"channel": f"meetup:{meetup.id}"},
        headers=bob_headers,
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["detail"] == "Unable to subscribe"


def test_stream_rejects_unknown_channel(client, bob_headers) -> None:
    response = client.get("/api/v1/realtime/stream", params={"channel": "lobby"}, headers=bob_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
