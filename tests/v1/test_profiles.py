# mypy: ignore-errors
"""Tests for profile, avatar and onboarding endpoints."""

from datetime import date

from fastapi import status

from wanderbuddy.models import Profile


def test_read_own_profile(client, alice_headers) -> None:
    response = client.get("/api/v1/profiles/me", headers=alice_headers)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["username"] == "alice"
    assert data["onboarding_complete"] is False


def test_display_name_fallbacks(make_user) -> None:
    named = make_user("user-named", username="nomad", name="Nadia")
    handle_only = make_user("user-handle", username="nomad2")
    bare = make_user("user-bare")

    assert named.display_name == "Nadia"
    assert handle_only.display_name == "nomad2"
    assert bare.display_name == f"traveler_{sum(ord(ch) for ch in 'user-bare') % 9000 + 1000}"
    number = int(bare.display_name.removeprefix("traveler_"))
    assert 1000 <= number <= 9999


def test_update_profile(client, alice_headers) -> None:
    response = client.patch(
        "/api/v1/profiles/me",
        json={
            "bio": "<em>Slow</em> traveller",
            "languages": ["English", " Portuguese ", ""],
            "instagram": "@alice.travels",
        },
        headers=alice_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["bio"] == "Slow traveller"
    assert data["languages"] == ["English", "Portuguese"]
    assert data["instagram"] == "@alice.travels"


def test_username_conflict(client, alice, bob_headers) -> None:
    response = client.patch("/api/v1/profiles/me", json={"username": "alice"}, headers=bob_headers)
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["detail"] == "Username already taken"


def test_username_pattern(client, bob_headers) -> None:
    response = client.patch("/api/v1/profiles/me", json={"username": "no spaces!"}, headers=bob_headers)
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_onboarding_flow(client, carol, carol_headers, db_session) -> None:
    before = client.get("/api/v1/profiles/me/onboarding", headers=carol_headers).json()
    assert before["complete"] is False
    assert "name" in before["missing"]

    response = client.post(
        "/api/v1/profiles/me/onboarding",
        json={"name": "Carol", "date_of_birth": "1995-04-12", "interests": ["hiking", "food"]},
        headers=carol_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["complete"] is True
    assert "name" not in data["missing"]
    assert "date_of_birth" not in data["missing"]
    assert data["completion_percent"] == round(100 * 3 / 7)

    profile = db_session.get(Profile, carol.id)
    assert profile.date_of_birth == date(1995, 4, 12)
    assert profile.interests == ["hiking", "food"]


def test_onboarding_rejects_too_young(client, carol_headers) -> None:
    this_year = date.today().year
    response = client.post(
        "/api/v1/profiles/me/onboarding",
        json={"name": "Kid", "date_of_birth": f"{this_year - 5}-01-01"},
        headers=carol_headers,
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["detail"] == "You must be between 13 and 120 years old"


def test_avatar_upload(client, alice_headers, storage) -> None:
    response = client.post(
        "/api/v1/profiles/me/avatar",
        files={"file": ("me.png", b"\x89PNG avatar", "image/png")},
        headers=alice_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["avatar_url"].startswith("http://test/storage/avatars/user-alice-")


def test_avatar_must_be_image(client, alice_headers) -> None:
    response = client.post(
        "/api/v1/profiles/me/avatar",
        files={"file": ("cv.pdf", b"%PDF", "application/pdf")},
        headers=alice_headers,
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_public_profile(client, bob, alice_headers) -> None:
    response = client.get(f"/api/v1/profiles/{bob.id}", headers=alice_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["display_name"] == "Bob"
    assert "date_of_birth" not in response.json()

    missing = client.get("/api/v1/profiles/nobody", headers=alice_headers)
    assert missing.status_code == status.HTTP_404_NOT_FOUND
