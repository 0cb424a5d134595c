"""Profile provisioning, updates, avatars and onboarding state."""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wanderbuddy.core.errors import ConflictError, NotFoundError
from wanderbuddy.db.time import today as utc_today
from wanderbuddy.models import Profile
from wanderbuddy.schemas.profile import OnboardingRequest, ProfileUpdate
from wanderbuddy.services import validation
from wanderbuddy.services.storage import AVATARS_BUCKET, LocalStorage, avatar_path, get_storage

logger = logging.getLogger(__name__)

_TEXT_FIELDS = ("name", "bio", "location")

# Parts counted towards the completion percentage, in display order.
COMPLETION_PARTS = ("name", "avatar", "bio", "date_of_birth", "location", "languages", "interests")


def get_or_create_profile(db: Session, user_id: str) -> Profile:
    """Return the profile for an identity, provisioning an empty one on first sight."""
    profile = db.get(Profile, user_id)
    if profile is not None:
        return profile
    profile = Profile(id=user_id, languages=[], countries_traveled=[], interests=[])
    db.add(profile)
    try:
        db.commit()
    except IntegrityError:
        # Another request provisioned it first.
        db.rollback()
        profile = db.get(Profile, user_id)
        if profile is None:
            raise
        return profile
    db.refresh(profile)
    logger.info("Provisioned profile for %s", user_id)
    return profile


def get_profile(db: Session, user_id: str) -> Profile:
    profile = db.get(Profile, user_id)
    if profile is None:
        raise NotFoundError("Profile not found")
    return profile


def _username_taken(db: Session, username: str, owner_id: str) -> bool:
    return (
        db.query(Profile.id)
        .filter(Profile.username == username, Profile.id != owner_id)
        .first()
        is not None
    )


def update_profile(db: Session, profile: Profile, data: ProfileUpdate) -> Profile:
    changes = data.model_dump(exclude_unset=True)
    for field in _TEXT_FIELDS:
        if isinstance(changes.get(field), str):
            changes[field] = validation.sanitize_text(changes[field]) or None
    for field in ("languages", "countries_traveled", "interests"):
        if field in changes:
            changes[field] = [validation.sanitize_text(item) for item in changes[field] or []]
            changes[field] = [item for item in changes[field] if item]
    username = changes.get("username")
    if username and _username_taken(db, username, profile.id):
        raise ConflictError("Username already taken")

    for key, value in changes.items():
        setattr(profile, key, value)
    try:
        db.commit()
    except IntegrityError as err:
        db.rollback()
        raise ConflictError("Username already taken") from err
    db.refresh(profile)
    return profile


def upload_avatar(
    db: Session,
    profile: Profile,
    content_type: str | None,
    data: bytes,
    storage: LocalStorage | None = None,
) -> Profile:
    """Store a new avatar image and point the profile at it."""
    normalized_type = validation.validate_upload(
        content_type, len(data), allowed=validation.IMAGE_CONTENT_TYPES
    )
    storage = storage or get_storage()
    url = storage.upload(AVATARS_BUCKET, avatar_path(profile.id, normalized_type), data, normalized_type)
    profile.avatar_url = url
    db.commit()
    db.refresh(profile)
    return profile


def complete_onboarding(
    db: Session,
    profile: Profile,
    data: OnboardingRequest,
    today: date | None = None,
) -> Profile:
    validation.validate_onboarding_age(data.date_of_birth, today or utc_today())
    profile.name = validation.sanitize_text(data.name) or data.name.strip()
    profile.date_of_birth = data.date_of_birth
    interests = [validation.sanitize_text(item) for item in data.interests]
    profile.interests = [item for item in interests if item]
    db.commit()
    db.refresh(profile)
    return profile


def is_onboarding_complete(profile: Profile) -> bool:
    """A profile is onboarded once it has a name and a date of birth."""
    return bool(profile.name) and profile.date_of_birth is not None


def _filled_parts(profile: Profile) -> dict[str, bool]:
    return {
        "name": bool(profile.name),
        "avatar": bool(profile.avatar_url),
        "bio": bool(profile.bio),
        "date_of_birth": profile.date_of_birth is not None,
        "location": bool(profile.location),
        "languages": bool(profile.languages),
        "interests": bool(profile.interests),
    }


def completion_percent(profile: Profile) -> int:
    filled = _filled_parts(profile)
    return round(100 * sum(filled.values()) / len(COMPLETION_PARTS))


def missing_parts(profile: Profile) -> list[str]:
    filled = _filled_parts(profile)
    return [part for part in COMPLETION_PARTS if not filled[part]]
