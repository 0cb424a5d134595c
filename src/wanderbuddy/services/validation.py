"""Input validation and sanitization shared by the message, upload and meetup paths.

All checks raise :class:`wanderbuddy.core.errors.ValidationError`; nothing is
written to the store or to object storage before these pass.
"""

from __future__ import annotations

import re
from datetime import date

from wanderbuddy.core.errors import ValidationError
from wanderbuddy.core.settings import settings
from wanderbuddy.models.message import MESSAGE_TYPE_LOCATION, MESSAGE_TYPE_TEXT

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")
_URL_RE = re.compile(r"(https?://[^\s]+)")
_MAP_LINK_RE = re.compile(
    r"^https?://(www\.)?(google\.com/maps|maps\.google\.com|goo\.gl/maps)",
    re.IGNORECASE,
)

IMAGE_CONTENT_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
ATTACHMENT_CONTENT_TYPES = IMAGE_CONTENT_TYPES | {"application/pdf", "text/plain"}

MIN_ONBOARDING_AGE = 13
MAX_ONBOARDING_AGE = 120

SOCIAL_LINK_PATTERNS: dict[str, tuple[re.Pattern[str], ...]] = {
    "whatsapp": (
        re.compile(r"^https://chat\.whatsapp\.com/[A-Za-z0-9_-]+$"),
        re.compile(r"^https://wa\.me/[0-9]+$"),
    ),
    "telegram": (
        re.compile(r"^https://t\.me/[A-Za-z0-9_]+$"),
        re.compile(r"^https://t\.me/joinchat/[A-Za-z0-9_-]+$"),
        re.compile(r"^https://telegram\.me/[A-Za-z0-9_]+$"),
    ),
    "facebook": (
        re.compile(r"^https://(www\.)?facebook\.com/groups/[A-Za-z0-9.]+/?$"),
        re.compile(r"^https://(www\.)?fb\.com/groups/[A-Za-z0-9.]+/?$"),
    ),
    "instagram": (
        re.compile(r"^https://(www\.)?instagram\.com/[A-Za-z0-9._]+/?$"),
    ),
}


def sanitize_text(text: str) -> str:
    """Strip script blocks and every remaining HTML tag, then trim."""
    without_scripts = _SCRIPT_RE.sub("", text)
    return _TAG_RE.sub("", without_scripts).strip()


def extract_urls(text: str) -> list[str]:
    return _URL_RE.findall(text)


def is_map_link(url: str) -> bool:
    return _MAP_LINK_RE.match(url) is not None


def classify_message(text: str) -> str:
    """Return ``location`` when the text carries a recognised map link, else ``text``."""
    if any(is_map_link(url) for url in extract_urls(text)):
        return MESSAGE_TYPE_LOCATION
    return MESSAGE_TYPE_TEXT


def clean_message_content(raw_text: str) -> str:
    """Validate and sanitize a chat message body.

    Length is checked on the trimmed input; sanitization runs afterwards and
    a body that is empty once tags are removed is rejected as empty.
    """
    trimmed = (raw_text or "").strip()
    if not trimmed:
        raise ValidationError("Message cannot be empty")
    if len(trimmed) > settings.message_max_length:
        raise ValidationError(
            f"Message must be less than {settings.message_max_length} characters"
        )
    cleaned = sanitize_text(trimmed)
    if not cleaned:
        raise ValidationError("Message cannot be empty")
    return cleaned


def validate_upload(
    content_type: str | None,
    size: int,
    allowed: frozenset[str] = ATTACHMENT_CONTENT_TYPES,
) -> str:
    """Check an upload's size and MIME type and return the normalized type."""
    if size > settings.upload_max_bytes:
        limit_mb = settings.upload_max_bytes // (1024 * 1024)
        raise ValidationError(f"File size must be less than {limit_mb}MB")
    if size <= 0:
        raise ValidationError("File is empty")
    normalized = (content_type or "").split(";")[0].strip().lower()
    if normalized not in allowed:
        raise ValidationError("File type not allowed")
    return normalized


def detect_social_platform(url: str) -> str | None:
    """Guess the platform a link points at from its host, ignoring shape."""
    if "whatsapp.com" in url or "wa.me" in url:
        return "whatsapp"
    if "t.me" in url or "telegram.me" in url:
        return "telegram"
    if "facebook.com" in url or "fb.com" in url:
        return "facebook"
    if "instagram.com" in url:
        return "instagram"
    return None


def is_valid_social_link(url: str) -> bool:
    platform = detect_social_platform(url)
    if platform is None:
        return False
    return any(pattern.match(url) for pattern in SOCIAL_LINK_PATTERNS[platform])


def social_link_error(url: str) -> str | None:
    """Return a user-facing error for a bad link, or ``None`` when it is acceptable."""
    platform = detect_social_platform(url)
    if platform is None:
        return "Only WhatsApp, Telegram, Facebook, and Instagram links are allowed"
    if not is_valid_social_link(url):
        return f"Invalid {platform.capitalize()} link"
    return None


def age_on(birth_date: date, today: date) -> int:
    years = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years


def validate_onboarding_age(birth_date: date, today: date) -> None:
    age = age_on(birth_date, today)
    if age < MIN_ONBOARDING_AGE or age > MAX_ONBOARDING_AGE:
        raise ValidationError(
            f"You must be between {MIN_ONBOARDING_AGE} and {MAX_ONBOARDING_AGE} years old"
        )
