"""Access token helpers built on python-jose."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

from jose import jwt

from wanderbuddy.core.settings import settings


def create_access_token(subject: str, extra_claims: dict[str, str] | None = None) -> str:
    """Create a signed JWT for the given user identity.

    The identity provider normally issues these; the helper exists for
    tooling and tests.
    """
    to_encode: dict[str, object] = {"sub": subject}
    if extra_claims:
        to_encode.update(extra_claims)
    if settings.jwt_audience:
        to_encode["aud"] = settings.jwt_audience
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode["exp"] = expire
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


def decode_subject(token: str) -> str | None:
    """Return the ``sub`` claim of a valid token.

    Raises:
        jose.JWTError: If the token is malformed, expired or badly signed.
    """
    options = {"verify_aud": settings.jwt_audience is not None}
    payload = jwt.decode(
        token,
        settings.secret_key,
        algorithms=[settings.jwt_algorithm],
        audience=settings.jwt_audience,
        options=options,
    )
    subject = payload.get("sub")
    return str(subject) if subject is not None else None
