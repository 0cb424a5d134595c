"""Shared API dependencies for authentication and common functionality."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from wanderbuddy.core.security import decode_subject
from wanderbuddy.db.session import get_db
from wanderbuddy.models import Profile
from wanderbuddy.services.profiles import get_or_create_profile

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def _credentials_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def authenticate_token(token: str, db: Session) -> Profile:
    """Resolve a bearer token to the caller's profile.

    The profile is provisioned on first sight of a valid identity.

    Raises:
        HTTPException: If the token is invalid or carries no subject.
    """
    try:
        subject = decode_subject(token)
    except JWTError as err:
        raise _credentials_error() from err
    if not subject:
        raise _credentials_error()
    return get_or_create_profile(db, subject)


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    db: SessionDep,
) -> Profile:
    """Get the current authenticated user's profile from the JWT.

    Args:
        credentials: HTTP Bearer token credentials
        db: Database session

    Returns:
        Profile of the authenticated user
    """
    return authenticate_token(credentials.credentials, db)


# Type alias for current user dependency
CurrentUserDep = Annotated[Profile, Depends(get_current_user)]
