"""Domain exceptions shared by services and the API layer.

Services raise these; ``wanderbuddy.main`` maps each class to an HTTP status.
Messages are meant for the acting user and name the failed action only.
"""

from __future__ import annotations


class WanderBuddyError(RuntimeError):
    """Base exception for all domain failures."""

    status_code: int = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(WanderBuddyError):
    """Rejected input (empty or oversized content, bad file, bad link shape)."""

    status_code = 422


class AuthorizationError(WanderBuddyError):
    """The caller is not allowed to perform the action.

    The detail is deliberately generic, e.g. ``"Unable to send message"``.
    """

    status_code = 403


class NotFoundError(WanderBuddyError):
    """A referenced meetup, message, activity or profile does not exist."""

    status_code = 404


class ConflictError(WanderBuddyError):
    """The action conflicts with existing state (duplicate join, pending request)."""

    status_code = 409


class CapacityError(ConflictError):
    """The meetup has reached its member limit."""


class TransientError(WanderBuddyError):
    """Infrastructure failure (storage, network); the user may retry manually."""

    status_code = 503
