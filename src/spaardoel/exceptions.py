"""Custom exception hierarchy for the Spaardoel package."""

from __future__ import annotations


class SpaardoelError(Exception):
    """Base class for all Spaardoel specific errors."""


class DuplicateUserError(SpaardoelError):
    """Raised when attempting to create a user id that is already taken."""


class UserNotFoundError(SpaardoelError):
    """Raised when a user lookup fails."""


class GoalNotFoundError(SpaardoelError):
    """Raised when a requested savings goal cannot be found."""


class GoalClosedError(SpaardoelError):
    """Raised when contributing to an archived goal."""


class ShareLinkError(SpaardoelError):
    """Raised for unknown, revoked, expired or exhausted share links."""


class PermissionDeniedError(SpaardoelError):
    """Raised when a user acts on a goal or user they do not manage."""
