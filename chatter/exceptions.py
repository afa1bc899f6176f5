"""Domain exception classes for Chatter.

These exceptions are raised by service-layer code. REST callers get them
translated into HTTP error responses by the handlers registered in
``main.py``; the realtime gateway turns them into ``error`` events sent to
the originating connection only.
"""

from __future__ import annotations


class ChatterError(Exception):
    """Base class for every domain error. Carries a user-facing ``message``."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthenticationError(ChatterError):
    """Raised when a bearer credential is missing, unknown or expired."""


class ValidationError(ChatterError):
    """Raised when required fields are missing or malformed."""


class AuthorizationError(ChatterError):
    """Raised when an authenticated user may not perform an action."""


class NotFoundError(ChatterError):
    """Raised when a requested resource does not exist."""


class ConflictError(ChatterError):
    """Raised when an action conflicts with current state (e.g., duplicate username)."""


class PersistenceError(ChatterError):
    """Raised when the durable store fails. Never retried inside the server."""

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)
