"""Excepciones de la aplicación."""

from __future__ import annotations


class GlucologError(Exception):
    """Base exception for application errors."""


class ValidationError(GlucologError, ValueError):
    """Raised when submitted form data is incomplete or out of range."""


class AuthenticationError(GlucologError):
    """Raised when an email/password pair does not match a stored user."""


class AuthorizationError(GlucologError):
    """Raised when a session lacks the role an operation needs."""


class DuplicateUserError(GlucologError):
    """Raised when signing up with an email that is already registered."""


class UserNotFoundError(GlucologError):
    pass
