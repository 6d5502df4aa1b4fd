"""Alta de usuarios, login y sesiones explícitas por solicitud."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

import bcrypt

from glucolog.errors import (
    AuthenticationError,
    AuthorizationError,
    DuplicateUserError,
    ValidationError,
)
from glucolog.model import Role, User
from glucolog.storage import SQLiteStore

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 10
_MAX_PASSWORD_BYTES = 72
_INVALID_LOGIN = "Invalid email or password"


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash.

    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("ascii"))
    except ValueError:
        return False


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass
class Session:
    """Identity of the signed-in user for the duration of one request.

    Handlers receive it explicitly; ``close()`` ends it and any later
    ``require()`` call fails.
    """

    user_id: int
    email: str
    name: str
    role: Role
    profile_image_url: str | None = None
    _closed: bool = field(default=False, repr=False)

    @classmethod
    def from_user(cls, user: User) -> Session:
        return cls(
            user_id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            profile_image_url=user.profile_image_url,
        )

    @property
    def active(self) -> bool:
        return not self._closed

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def require(self, role: Role | None = None) -> Session:
        """Return self if the session is open and has ``role`` (when given).

        Raises:
            AuthenticationError: If the session was closed.
            AuthorizationError: If the role does not match.
        """
        if self._closed:
            raise AuthenticationError("Session has ended")
        if role is not None and self.role is not role:
            raise AuthorizationError(f"{role.value} role required")
        return self

    def close(self) -> None:
        self._closed = True


def signup(
    store: SQLiteStore,
    *,
    name: str,
    email: str,
    password: str,
    profile_image_url: str | None = None,
    role: Role = Role.USER,
) -> User:
    """Register a new account.

    Raises:
        ValidationError: If a required field is blank or the password is too long.
        DuplicateUserError: If the email is already registered.
    """
    name = name.strip()
    email = normalize_email(email)
    if not name or not email or not password:
        raise ValidationError("All fields are required")
    if len(password.encode("utf-8")) > _MAX_PASSWORD_BYTES:
        raise ValidationError("Password must be at most 72 bytes")

    if store.get_user_by_email(email) is not None:
        logger.info("Sign-up rejected, email already registered: %s", email)
        raise DuplicateUserError("User already exists with this email")

    user = store.create_user(
        email=email,
        name=name,
        password_hash=hash_password(password),
        profile_image_url=profile_image_url or None,
        role=role,
    )
    logger.info("Created %s account %d", user.role.value, user.id)
    return user


def authenticate(store: SQLiteStore, email: str, password: str) -> User:
    """Return the user matching the credentials.

    Unknown email and wrong password fail with the same message.
    """
    if not email or not password:
        raise ValidationError("Email and password are required")
    user = store.get_user_by_email(normalize_email(email))
    if user is None or not verify_password(password, user.password_hash):
        logger.warning("Failed login for %s", normalize_email(email))
        raise AuthenticationError(_INVALID_LOGIN)
    return user


def authenticate_admin(store: SQLiteStore, email: str, password: str) -> User:
    """Like ``authenticate`` but also requires the admin role."""
    user = authenticate(store, email, password)
    if user.role is not Role.ADMIN:
        logger.warning("Non-admin user %d tried the admin login", user.id)
        raise AuthorizationError("Invalid admin credentials")
    return user


@contextmanager
def open_session(
    store: SQLiteStore, email: str, password: str, *, admin: bool = False
) -> Iterator[Session]:
    """Authenticate, yield a session for one request, then discard it."""
    if admin:
        user = authenticate_admin(store, email, password)
    else:
        user = authenticate(store, email, password)
    session = Session.from_user(user)
    try:
        yield session
    finally:
        session.close()
