"""User creation and lookup rules layered over :class:`UserStore`."""
from __future__ import annotations

import logging
import re
import secrets
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from .models import User
from .store import AlreadyExists, UserStore

logger = logging.getLogger("usermgmt.service")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class UserServiceError(RuntimeError):
    """Base class for errors caused by the caller's request."""


class ValidationError(UserServiceError):
    """Raised when caller-supplied input is missing or malformed."""


class ConflictError(UserServiceError):
    """Raised when a write would break a uniqueness rule."""


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def generate_user_id(now: Optional[datetime] = None) -> str:
    """Return ``user_<epoch millis>_<8 hex chars>``."""

    moment = now or _current_timestamp()
    millis = int(moment.timestamp() * 1000)
    return f"user_{millis}_{secrets.token_hex(4)}"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _clean_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


class UserService:
    """Validate input, enforce email uniqueness and persist new users."""

    def __init__(
        self,
        store: UserStore,
        *,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[datetime], str] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or _current_timestamp
        self._id_factory = id_factory or generate_user_id

    def create_user(self, data: Optional[Mapping[str, Any]]) -> User:
        """Create a user from ``{name, email, phone?}`` and return the stored record.

        The email lookup and the insert are separate round trips, so two
        concurrent calls with the same email can both succeed. The conditional
        write only guards against a repeated id.
        """

        data = data or {}
        name = _clean_text(data.get("name"))
        raw_email = data.get("email")
        if name is None or _clean_text(raw_email) is None:
            raise ValidationError("Name and email are required")

        # Shape is checked on the value as given, so surrounding whitespace is rejected.
        email = str(raw_email)
        if not EMAIL_PATTERN.fullmatch(email):
            raise ValidationError("Invalid email format")

        normalized_email = normalize_email(email)
        if self._store.get_by_email(normalized_email) is not None:
            raise ConflictError("User with this email already exists")

        now = self._clock()
        timestamp = _serialize_datetime(now)
        user = User(
            id=self._id_factory(now),
            name=name,
            email=normalized_email,
            phone=_clean_text(data.get("phone")),
            created_at=timestamp,
            updated_at=timestamp,
        )

        try:
            self._store.put_if_absent(user)
        except AlreadyExists as exc:
            raise ConflictError(f"User id {user.id} is already taken") from exc

        logger.info("Created user %s", user.id)
        return user

    def get_user_by_id(self, user_id: Optional[str]) -> Optional[User]:
        if not user_id or not str(user_id).strip():
            raise ValidationError("User ID is required")
        return self._store.get_by_id(str(user_id).strip())

    def get_user_by_email(self, email: Optional[str]) -> Optional[User]:
        """Look up a user by email; an empty email yields ``None`` without a store read."""

        if not email:
            return None
        normalized = normalize_email(email)
        if not normalized:
            return None
        return self._store.get_by_email(normalized)


__all__ = [
    "ConflictError",
    "EMAIL_PATTERN",
    "UserService",
    "UserServiceError",
    "ValidationError",
    "generate_user_id",
    "normalize_email",
]
