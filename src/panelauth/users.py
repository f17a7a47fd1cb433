# User directory: identity records behind every token and API key.
# Created: 2026-10-19
#
# Users are created on first login (or explicit registration), touched on
# each login, and soft-deleted.  Nothing here hard-deletes a user row.

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, mapped_column, sessionmaker

from panelauth.db import Base, utcnow

logger = logging.getLogger(__name__)


class User(Base):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    # Stored exactly as given; lookups are case-sensitive.
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<User(user_id={self.user_id!r}, deleted={self.is_deleted})>"


class UserExistsError(ValueError):
    """Raised by ``register`` when the email is already taken."""


class UserDirectory:
    """Read/write access to user identity records."""

    def __init__(self, session_factory: sessionmaker | None = None):
        if session_factory is None:
            from panelauth.db import get_session_factory

            session_factory = get_session_factory()
        self._sessions = session_factory

    def get(self, user_id: str) -> User | None:
        with self._sessions() as db:
            return db.get(User, user_id)

    def get_active(self, user_id: str) -> User | None:
        """Return the user unless missing or soft-deleted."""
        user = self.get(user_id)
        if user is None or user.is_deleted:
            return None
        return user

    def get_by_email(self, email: str) -> User | None:
        with self._sessions() as db:
            return db.execute(select(User).where(User.email == email)).scalar_one_or_none()

    def register(self, email: str) -> User:
        now = utcnow()
        user = User(
            user_id=str(uuid.uuid4()),
            email=email,
            created_at=now,
            last_login_at=now,
            is_deleted=False,
        )
        with self._sessions() as db:
            db.add(user)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise UserExistsError(f"User already exists: {email}") from exc
        logger.info("Created user %s", user.user_id)
        return user

    def get_or_create(self, email: str) -> tuple[User, bool]:
        """Return ``(user, is_new)``; an existing user gets last_login_at bumped."""
        existing = self.get_by_email(email)
        if existing is None:
            try:
                return self.register(email), True
            except UserExistsError:
                # Lost a race with a concurrent first login.
                existing = self.get_by_email(email)
                if existing is None:
                    raise

        now = utcnow()
        with self._sessions() as db:
            db.execute(update(User).where(User.user_id == existing.user_id).values(last_login_at=now))
            db.commit()
        existing.last_login_at = now
        logger.debug("Returning existing user %s", existing.user_id)
        return existing, False

    def soft_delete(self, user_id: str) -> bool:
        with self._sessions() as db:
            result = db.execute(
                update(User)
                .where(User.user_id == user_id, User.is_deleted.is_(False))
                .values(is_deleted=True, deleted_at=utcnow())
            )
            db.commit()
        if result.rowcount:
            logger.info("Soft-deleted user %s", user_id)
        return bool(result.rowcount)


def delete_account(user_id: str, users: UserDirectory | None = None, api_keys=None) -> int:
    """Account deletion: hard-delete the user's API keys, then soft-delete the user.

    Returns the number of API keys removed.
    """
    from panelauth.api.api_keys import get_api_key_manager

    users = users or get_user_directory()
    api_keys = api_keys or get_api_key_manager()
    removed = api_keys.delete_all_for_user(user_id)
    users.soft_delete(user_id)
    return removed


# Singleton
_directory: UserDirectory | None = None


def get_user_directory() -> UserDirectory:
    global _directory
    if _directory is None:
        _directory = UserDirectory()
    return _directory


def reset_user_directory() -> None:
    """Reset singleton (for testing)."""
    global _directory
    _directory = None
