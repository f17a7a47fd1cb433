# API Key Manager: create, validate, list, revoke, bulk delete.
# Created: 2026-10-19
#
# API keys use the format wtyk_<64 hex chars> (69 chars total) for easy
# identification in logs.  Only sha256 hashes are stored; plaintext is shown
# once at creation (like GitHub PATs).
# Storage: the api_keys table next to users.

from __future__ import annotations

import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict
from sqlalchemy import Boolean, DateTime, ForeignKey, String, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, mapped_column, sessionmaker

from panelauth.db import Base, as_utc, utcnow

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "wtyk_"
_RANDOM_BYTES = 32
API_KEY_LENGTH = len(API_KEY_PREFIX) + _RANDOM_BYTES * 2  # 69
KEY_PREFIX_DISPLAY_LEN = 16
MAX_ACTIVE_KEYS = 10


class ApiKey(Base):
    __tablename__ = "api_keys"

    api_key_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.user_id"), index=True)
    api_key_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    key_prefix: Mapped[str] = mapped_column(String(KEY_PREFIX_DISPLAY_LEN))
    name: Mapped[str] = mapped_column(String(100))
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class APIKeyRecord(BaseModel):
    """API key as shown to its owner (no hash)."""

    model_config = ConfigDict(from_attributes=True)

    api_key_id: str
    user_id: str
    key_prefix: str
    name: str
    created_at: datetime
    last_used_at: datetime | None = None
    expires_at: datetime | None = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: ApiKey) -> APIKeyRecord:
        record = cls.model_validate(row)
        record.created_at = as_utc(record.created_at)
        record.last_used_at = as_utc(record.last_used_at)
        record.expires_at = as_utc(record.expires_at)
        return record


class APIKeyQuotaError(ValueError):
    """The user already holds the maximum number of active keys."""


def _hash_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()


def generate_api_key() -> str:
    return API_KEY_PREFIX + secrets.token_hex(_RANDOM_BYTES)


def is_api_key_format(value: str) -> bool:
    """Cheap shape check; no lookup."""
    return len(value) == API_KEY_LENGTH and value.startswith(API_KEY_PREFIX)


class APIKeyManager:
    """Manages per-user API keys in the relational store."""

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        users=None,
        max_active: int = MAX_ACTIVE_KEYS,
    ):
        if session_factory is None:
            from panelauth.db import get_session_factory

            session_factory = get_session_factory()
        if users is None:
            from panelauth.users import UserDirectory

            users = UserDirectory(session_factory)
        self._sessions = session_factory
        self._users = users
        self.max_active = max_active

    def count_active(self, user_id: str) -> int:
        with self._sessions() as db:
            return db.execute(
                select(func.count())
                .select_from(ApiKey)
                .where(ApiKey.user_id == user_id, ApiKey.is_active.is_(True))
            ).scalar_one()

    def check_quota(self, user_id: str) -> None:
        """Raise APIKeyQuotaError if the user may not create another key."""
        if self.count_active(user_id) >= self.max_active:
            raise APIKeyQuotaError(
                f"Maximum number of API keys reached ({self.max_active}). "
                "Please revoke an existing key first."
            )

    def create(
        self,
        user_id: str,
        name: str,
        expires_in_days: int | None = None,
    ) -> tuple[APIKeyRecord, str]:
        """Create a new API key. Returns (record, plaintext_key).

        The plaintext key is returned only once and cannot be retrieved later.
        Quota is the caller's job (``check_quota``).
        """
        plaintext = generate_api_key()
        now = utcnow()
        row = ApiKey(
            api_key_id=str(uuid.uuid4()),
            user_id=user_id,
            api_key_hash=_hash_key(plaintext),
            key_prefix=plaintext[:KEY_PREFIX_DISPLAY_LEN],
            name=name,
            created_at=now,
            expires_at=now + timedelta(days=expires_in_days) if expires_in_days else None,
            is_active=True,
        )
        with self._sessions() as db:
            db.add(row)
            db.commit()
            record = APIKeyRecord.from_row(row)

        logger.info("API key %s created for user %s", record.key_prefix, user_id)
        return record, plaintext

    def _find_by_hash(self, key_hash: str) -> ApiKey | None:
        with self._sessions() as db:
            return db.execute(select(ApiKey).where(ApiKey.api_key_hash == key_hash)).scalar_one_or_none()

    def _touch(self, api_key_id: str) -> None:
        try:
            with self._sessions() as db:
                db.execute(
                    update(ApiKey).where(ApiKey.api_key_id == api_key_id).values(last_used_at=utcnow())
                )
                db.commit()
        except SQLAlchemyError:
            logger.warning("Could not update last_used_at for API key %s", api_key_id, exc_info=True)

    def validate(self, key: str) -> str | None:
        """Validate a plaintext key. Returns the owning user_id, None otherwise."""
        if not is_api_key_format(key):
            return None

        row = self._find_by_hash(_hash_key(key))
        if row is None:
            return None
        if not row.is_active:
            logger.debug("API key %s is revoked", row.key_prefix)
            return None
        expires_at = as_utc(row.expires_at)
        if expires_at is not None and expires_at <= utcnow():
            logger.debug("API key %s is expired", row.key_prefix)
            return None
        if self._users.get_active(row.user_id) is None:
            logger.debug("API key %s belongs to a missing or deleted user", row.key_prefix)
            return None

        self._touch(row.api_key_id)
        return row.user_id

    def list_keys(self, user_id: str) -> list[APIKeyRecord]:
        """List a user's API keys, newest first (no hashes exposed)."""
        with self._sessions() as db:
            rows = db.execute(
                select(ApiKey).where(ApiKey.user_id == user_id).order_by(ApiKey.created_at.desc())
            ).scalars()
            return [APIKeyRecord.from_row(r) for r in rows]

    def get(self, api_key_id: str, user_id: str) -> APIKeyRecord | None:
        """Get a specific API key record, only if owned by *user_id*."""
        with self._sessions() as db:
            row = db.get(ApiKey, api_key_id)
            if row is None or row.user_id != user_id:
                return None
            return APIKeyRecord.from_row(row)

    def revoke(self, api_key_id: str, user_id: str) -> bool:
        """Soft-revoke a key. False if missing or owned by someone else."""
        with self._sessions() as db:
            result = db.execute(
                update(ApiKey)
                .where(ApiKey.api_key_id == api_key_id, ApiKey.user_id == user_id)
                .values(is_active=False)
            )
            db.commit()
        if result.rowcount:
            logger.info("API key %s revoked by user %s", api_key_id, user_id)
        return bool(result.rowcount)

    def delete_all_for_user(self, user_id: str) -> int:
        """Hard-delete every key of a user (account deletion)."""
        with self._sessions() as db:
            result = db.execute(delete(ApiKey).where(ApiKey.user_id == user_id))
            db.commit()
        count = result.rowcount or 0
        logger.info("Deleted %d API keys for user %s", count, user_id)
        return count


# Singleton
_manager: APIKeyManager | None = None


def get_api_key_manager() -> APIKeyManager:
    global _manager
    if _manager is None:
        from panelauth.config import get_settings
        from panelauth.users import get_user_directory

        _manager = APIKeyManager(
            users=get_user_directory(),
            max_active=get_settings().max_active_api_keys,
        )
    return _manager


def reset_api_key_manager() -> None:
    """Reset singleton (for testing)."""
    global _manager
    _manager = None
