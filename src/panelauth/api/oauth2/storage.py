# OAuth2 credential storage.
# Created: 2026-10-19
#
# Codes, tokens and login sessions are short-lived records in a key-value
# store with TTL expiry.  Two backends:
#   - MemoryCredentialStore: single process, the default.
#   - SQLCredentialStore: a table in the main database, for multi-worker
#     deployments.
# Both give an atomic single-key delete that reports whether *this* caller
# removed a live record.  Code redemption and refresh rotation depend on it.
# Expired records are swept out on write, so abandoned codes and tokens do not
# pile up.

from __future__ import annotations

import copy
import json
import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy import DateTime, String, Text, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, mapped_column, sessionmaker

from panelauth.api.oauth2.models import AuthorizationCode, LoginSession, OAuthToken
from panelauth.db import Base, as_utc, utcnow

logger = logging.getLogger(__name__)

AUTH_CODE_NS = "auth_code:"
ACCESS_TOKEN_NS = "access_token:"
REFRESH_TOKEN_NS = "refresh_token:"
SESSION_NS = "session:"

# Writes sweep out expired records at most this often (seconds).
SWEEP_INTERVAL = 60


class CredentialStoreError(RuntimeError):
    """The backing store failed; the operation's outcome is unknown."""


class CredentialStore(Protocol):
    def put(self, key: str, value: dict, ttl: int) -> None: ...

    def get(self, key: str) -> dict | None: ...

    def delete(self, key: str) -> bool: ...

    def purge_expired(self) -> int: ...


class MemoryCredentialStore:
    """In-process store.  ``dict.pop`` makes delete atomic under the GIL."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        sweep_interval: float = SWEEP_INTERVAL,
    ):
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._last_sweep = clock()
        self._data: dict[str, tuple[float, dict]] = {}

    def put(self, key: str, value: dict, ttl: int) -> None:
        now = self._clock()
        if now - self._last_sweep >= self._sweep_interval:
            self.purge_expired()
        self._data[key] = (now + ttl, copy.deepcopy(value))

    def get(self, key: str) -> dict | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            self._data.pop(key, None)
            return None
        return copy.deepcopy(value)

    def delete(self, key: str) -> bool:
        entry = self._data.pop(key, None)
        return entry is not None and self._clock() < entry[0]

    def purge_expired(self) -> int:
        now = self._clock()
        self._last_sweep = now
        expired = [k for k, (exp, _) in list(self._data.items()) if now >= exp]
        for k in expired:
            self._data.pop(k, None)
        return len(expired)

    def __len__(self) -> int:
        return len(self._data)


class CredentialRecord(Base):
    __tablename__ = "credential_records"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


class SQLCredentialStore:
    """Credential records in the ``credential_records`` table.

    ``delete`` is a single ``DELETE ... WHERE key = ? AND expires_at > now``;
    the row count says whether this caller won.
    """

    def __init__(self, session_factory: sessionmaker, sweep_interval: float = SWEEP_INTERVAL):
        self._sessions = session_factory
        self._sweep_interval = sweep_interval
        self._last_sweep = time.monotonic()

    def _maybe_sweep(self) -> None:
        if time.monotonic() - self._last_sweep < self._sweep_interval:
            return
        self._last_sweep = time.monotonic()
        try:
            self.purge_expired()
        except CredentialStoreError:
            logger.warning("Sweeping expired credential records failed", exc_info=True)

    def put(self, key: str, value: dict, ttl: int) -> None:
        self._maybe_sweep()
        expires_at = utcnow() + timedelta(seconds=ttl)
        try:
            with self._sessions() as db:
                record = db.get(CredentialRecord, key)
                if record is None:
                    db.add(CredentialRecord(key=key, value=json.dumps(value), expires_at=expires_at))
                else:
                    record.value = json.dumps(value)
                    record.expires_at = expires_at
                db.commit()
        except SQLAlchemyError as exc:
            raise CredentialStoreError(f"put failed for {key.split(':', 1)[0]}") from exc

    def get(self, key: str) -> dict | None:
        try:
            with self._sessions() as db:
                record = db.get(CredentialRecord, key)
                if record is None:
                    return None
                if as_utc(record.expires_at) <= utcnow():
                    db.delete(record)
                    db.commit()
                    return None
                return json.loads(record.value)
        except SQLAlchemyError as exc:
            raise CredentialStoreError(f"get failed for {key.split(':', 1)[0]}") from exc

    def delete(self, key: str) -> bool:
        now = utcnow()
        try:
            with self._sessions() as db:
                result = db.execute(
                    delete(CredentialRecord).where(
                        CredentialRecord.key == key,
                        CredentialRecord.expires_at > now,
                    )
                )
                # Expired leftovers under the same key are garbage either way.
                db.execute(delete(CredentialRecord).where(CredentialRecord.key == key))
                db.commit()
        except SQLAlchemyError as exc:
            raise CredentialStoreError(f"delete failed for {key.split(':', 1)[0]}") from exc
        return result.rowcount == 1

    def purge_expired(self) -> int:
        try:
            with self._sessions() as db:
                result = db.execute(
                    delete(CredentialRecord).where(CredentialRecord.expires_at <= utcnow())
                )
                db.commit()
        except SQLAlchemyError as exc:
            raise CredentialStoreError("purge failed") from exc
        return result.rowcount or 0


class OAuthStorage:
    """Namespaced access to codes, tokens and sessions in a CredentialStore."""

    def __init__(self, store: CredentialStore | None = None):
        self.store = store if store is not None else get_credential_store()

    # --- authorization codes ------------------------------------------

    def store_code(self, code: AuthorizationCode, ttl: int) -> None:
        self.store.put(AUTH_CODE_NS + code.code, code.to_dict(), ttl)

    def get_code(self, code: str) -> AuthorizationCode | None:
        data = self.store.get(AUTH_CODE_NS + code)
        return AuthorizationCode.from_dict(data) if data else None

    def consume_code(self, code: str) -> bool:
        return self.store.delete(AUTH_CODE_NS + code)

    # --- tokens ----------------------------------------------------------

    def store_token(self, token: OAuthToken, access_ttl: int, refresh_ttl: int) -> None:
        data = token.to_dict()
        self.store.put(ACCESS_TOKEN_NS + token.access_token, data, access_ttl)
        self.store.put(REFRESH_TOKEN_NS + token.refresh_token, data, refresh_ttl)

    def get_token(self, access_token: str) -> OAuthToken | None:
        data = self.store.get(ACCESS_TOKEN_NS + access_token)
        return OAuthToken.from_dict(data) if data else None

    def get_token_by_refresh(self, refresh_token: str) -> OAuthToken | None:
        data = self.store.get(REFRESH_TOKEN_NS + refresh_token)
        return OAuthToken.from_dict(data) if data else None

    def delete_token(self, access_token: str) -> bool:
        return self.store.delete(ACCESS_TOKEN_NS + access_token)

    def delete_refresh(self, refresh_token: str) -> bool:
        return self.store.delete(REFRESH_TOKEN_NS + refresh_token)

    # --- login sessions --------------------------------------------------

    def store_session(self, session: LoginSession, ttl: int) -> None:
        self.store.put(SESSION_NS + session.session_token, session.to_dict(), ttl)

    def get_session(self, token: str) -> LoginSession | None:
        data = self.store.get(SESSION_NS + token)
        return LoginSession.from_dict(data) if data else None

    def delete_session(self, token: str) -> bool:
        return self.store.delete(SESSION_NS + token)

    def cleanup_expired(self) -> int:
        removed = self.store.purge_expired()
        if removed:
            logger.debug("Purged %d expired credential records", removed)
        return removed


# Singleton
_store: CredentialStore | None = None


def get_credential_store() -> CredentialStore:
    global _store
    if _store is None:
        from panelauth.config import get_settings

        if get_settings().credential_backend == "database":
            from panelauth.db import get_session_factory

            _store = SQLCredentialStore(get_session_factory())
        else:
            _store = MemoryCredentialStore()
        logger.debug("Credential store: %s", type(_store).__name__)
    return _store


def reset_credential_store() -> None:
    """Reset singleton (for testing)."""
    global _store
    _store = None
