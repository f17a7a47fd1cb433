# Login sessions: the cookie the login UI sets after identity-provider auth.
# Created: 2026-10-19
#
# Sessions live in the credential store under session:<token>.  The OAuth
# authorize endpoint and the API key routes read them; the login UI itself is
# an external collaborator that only calls create().

from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime, timedelta

from panelauth.api.oauth2.models import LoginSession
from panelauth.api.oauth2.storage import OAuthStorage

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = 24 * 3600


class SessionManager:
    def __init__(self, storage: OAuthStorage | None = None, ttl: int = DEFAULT_SESSION_TTL, users=None):
        self.storage = storage or OAuthStorage()
        self.ttl = ttl
        if users is None:
            from panelauth.users import get_user_directory

            users = get_user_directory()
        self.users = users

    def create(self, user) -> str:
        """Open a session for *user* and return its cookie value."""
        now = datetime.now(UTC)
        session = LoginSession(
            session_token=secrets.token_urlsafe(32),
            user_id=user.user_id,
            email=user.email,
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl),
        )
        self.storage.store_session(session, self.ttl)
        logger.info("Session created for user %s", user.user_id)
        return session.session_token

    def resolve(self, token: str | None) -> LoginSession | None:
        """The live session for *token*, or None.

        Sessions of deleted users are dropped on sight.
        """
        if not token:
            return None
        session = self.storage.get_session(token)
        if session is None:
            return None
        if session.is_expired():
            self.storage.delete_session(token)
            return None
        if self.users.get_active(session.user_id) is None:
            self.storage.delete_session(token)
            logger.info("Dropped session of missing or deleted user %s", session.user_id)
            return None
        return session

    def destroy(self, token: str | None) -> None:
        if token and self.storage.delete_session(token):
            logger.info("Session ended")


# Singleton
_manager: SessionManager | None = None


def get_session_manager() -> SessionManager:
    global _manager
    if _manager is None:
        from panelauth.config import get_settings

        _manager = SessionManager(ttl=get_settings().session_ttl_seconds)
    return _manager


def reset_session_manager() -> None:
    """Reset singleton (for testing)."""
    global _manager
    _manager = None
