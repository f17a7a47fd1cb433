# OAuth2 data models.
# Created: 2026-10-19
#
# Codes, tokens and sessions are plain dataclasses that round-trip through
# the credential store as JSON-able dicts (datetimes as ISO-8601 strings).

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum


class CodeChallengeMethod(StrEnum):
    S256 = "S256"
    # Representable, never accepted at /oauth/authorize.
    PLAIN = "plain"


def _now() -> datetime:
    return datetime.now(UTC)


def _parse_dt(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


@dataclass(frozen=True)
class OAuthClient:
    """Registered OAuth2 client (static configuration)."""

    client_id: str
    client_name: str
    client_secret_hash: str = ""
    redirect_uris: frozenset[str] = frozenset()
    scopes: frozenset[str] = frozenset()

    @property
    def is_public(self) -> bool:
        return not self.client_secret_hash

    def allows_redirect(self, redirect_uri: str) -> bool:
        # Exact string membership only.
        return redirect_uri in self.redirect_uris


@dataclass
class AuthorizationCode:
    """Short-lived authorization code bound to a PKCE challenge."""

    code: str
    client_id: str
    user_id: str
    redirect_uri: str
    scopes: list[str]
    code_challenge: str
    code_challenge_method: str = CodeChallengeMethod.S256.value
    created_at: datetime = field(default_factory=_now)
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at is not None and (now or _now()) >= self.expires_at

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "client_id": self.client_id,
            "user_id": self.user_id,
            "redirect_uri": self.redirect_uri,
            "scopes": list(self.scopes),
            "code_challenge": self.code_challenge,
            "code_challenge_method": self.code_challenge_method,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> AuthorizationCode:
        return cls(
            code=data["code"],
            client_id=data["client_id"],
            user_id=data["user_id"],
            redirect_uri=data["redirect_uri"],
            scopes=list(data.get("scopes", [])),
            code_challenge=data.get("code_challenge") or "",
            code_challenge_method=data.get("code_challenge_method")
            or CodeChallengeMethod.S256.value,
            created_at=_parse_dt(data["created_at"]) if data.get("created_at") else _now(),
            expires_at=_parse_dt(data["expires_at"]) if data.get("expires_at") else None,
        )


@dataclass
class OAuthToken:
    """OAuth2 access + refresh token pair.

    The same record is stored twice: once under the access token and once
    under the refresh token, each with its own TTL.
    """

    access_token: str
    refresh_token: str
    user_id: str
    client_id: str
    scopes: list[str]
    token_type: str = "Bearer"
    expires_in: int = 1800
    created_at: datetime = field(default_factory=_now)
    expires_at: datetime | None = None

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at is not None and (now or _now()) >= self.expires_at

    def to_response(self) -> dict:
        """Body of a successful /oauth/token response."""
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "refresh_token": self.refresh_token,
            "scope": self.scope,
        }

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "user_id": self.user_id,
            "client_id": self.client_id,
            "scopes": list(self.scopes),
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> OAuthToken:
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            user_id=data["user_id"],
            client_id=data["client_id"],
            scopes=list(data.get("scopes", [])),
            token_type=data.get("token_type", "Bearer"),
            expires_in=int(data.get("expires_in", 1800)),
            created_at=_parse_dt(data["created_at"]) if data.get("created_at") else _now(),
            expires_at=_parse_dt(data["expires_at"]) if data.get("expires_at") else None,
        )


@dataclass
class LoginSession:
    """Cookie session established by the login UI."""

    session_token: str
    user_id: str
    email: str
    created_at: datetime = field(default_factory=_now)
    expires_at: datetime = field(default_factory=lambda: _now() + timedelta(days=1))

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or _now()) >= self.expires_at

    def to_dict(self) -> dict:
        return {
            "session_token": self.session_token,
            "user_id": self.user_id,
            "email": self.email,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> LoginSession:
        return cls(
            session_token=data["session_token"],
            user_id=data["user_id"],
            email=data["email"],
            created_at=_parse_dt(data["created_at"]),
            expires_at=_parse_dt(data["expires_at"]),
        )
