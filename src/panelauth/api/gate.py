# Resource Access Gate: one answer to "which user is this request acting as".
# Created: 2026-10-19
#
# A bearer credential is either an API key or an OAuth access token.  It is
# classified exactly once, here, and then handed to the matching validator.
# Both paths end with the same user directory check.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum

from panelauth.api.api_keys import API_KEY_PREFIX
from panelauth.api.oauth2.errors import invalid_token

logger = logging.getLogger(__name__)


class CredentialKind(StrEnum):
    API_KEY = "api_key"
    ACCESS_TOKEN = "access_token"


@dataclass(frozen=True)
class BearerCredential:
    kind: CredentialKind
    value: str


@dataclass(frozen=True)
class Principal:
    """The authenticated user behind a request."""

    user_id: str
    email: str
    auth_type: CredentialKind
    client_id: str | None = None
    scopes: list[str] = field(default_factory=list)


def classify_bearer(value: str) -> BearerCredential:
    """Anything carrying the API key prefix goes to the API key validator."""
    if value.startswith(API_KEY_PREFIX):
        return BearerCredential(CredentialKind.API_KEY, value)
    return BearerCredential(CredentialKind.ACCESS_TOKEN, value)


def parse_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, credential = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    credential = credential.strip()
    return credential or None


class ResourceAccessGate:
    def __init__(self, oauth_server=None, api_keys=None, users=None):
        if oauth_server is None:
            from panelauth.api.oauth2.server import get_oauth_server

            oauth_server = get_oauth_server()
        if api_keys is None:
            from panelauth.api.api_keys import get_api_key_manager

            api_keys = get_api_key_manager()
        if users is None:
            from panelauth.users import get_user_directory

            users = get_user_directory()
        self.oauth_server = oauth_server
        self.api_keys = api_keys
        self.users = users

    def resolve(self, credential: BearerCredential) -> Principal | None:
        client_id = None
        scopes: list[str] = []

        if credential.kind is CredentialKind.API_KEY:
            user_id = self.api_keys.validate(credential.value)
        else:
            token = self.oauth_server.validate_oauth_token(credential.value)
            user_id = token.user_id if token else None
            if token:
                client_id = token.client_id
                scopes = list(token.scopes)

        if user_id is None:
            return None

        user = self.users.get_active(user_id)
        if user is None:
            return None
        return Principal(
            user_id=user.user_id,
            email=user.email,
            auth_type=credential.kind,
            client_id=client_id,
            scopes=scopes,
        )

    def authenticate(self, authorization: str | None) -> Principal:
        """Resolve an ``Authorization`` header or raise 401 invalid_token."""
        raw = parse_bearer(authorization)
        if raw is None:
            raise invalid_token("Missing or invalid Authorization header")
        principal = self.resolve(classify_bearer(raw))
        if principal is None:
            raise invalid_token()
        return principal


# Singleton
_gate: ResourceAccessGate | None = None


def get_access_gate() -> ResourceAccessGate:
    global _gate
    if _gate is None:
        _gate = ResourceAccessGate()
    return _gate


def reset_access_gate() -> None:
    """Reset singleton (for testing)."""
    global _gate
    _gate = None
