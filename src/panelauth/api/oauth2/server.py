# OAuth 2.1 Authorization Server with mandatory PKCE.
# Created: 2026-10-19
#
# Authorization code flow with PKCE (RFC 7636, S256 only), refresh token
# rotation, token revocation (RFC 7009) and bearer token validation.
# Tokens are opaque random hex strings; validity is a store lookup.
#
# Every failure raises OAuthError; the routers render it.

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from passlib.context import CryptContext

from panelauth.api.oauth2.clients import ClientRegistry, get_client_registry
from panelauth.api.oauth2.errors import OAuthError, invalid_client, invalid_grant
from panelauth.api.oauth2.models import (
    AuthorizationCode,
    CodeChallengeMethod,
    OAuthClient,
    OAuthToken,
)
from panelauth.api.oauth2.storage import OAuthStorage

logger = logging.getLogger(__name__)

# Lifetimes in seconds
CODE_TTL = 600
ACCESS_TOKEN_TTL = 1800
REFRESH_TOKEN_TTL = 30 * 24 * 3600

# Random bytes before hex encoding
CODE_BYTES = 32
TOKEN_BYTES = 64

_secret_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_client_secret(secret: str) -> str:
    return _secret_context.hash(secret)


def verify_client_secret(secret: str, secret_hash: str) -> bool:
    try:
        return _secret_context.verify(secret, secret_hash)
    except ValueError:
        # Malformed or unknown hash format in the client table.
        logger.error("Unusable client_secret_hash in client configuration")
        return False


def compute_code_challenge(code_verifier: str) -> str:
    """S256: BASE64URL(SHA256(code_verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_code_challenge(code_verifier: str, code_challenge: str, method: str) -> bool:
    if method != CodeChallengeMethod.S256:
        # "plain" is never issued.
        return False
    try:
        computed = compute_code_challenge(code_verifier)
    except UnicodeEncodeError:
        return False
    return secrets.compare_digest(computed, code_challenge)


def _short(value: str) -> str:
    return value[:8] + "..."


@dataclass(frozen=True)
class AuthorizeRequest:
    """A validated /oauth/authorize request, ready for consent."""

    client: OAuthClient
    redirect_uri: str
    scopes: list[str]
    state: str
    code_challenge: str
    code_challenge_method: str


class AuthorizationServer:
    """OAuth 2.1 authorization server with PKCE."""

    def __init__(
        self,
        storage: OAuthStorage | None = None,
        clients: ClientRegistry | None = None,
        users=None,
    ):
        self.storage = storage or OAuthStorage()
        self.clients = clients if clients is not None else get_client_registry()
        if users is None:
            from panelauth.users import get_user_directory

            users = get_user_directory()
        self.users = users

    # --- authorize -------------------------------------------------------

    def validate_authorize_request(
        self,
        client_id: str | None,
        redirect_uri: str | None,
        response_type: str | None,
        scope: str | None = None,
        state: str | None = None,
        code_challenge: str | None = None,
        code_challenge_method: str | None = None,
    ) -> AuthorizeRequest:
        if not client_id or not redirect_uri or response_type != "code":
            raise OAuthError(
                "invalid_request",
                "client_id and redirect_uri are required and response_type must be 'code'",
            )

        client = self.clients.get(client_id)
        if client is None:
            raise OAuthError("invalid_client", "Unknown client_id")

        if not client.allows_redirect(redirect_uri):
            raise OAuthError("invalid_redirect_uri", "redirect_uri is not registered for this client")

        if not code_challenge or not code_challenge_method:
            raise OAuthError("pkce_required", "code_challenge and code_challenge_method are required")

        if code_challenge_method != CodeChallengeMethod.S256:
            raise OAuthError("unsupported_challenge_method", "Only S256 is supported")

        scopes = [s for s in (scope or "").split(" ") if s]
        unknown = [s for s in scopes if s not in client.scopes]
        if unknown:
            raise OAuthError("invalid_scope", f"Scope not allowed for this client: {' '.join(unknown)}")

        return AuthorizeRequest(
            client=client,
            redirect_uri=redirect_uri,
            scopes=scopes,
            state=state or "",
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
        )

    def issue_code(self, request: AuthorizeRequest, user_id: str) -> str:
        """Mint and persist an authorization code after consent."""
        now = datetime.now(UTC)
        code = secrets.token_hex(CODE_BYTES)
        auth_code = AuthorizationCode(
            code=code,
            client_id=request.client.client_id,
            user_id=user_id,
            redirect_uri=request.redirect_uri,
            scopes=list(request.scopes),
            code_challenge=request.code_challenge,
            code_challenge_method=request.code_challenge_method,
            created_at=now,
            expires_at=now + timedelta(seconds=CODE_TTL),
        )
        self.storage.store_code(auth_code, CODE_TTL)
        logger.info("Issued authorization code for user %s (client %s)", user_id, request.client.client_id)
        return code

    # --- token -----------------------------------------------------------

    def authenticate_client(self, client_id: str, client_secret: str) -> OAuthClient:
        client = self.clients.get(client_id)
        if client is None:
            raise invalid_client()
        if client.is_public:
            logger.warning("Client %s has no secret hash; accepting without secret check", client_id)
            return client
        if not verify_client_secret(client_secret, client.client_secret_hash):
            logger.info("Client secret mismatch for %s", client_id)
            raise invalid_client()
        return client

    def exchange(
        self,
        code: str | None,
        client_id: str | None,
        client_secret: str | None,
        redirect_uri: str | None,
        code_verifier: str | None,
    ) -> OAuthToken:
        """authorization_code grant: redeem a code + PKCE verifier for tokens."""
        if not code or not client_id or not client_secret or not redirect_uri:
            raise OAuthError("invalid_request", "Missing required parameters")

        self.authenticate_client(client_id, client_secret)

        auth_code = self.storage.get_code(code)
        if auth_code is None:
            raise invalid_grant("Authorization code not found or expired")
        if auth_code.client_id != client_id:
            raise invalid_grant("Code issued to different client")
        if auth_code.redirect_uri != redirect_uri:
            raise invalid_grant("Redirect URI mismatch")
        if auth_code.is_expired():
            raise invalid_grant("Authorization code expired")

        if not auth_code.code_challenge:
            raise invalid_grant("Authorization code missing PKCE challenge")
        if not code_verifier:
            raise invalid_grant("code_verifier required for PKCE")
        if not verify_code_challenge(
            code_verifier, auth_code.code_challenge, auth_code.code_challenge_method
        ):
            raise invalid_grant("PKCE verification failed")

        # Single use: only the caller that removes the record may proceed.
        if not self.storage.consume_code(code):
            logger.info("Authorization code %s redeemed concurrently", _short(code))
            raise invalid_grant("Authorization code not found or expired")

        token = self._mint(auth_code.user_id, auth_code.client_id, auth_code.scopes)
        logger.info("Access token issued for user %s (client %s)", token.user_id, client_id)
        return token

    def refresh(
        self,
        refresh_token: str | None,
        client_id: str | None,
        client_secret: str | None,
    ) -> OAuthToken:
        """refresh_token grant with rotation: the old refresh token dies here."""
        if not refresh_token or not client_id or not client_secret:
            raise OAuthError("invalid_request", "Missing required parameters for refresh_token grant")

        self.authenticate_client(client_id, client_secret)

        old = self.storage.get_token_by_refresh(refresh_token)
        if old is None:
            raise invalid_grant("Refresh token not found or expired")
        if old.client_id != client_id:
            raise invalid_grant("Refresh token issued to different client")
        if self.users.get_active(old.user_id) is None:
            self.storage.delete_refresh(refresh_token)
            logger.info("Refresh refused: user %s missing or deleted", old.user_id)
            raise invalid_grant("Refresh token not found or expired")

        if not self.storage.delete_refresh(refresh_token):
            logger.info("Refresh token %s redeemed concurrently", _short(refresh_token))
            raise invalid_grant("Refresh token not found or expired")

        token = self._mint(old.user_id, old.client_id, old.scopes)
        logger.info("Refresh token rotated for user %s", token.user_id)
        return token

    def _mint(self, user_id: str, client_id: str, scopes: list[str]) -> OAuthToken:
        now = datetime.now(UTC)
        token = OAuthToken(
            access_token=secrets.token_hex(TOKEN_BYTES),
            refresh_token=secrets.token_hex(TOKEN_BYTES),
            user_id=user_id,
            client_id=client_id,
            scopes=list(scopes),
            expires_in=ACCESS_TOKEN_TTL,
            created_at=now,
            expires_at=now + timedelta(seconds=ACCESS_TOKEN_TTL),
        )
        self.storage.store_token(token, ACCESS_TOKEN_TTL, REFRESH_TOKEN_TTL)
        return token

    # --- revoke ----------------------------------------------------------

    def revoke(self, token: str, token_type_hint: str | None = None) -> bool:
        """Delete an access or refresh token.  Returns whether anything matched.

        Callers must not leak the return value to the client.
        """
        attempts = [self.storage.delete_token, self.storage.delete_refresh]
        if token_type_hint == "refresh_token":
            attempts.reverse()
        for attempt in attempts:
            if attempt(token):
                logger.info("Revoked token %s", _short(token))
                return True
        logger.debug("Revocation of unknown token %s", _short(token))
        return False

    # --- validation ------------------------------------------------------

    def verify_access_token(self, access_token: str) -> OAuthToken | None:
        """Store lookup only: the token record if present and unexpired."""
        token = self.storage.get_token(access_token)
        if token is None or token.is_expired():
            return None
        return token

    def validate_oauth_token(self, access_token: str) -> OAuthToken | None:
        """Full check for resource servers.

        Expired records and records whose user is gone are deleted.
        """
        token = self.storage.get_token(access_token)
        if token is None:
            return None
        if token.is_expired():
            self.storage.delete_token(access_token)
            return None
        if self.users.get_active(token.user_id) is None:
            self.storage.delete_token(access_token)
            logger.info("Dropped access token of missing or deleted user %s", token.user_id)
            return None
        return token


# Singleton
_server: AuthorizationServer | None = None


def get_oauth_server() -> AuthorizationServer:
    global _server
    if _server is None:
        _server = AuthorizationServer()
    return _server


def reset_oauth_server() -> None:
    global _server
    _server = None
