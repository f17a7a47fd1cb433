# OAuth2 client registry.
# Created: 2026-10-19
#
# Clients are fixed configuration: the built-in table below, or a JSON file
# named by PANELAUTH_OAUTH_CLIENTS_FILE.  The registry is built once and is
# read-only afterwards; there is no dynamic registration.

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from types import MappingProxyType

from panelauth.api.oauth2.models import OAuthClient

logger = logging.getLogger(__name__)

DEFAULT_QUIZ_CLIENT = OAuthClient(
    client_id="quiz-mcp",
    client_name="AI Quiz Platform",
    client_secret_hash="",
    redirect_uris=frozenset(
        {
            "https://first.aiquiz.pl/callback",
            "http://localhost:8787/callback",
        }
    ),
    scopes=frozenset({"openid", "profile", "email", "mcp_access", "user_info"}),
)

SCOPE_LABELS: Mapping[str, str] = MappingProxyType(
    {
        "openid": "Confirm your identity",
        "profile": "View your basic profile",
        "email": "View your email address",
        "mcp_access": "Access MCP servers on your behalf",
        "user_info": "View your email and account information",
    }
)


def describe_scope(scope: str) -> str:
    return SCOPE_LABELS.get(scope, scope)


class ClientRegistry:
    """Immutable lookup table of registered OAuth clients."""

    def __init__(self, clients: Iterable[OAuthClient]):
        table: dict[str, OAuthClient] = {}
        for client in clients:
            if client.client_id in table:
                raise ValueError(f"Duplicate OAuth client_id: {client.client_id}")
            if client.is_public:
                logger.warning(
                    "OAuth client %s has no client_secret_hash; "
                    "it is treated as a public client (PKCE only)",
                    client.client_id,
                )
            table[client.client_id] = client
        self._clients: Mapping[str, OAuthClient] = MappingProxyType(table)

    @classmethod
    def default(cls) -> ClientRegistry:
        return cls([DEFAULT_QUIZ_CLIENT])

    @classmethod
    def from_file(cls, path: Path) -> ClientRegistry:
        """Load clients from a JSON list of objects.

        Each object has ``client_id``, ``name``, ``redirect_uris``, ``scopes``
        and optionally ``client_secret_hash``.
        """
        entries = json.loads(Path(path).read_text())
        if not isinstance(entries, list):
            raise ValueError(f"{path}: expected a JSON list of clients")
        clients = [
            OAuthClient(
                client_id=entry["client_id"],
                client_name=entry.get("name") or entry["client_id"],
                client_secret_hash=entry.get("client_secret_hash", ""),
                redirect_uris=frozenset(entry.get("redirect_uris", [])),
                scopes=frozenset(entry.get("scopes", [])),
            )
            for entry in entries
        ]
        logger.info("Loaded %d OAuth clients from %s", len(clients), path)
        return cls(clients)

    @property
    def clients(self) -> Mapping[str, OAuthClient]:
        return self._clients

    def get(self, client_id: str) -> OAuthClient | None:
        return self._clients.get(client_id)

    def supported_scopes(self) -> list[str]:
        scopes: set[str] = set()
        for client in self._clients.values():
            scopes |= client.scopes
        return sorted(scopes)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._clients

    def __len__(self) -> int:
        return len(self._clients)


# Singleton
_registry: ClientRegistry | None = None


def get_client_registry() -> ClientRegistry:
    global _registry
    if _registry is None:
        from panelauth.config import get_settings

        path = get_settings().oauth_clients_file
        _registry = ClientRegistry.from_file(path) if path else ClientRegistry.default()
    return _registry


def reset_client_registry() -> None:
    """Reset singleton (for testing)."""
    global _registry
    _registry = None
