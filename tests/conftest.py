# Shared fixtures: in-memory database, memory credential store, components.
# Created: 2026-10-19

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from panelauth.api.api_keys import APIKeyManager
from panelauth.api.gate import ResourceAccessGate
from panelauth.api.oauth2.clients import DEFAULT_QUIZ_CLIENT, ClientRegistry
from panelauth.api.oauth2.models import OAuthClient
from panelauth.api.oauth2.server import AuthorizationServer, hash_client_secret
from panelauth.api.oauth2.storage import MemoryCredentialStore, OAuthStorage
from panelauth.api.sessions import SessionManager
from panelauth.config import reset_settings
from panelauth.db import create_db_engine, init_db
from panelauth.users import UserDirectory

QUIZ_REDIRECT = "https://first.aiquiz.pl/callback"
CONFIDENTIAL_SECRET = "s3cret-value"
CONFIDENTIAL_REDIRECT = "https://app.example.com/oauth/callback"


@pytest.fixture(autouse=True)
def settings_env(tmp_path, monkeypatch):
    """Isolate settings from the developer's environment and .env file."""
    monkeypatch.chdir(tmp_path)
    for name in ("BASE_URL", "LOGIN_URL", "SESSION_COOKIE_NAME", "OAUTH_CLIENTS_FILE"):
        monkeypatch.delenv(f"PANELAUTH_{name}", raising=False)
    monkeypatch.setenv("PANELAUTH_DATABASE_URL", "sqlite://")
    monkeypatch.setenv("PANELAUTH_CREDENTIAL_BACKEND", "memory")
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def session_factory():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def users(session_factory):
    return UserDirectory(session_factory)


@pytest.fixture
def user(users):
    return users.register("alice@example.com")


@pytest.fixture
def credential_store():
    return MemoryCredentialStore()


@pytest.fixture
def storage(credential_store):
    return OAuthStorage(credential_store)


@pytest.fixture
def confidential_client():
    return OAuthClient(
        client_id="confidential-app",
        client_name="Confidential App",
        client_secret_hash=hash_client_secret(CONFIDENTIAL_SECRET),
        redirect_uris=frozenset({CONFIDENTIAL_REDIRECT}),
        scopes=frozenset({"openid", "email"}),
    )


@pytest.fixture
def clients(confidential_client):
    return ClientRegistry([DEFAULT_QUIZ_CLIENT, confidential_client])


@pytest.fixture
def server(storage, clients, users):
    return AuthorizationServer(storage, clients, users)


@pytest.fixture
def api_keys(session_factory, users):
    return APIKeyManager(session_factory, users)


@pytest.fixture
def sessions(storage, users):
    return SessionManager(storage, users=users)


@pytest.fixture
def gate(server, api_keys, users):
    return ResourceAccessGate(server, api_keys, users)


@pytest.fixture
def app(server, api_keys, users, sessions, gate, clients, credential_store, monkeypatch):
    import panelauth.api.api_keys as api_keys_mod
    import panelauth.api.gate as gate_mod
    import panelauth.api.oauth2.clients as clients_mod
    import panelauth.api.oauth2.server as server_mod
    import panelauth.api.oauth2.storage as storage_mod
    import panelauth.api.sessions as sessions_mod
    import panelauth.users as users_mod
    from panelauth.api.serve import create_app

    monkeypatch.setattr(server_mod, "_server", server)
    monkeypatch.setattr(api_keys_mod, "_manager", api_keys)
    monkeypatch.setattr(users_mod, "_directory", users)
    monkeypatch.setattr(sessions_mod, "_manager", sessions)
    monkeypatch.setattr(gate_mod, "_gate", gate)
    monkeypatch.setattr(clients_mod, "_registry", clients)
    monkeypatch.setattr(storage_mod, "_store", credential_store)
    return create_app()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def session_cookie(sessions, user):
    """Cookie header for a logged-in alice."""
    return {"Cookie": f"panel_session={sessions.create(user)}"}
