# Relational storage: engine, declarative base, session factory.
# Created: 2026-10-19
#
# Users and API keys live here (and the credential table when
# credential_backend = "database").  SQLite is the default; any SQLAlchemy
# URL works.

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import MetaData, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=naming_convention)


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on the way back; treat naive values as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _normalize(url: str) -> str:
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def create_db_engine(url: str) -> Engine:
    """Build an engine for *url*.

    ``sqlite://`` (in-memory) gets a StaticPool so every session sees the
    same database; file-backed SQLite gets its parent directory created.
    """
    url = _normalize(url)
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(url, connect_args=connect_args, poolclass=StaticPool)
        db_path = url.removeprefix("sqlite:///")
        if db_path:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(url, connect_args=connect_args)
    return create_engine(url, pool_pre_ping=True)


def init_db(engine: Engine) -> None:
    """Create all tables registered on ``Base.metadata``."""
    # Model modules register their tables on import.
    import panelauth.api.api_keys  # noqa: F401
    import panelauth.api.oauth2.storage  # noqa: F401
    import panelauth.users  # noqa: F401

    Base.metadata.create_all(engine)
    logger.debug("Database schema ensured on %s", engine.url.render_as_string(hide_password=True))


# Singleton
_session_factory: sessionmaker | None = None


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        from panelauth.config import get_settings

        engine = create_db_engine(get_settings().database_url)
        init_db(engine)
        _session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return _session_factory


def reset_session_factory() -> None:
    """Reset singleton (for testing)."""
    global _session_factory
    _session_factory = None
