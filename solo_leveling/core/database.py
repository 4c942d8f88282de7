from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from solo_leveling.core.config import get_settings
from solo_leveling.core.migrations import migrate_database


# libpq sslmode -> asyncpg "ssl" argument; None leaves the driver default.
_ASYNCPG_SSL_MODES: dict[str, bool | None] = {
    "disable": False,
    "allow": None,
    "prefer": None,
    "require": True,
    "verify-full": True,
}

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def prepare_engine_arguments(database_url: str) -> tuple[str, dict[str, Any]]:
    """Return a URL asyncpg accepts plus the connect args that replace ``sslmode``.

    Non-asyncpg URLs are returned untouched.
    """
    url = make_url(database_url)
    if "asyncpg" not in (url.drivername or ""):
        return database_url, {}

    sslmode = url.query.get("sslmode")
    if sslmode is None:
        return database_url, {}
    if isinstance(sslmode, tuple):
        sslmode = sslmode[-1]

    mode = sslmode.lower()
    if mode not in _ASYNCPG_SSL_MODES:
        raise ValueError(f"Unsupported sslmode '{sslmode}' for asyncpg.")

    connect_args: dict[str, Any] = {}
    if _ASYNCPG_SSL_MODES[mode] is not None:
        connect_args["ssl"] = _ASYNCPG_SSL_MODES[mode]
    stripped = url.difference_update_query(["sslmode"])
    return stripped.render_as_string(hide_password=False), connect_args


def _ensure_engine() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    global _engine, _session_factory
    if _engine is None or _session_factory is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is not configured.")

        url, connect_args = prepare_engine_arguments(settings.database_url)
        _engine = create_async_engine(url, pool_pre_ping=True, connect_args=connect_args)
        _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine, _session_factory


def get_engine() -> AsyncEngine:
    return _ensure_engine()[0]


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return _ensure_engine()[1]


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Session committed on success and rolled back when the block raises."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def init_database() -> None:
    """Connect and bring the schema up to the latest Alembic revision."""
    get_engine()
    await migrate_database()
