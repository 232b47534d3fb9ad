from collections.abc import AsyncGenerator
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.core.config import Settings


def async_database_url(database_url: str) -> str:
    """Map a plain postgresql:// URL onto asyncpg.

    asyncpg does not accept psycopg params like sslmode/channel_binding, so they are stripped.
    Other URLs (e.g. sqlite+aiosqlite) pass through unchanged.
    """
    parsed = urlparse(database_url)
    if parsed.scheme not in ("postgresql", "postgres"):
        return database_url
    query = parse_qs(parsed.query, keep_blank_values=True)
    query.pop("sslmode", None)
    query.pop("channel_binding", None)
    new_query = urlencode(query, doseq=True)
    return urlunparse(("postgresql+asyncpg", parsed.netloc, parsed.path, parsed.params, new_query, parsed.fragment))


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    url = async_database_url(settings.database_url)
    if url.startswith("sqlite"):
        return create_async_engine(
            url,
            echo=settings.env == "development",
            connect_args={"timeout": settings.database_timeout_seconds},
        )
    return create_async_engine(
        url,
        echo=settings.env == "development",
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_timeout=settings.database_timeout_seconds,
        connect_args={"command_timeout": settings.database_timeout_seconds},
    )


def make_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


def get_session_maker(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.session_maker


async def get_session(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine) -> None:
    """Create tables if using create_all; prefer Alembic in production."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
