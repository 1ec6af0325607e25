from typing import Any, Optional

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.core.config import settings

# Base class for models
Base = declarative_base()


def _install_sqlite_pragmas(sync_engine, use_wal: bool) -> None:
    """Enforce foreign keys on every new SQLite connection."""
    pragmas = ["PRAGMA foreign_keys=ON", "PRAGMA busy_timeout=5000"]
    if use_wal:
        pragmas = ["PRAGMA journal_mode=WAL", "PRAGMA synchronous=NORMAL", *pragmas]

    @event.listens_for(sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore[arg-type]
        cursor = dbapi_connection.cursor()
        for pragma in pragmas:
            cursor.execute(pragma)
            if pragma.startswith("PRAGMA journal_mode"):
                cursor.fetchone()
        cursor.close()


def build_engine(url: str, **engine_kwargs: Any) -> AsyncEngine:
    """Create an async engine for ``url``; SQLite files also get WAL."""
    parsed = make_url(url)
    async_engine = create_async_engine(url, echo=settings.DEBUG, **engine_kwargs)
    if parsed.get_backend_name() == "sqlite":
        in_memory = parsed.database in (None, "", ":memory:")
        _install_sqlite_pragmas(async_engine.sync_engine, use_wal=not in_memory)
    return async_engine


engine = build_engine(settings.DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db():
    """Dependency for getting database sessions."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Create every table that is still missing."""
    # Mapped classes must be imported so their tables land on the metadata.
    from app.domain.categories.models import Category  # noqa: F401
    from app.domain.responsibles.models import TransactionResponsible  # noqa: F401
    from app.domain.sources.models import TransactionSourceEntity  # noqa: F401
    from app.domain.transactions.models import Transaction, TransactionResponsibility  # noqa: F401
    from app.domain.users.models import User  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
