from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base

from fieldflow.config import DATABASE_URL, DB_ECHO

# ─────────────────────────────── engine & session ────────────────────────────────

_engine_kwargs = {"echo": DB_ECHO, "future": True, "pool_pre_ping": True}
if not DATABASE_URL.startswith("sqlite"):
    _engine_kwargs.update(pool_size=20, max_overflow=40, pool_timeout=30)

async_engine = create_async_engine(DATABASE_URL, **_engine_kwargs)

AsyncSessionLocal = sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=True,
)

Base = declarative_base()


def make_session_factory(url: str, **kwargs):
    """Build an independent engine + session factory (workers, tests)."""
    engine = create_async_engine(url, future=True, **kwargs)
    factory = sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=True,
    )
    return engine, factory


async def init_models(engine=async_engine) -> None:
    # importing registers the mapped classes on Base.metadata
    from fieldflow.persistence import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
