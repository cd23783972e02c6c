"""
podium/database.py
Database configuration and session helpers
"""
import os
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from dotenv import load_dotenv

from podium.config.feature_flags import get_bool_env
from podium.orm.base import Base
import podium.orm  # registers every model on Base.metadata

load_dotenv()

logger = logging.getLogger(__name__)

T = TypeVar("T")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./podium.db")


def _engine_options(url: str) -> dict:
    if url.lower().startswith("sqlite"):
        # Busy timeout in seconds; concurrent writers wait instead of failing
        return {"connect_args": {"timeout": 30.0}}
    return {
        "pool_pre_ping": True,
        "pool_size": int(os.getenv("DB_POOL_SIZE", "10")),
        "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "20")),
        "pool_recycle": 1800,
    }


engine = create_async_engine(
    DATABASE_URL,
    echo=get_bool_env("DB_ECHO", False),
    **_engine_options(DATABASE_URL)
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db():
    """Dependency for getting async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def close_db():
    await engine.dispose()


# Error text of backends that cannot run multi-statement transactions.
# None of the bundled dialects raise these; the list is a hook for proxies
# and engines that reject BEGIN or COMMIT outright.
TRANSACTION_UNSUPPORTED_MARKERS = (
    "transactions are not supported",
    "transaction support",
)


def is_transaction_unsupported_error(error: BaseException) -> bool:
    text = str(getattr(error, "orig", None) or error).lower()
    return any(marker in text for marker in TRANSACTION_UNSUPPORTED_MARKERS)


async def run_with_optional_transaction(
    db: AsyncSession,
    work: Callable[[AsyncSession], Awaitable[T]],
    context: str = "",
) -> T:
    """
    Run a multi-statement write atomically when the backend allows it.

    The work runs inside the session transaction and is committed at the end.
    If the backend rejects transactions, the session is rolled back and the
    work is replayed on an autocommit connection; a failure midway through
    that replay can leave a partial result behind.

    Any other error rolls back and propagates.
    """
    try:
        result = await work(db)
        await db.commit()
        return result
    except DBAPIError as e:
        await db.rollback()
        if not is_transaction_unsupported_error(e):
            raise
        logger.warning(
            f"Transactions unavailable for {context or 'operation'}; "
            f"retrying without a transaction: {e.orig}"
        )
    except Exception:
        await db.rollback()
        raise

    await db.connection(execution_options={"isolation_level": "AUTOCOMMIT"})
    try:
        result = await work(db)
        await db.commit()
        return result
    except Exception:
        await db.rollback()
        raise
