"""
Async SQLAlchemy wiring: engine, session factory, declarative base, and the
per-request unit of work.

One request is one database transaction. Everything a handler writes (the
balance UPDATE, its ledger entry, the sale row, the activity record) is
flushed into the request's session and committed once at the end.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from ppob_ledger.config import settings
from ppob_ledger.exceptions import LedgerError, StorageUnavailableError


def engine_options(url: str) -> dict:
    """Driver options for `url`; SQLite gets a busy timeout so lock waits are bounded."""
    if url.startswith("sqlite"):
        return {"connect_args": {"timeout": settings.DB_LOCK_TIMEOUT_SECONDS}}
    return {}


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **engine_options(settings.DATABASE_URL),
)

# Objects stay readable after commit; an expired attribute would need a
# lazy load, which async sessions cannot do implicitly.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """
    Yield a session for one request and settle it when the request ends.

      success                  -> commit
      LedgerError              -> commit, then re-raise
      StorageUnavailableError  -> rollback, then re-raise
      anything else            -> rollback, then re-raise

    Ledger errors are raised before a balance write lands, so what the
    session still holds is audit trail: the activity record and any sale
    already marked FAILED.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except StorageUnavailableError:
            await session.rollback()
            raise
        except LedgerError:
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise
