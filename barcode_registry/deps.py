import asyncio
import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .barcodes import StoreUnavailable
from .core.config import settings
from .models import Base

LOGGER = logging.getLogger(__name__)

engine = create_async_engine(
    settings.database_url,
    future=True,
    echo=settings.DB_ECHO,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session


async def init_models() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def store_guard(action: str, timeout: float | None = None) -> AsyncIterator[None]:
    """Bound a block of store calls by a timeout and report outages as StoreUnavailable.

    Errors that mean "bad data" (IntegrityError and friends) pass through untouched.
    """
    try:
        async with asyncio.timeout(timeout if timeout is not None else settings.STORE_TIMEOUT_S):
            yield
    except TimeoutError as exc:
        LOGGER.warning("Store timed out during %s", action)
        raise StoreUnavailable(action) from exc
    except (OperationalError, InterfaceError) as exc:
        LOGGER.warning("Store error during %s: %s", action, exc)
        raise StoreUnavailable(action) from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            LOGGER.warning("Store connection lost during %s", action)
            raise StoreUnavailable(action) from exc
        raise
