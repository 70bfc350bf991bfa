"""
Store helpers shared by the engagement services.

Conflict-tolerant inserts and translation of connectivity failures into
StoreUnavailableError.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def insert_ignoring_conflicts(db: AsyncSession, model, index_elements: list[str], **values):
    """
    Build ``INSERT ... ON CONFLICT (index_elements) DO NOTHING`` for the
    session's dialect.

    A rowcount of 1 after execution means the row was inserted; 0 means an
    equal row already existed.
    """
    dialect = db.get_bind().dialect.name
    try:
        insert = _DIALECT_INSERTS[dialect]
    except KeyError:
        supported = ", ".join(sorted(_DIALECT_INSERTS))
        raise ValueError(f"Unsupported database dialect '{dialect}'; expected one of: {supported}") from None
    return insert(model).values(**values).on_conflict_do_nothing(index_elements=index_elements)


def is_store_unavailable(exc: Exception) -> bool:
    """True for errors that mean the store could not be reached or used at all."""
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


@asynccontextmanager
async def store_operation(db: AsyncSession, operation: str) -> AsyncIterator[AsyncSession]:
    """
    Run a unit of work, rolling back on failure.

    Connectivity failures are re-raised as StoreUnavailableError so callers
    can treat them as transient; anything else propagates unchanged.
    """
    try:
        yield db
    except DBAPIError as e:
        await _safe_rollback(db)
        if is_store_unavailable(e):
            logger.error(f"Store unavailable during {operation}: {e}")
            raise StoreUnavailableError(operation=operation) from e
        raise
    except Exception:
        await _safe_rollback(db)
        raise


async def _safe_rollback(db: AsyncSession) -> None:
    try:
        await db.rollback()
    except DBAPIError as rollback_error:
        logger.warning(f"Rollback failed: {rollback_error}")
