"""Shared plumbing for persistence services."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from campusbite.core.config import settings
from campusbite.core.errors import PersistenceError, StoreTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StoreService:
    """Base class for services that talk to the database.

    Every call is bounded by a timeout and database errors come out as
    ``PersistenceError`` with the original exception attached.
    """

    def __init__(self, db: AsyncSession, timeout: Optional[float] = None):
        self.db = db
        self.timeout = timeout if timeout is not None else settings.store_timeout_seconds

    async def _run(self, operation: str, work: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(work(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"[STORE] {operation} timed out after {self.timeout}s")
            await self._rollback(operation)
            raise StoreTimeoutError(operation, cause=e) from e
        except SQLAlchemyError as e:
            logger.warning(f"[STORE] {operation} failed - {type(e).__name__}: {e}")
            await self._rollback(operation)
            raise PersistenceError(operation, cause=e) from e

    async def _rollback(self, operation: str) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.error(f"[STORE] Rollback after {operation} failed: {e}")
