"""
Repository Base
===============

Shared plumbing for SQLAlchemy repositories: every write is committed on its
own, and driver errors surface as RepositoryException.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core import RepositoryException


class SQLAlchemyRepository:
    """Base class holding the session and the error translation."""

    def __init__(self, session: AsyncSession):
        self._session = session

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Run a unit of work, translating driver errors and rolling back."""
        try:
            yield self._session
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise RepositoryException(
                f"{operation} failed: {e}",
                {"operation": operation}
            ) from e

    @asynccontextmanager
    async def _write(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Like _guard, committing when the block completes."""
        async with self._guard(operation) as session:
            yield session
            await session.commit()
