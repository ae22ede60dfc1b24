"""
Database handle.

The engine and session factory are owned by a `Database` instance created
in the application lifespan and disposed at shutdown. Routes receive a
session through the `get_session` dependency.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .models import Base

logger = logging.getLogger(__name__)


class Database:
    """Async engine + session factory with an explicit lifecycle."""

    def __init__(self, url: str, pool_size: int = 10, echo: bool = False):
        engine_kwargs = {'future': True, 'echo': echo, 'pool_pre_ping': True}
        # sqlite (tests) uses a static pool without size settings
        if not url.startswith('sqlite'):
            engine_kwargs['pool_size'] = pool_size
        self.url = url
        self.engine = create_async_engine(url, **engine_kwargs)
        self._session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session; anything left uncommitted is rolled back on error."""
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error({'msg': 'db_error', 'error': str(e)})
            raise
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_all(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def health_check(self) -> bool:
        try:
            async with self.session() as session:
                await session.execute(text('SELECT 1'))
            return True
        except Exception as e:
            logger.warning({'msg': 'db_health_check_failed', 'error': str(e)})
            return False

    async def dispose(self):
        await self.engine.dispose()
        logger.info({'msg': 'db_disposed'})


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request."""
    db: Database = request.app.state.db
    async with db.session() as session:
        yield session


def _insert_for(session: AsyncSession, model):
    dialect = session.get_bind().dialect.name
    if dialect == 'postgresql':
        return postgresql.insert(model)
    if dialect == 'sqlite':
        return sqlite.insert(model)
    raise RuntimeError(f'conditional insert not supported on {dialect}')


async def insert_ignore(session: AsyncSession, model, values: dict, conflict_columns: list[str]):
    """
    Single-statement INSERT ... ON CONFLICT DO NOTHING.

    Returns the new row id, or None when a row with the same conflict key
    already exists. Does not commit.
    """
    stmt = (
        _insert_for(session, model)
        .values(**values)
        .on_conflict_do_nothing(index_elements=conflict_columns)
        .returning(model.id)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()
