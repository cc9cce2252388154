"""
Operation-scoped database sessions.

Sessions are acquired lazily and released as soon as the operation ends, so no
connection is held while the pipeline waits on object storage, PDF downloads
or the embedding API.

Usage:
    # One operation: acquire, commit, release
    async with get_session() as session:
        await session.execute(query)

    # Several operations that must commit or roll back together
    async with transaction():
        await chunk_repo.delete_by_work_id(work_id)
        await chunk_repo.insert_batch(chunks)
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import get_logger
from common.db.session import AsyncSessionLocal, AsyncSessionLocalReadonly
from common.db.context import (
    get_current_session,
    set_current_session,
    reset_current_session,
    is_readonly_forced,
)

logger = get_logger(__name__)


@asynccontextmanager
async def transaction(readonly: bool = False) -> AsyncGenerator[AsyncSession, None]:
    """
    Explicit transaction boundary.

    Every `get_session()` inside the block shares this session. Commits on
    success (unless readonly) and rolls back on any exception, which is
    re-raised.
    """
    effective_readonly = readonly or is_readonly_forced()
    session_factory = (
        AsyncSessionLocalReadonly if effective_readonly else AsyncSessionLocal
    )

    start = time.perf_counter()
    async with session_factory() as session:
        acquire_time = time.perf_counter() - start
        logger.debug(
            f"Transaction session acquire: {acquire_time * 1000:.2f}ms, readonly={effective_readonly}"
        )

        token = set_current_session(session, readonly=effective_readonly)
        try:
            yield session
            if not effective_readonly:
                await session.commit()
        except Exception as e:
            logger.error(f"Transaction rollback due to: {e}")
            await session.rollback()
            raise
        finally:
            reset_current_session(token, readonly=effective_readonly)


@asynccontextmanager
async def get_session(readonly: bool = False) -> AsyncGenerator[AsyncSession, None]:
    """
    Get a session for a single DB operation.

    Reuses the enclosing `transaction()` session when there is one (and leaves
    committing to it). Otherwise acquires a fresh session that commits once at
    the end of the block, so the whole block is still all-or-nothing.
    """
    effective_readonly = readonly or is_readonly_forced()
    existing = get_current_session(readonly=effective_readonly)

    if existing:
        yield existing
        return

    session_factory = (
        AsyncSessionLocalReadonly if effective_readonly else AsyncSessionLocal
    )

    async with session_factory() as session:
        try:
            yield session
            if not effective_readonly:
                commit_start = time.perf_counter()
                await session.commit()
                commit_time = time.perf_counter() - commit_start
                logger.debug(f"Operation commit: {commit_time * 1000:.2f}ms")
        except Exception as e:
            logger.error(f"Operation rollback due to: {e}")
            await session.rollback()
            raise
