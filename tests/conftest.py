# Shared pytest configuration and fixtures for all test types
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from common.db.base import Base
from packages.rag.models.database import ChunkEntity, ProjectWorkEntity, WorkEntity
from packages.rag.models.domain.project_work import ScreeningDecision

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine and initialize schema."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_connection(test_engine):
    """Create test connection with outer transaction for rollback isolation."""
    async with test_engine.connect() as connection:
        trans = await connection.begin()
        yield connection
        await trans.rollback()


@pytest_asyncio.fixture(scope="function")
async def test_session_factory(test_connection):
    """Create session factory bound to test connection.

    Using join_transaction_mode="create_savepoint" so nested transaction()
    calls create savepoints instead of real nested transactions.
    """
    return async_sessionmaker(
        bind=test_connection,
        class_=AsyncSession,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )


@pytest_asyncio.fixture(scope="function")
async def test_db(test_session_factory):
    """Create a test database session."""
    async with test_session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function", autouse=True)
async def patch_lazy_sessions(test_session_factory, monkeypatch):
    """
    Patch session factories to use test database.

    This allows real transaction() and get_session() to run with proper
    commit/rollback/ContextVar semantics while using the test database.
    """
    monkeypatch.setattr("common.db.scoped.AsyncSessionLocal", test_session_factory)
    monkeypatch.setattr(
        "common.db.scoped.AsyncSessionLocalReadonly", test_session_factory
    )


@pytest_asyncio.fixture(scope="function")
async def sample_work(test_db: AsyncSession):
    """Create a sample bibliographic record."""
    work = WorkEntity(
        title="Exercise interventions for chronic low back pain",
        authors=["A. Researcher", "B. Reviewer"],
        year=2021,
        doi="10.1000/example.2021.001",
        url="https://journals.example.org/articles/lbp-exercise.pdf",
    )
    test_db.add(work)
    await test_db.commit()
    await test_db.refresh(work)
    return work


@pytest_asyncio.fixture(scope="function")
async def sample_project_work(test_db: AsyncSession, sample_work):
    """Create an included project work for the sample work."""
    project_work = ProjectWorkEntity(
        project_id=7,
        work_id=sample_work.id,
        final_decision=ScreeningDecision.INCLUDE.value,
    )
    test_db.add(project_work)
    await test_db.commit()
    await test_db.refresh(project_work)
    return project_work


@pytest_asyncio.fixture(scope="function")
async def sample_chunks(test_db: AsyncSession, sample_work):
    """Store three chunks for the sample work."""
    chunks = [
        ChunkEntity(
            work_id=sample_work.id,
            content=f"Chunk {i} of the exercise trial report.",
            chunk_index=i,
            total_chunks=3,
            embedding=[0.1 * (i + 1)] * 1536,
            chunk_metadata={"chunk_index": i, "total_chunks": 3},
        )
        for i in range(3)
    ]
    test_db.add_all(chunks)
    await test_db.commit()
    return chunks
