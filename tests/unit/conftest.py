import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from common.core.config import settings


@pytest.fixture
def mock_storage():
    """Create a mock storage instance for testing."""
    storage = AsyncMock()
    storage.upload = AsyncMock(return_value=True)
    storage.download = AsyncMock(return_value=None)
    storage.delete = AsyncMock(return_value=True)
    storage.exists = AsyncMock(return_value=False)
    return storage


@pytest.fixture(autouse=True)
def mock_get_storage(mock_storage):
    """Automatically mock get_storage for all unit tests."""
    with patch(
        "packages.rag.services.pdf_fetcher_service.get_storage",
        return_value=mock_storage,
    ):
        yield


@pytest.fixture
def mock_message_queue():
    """Create a mock message queue instance for testing."""
    queue = AsyncMock()
    queue.declare_queue = AsyncMock(return_value=True)
    queue.publish = AsyncMock(return_value=True)
    queue.consume = AsyncMock()
    queue.connect = AsyncMock(return_value=True)
    queue.disconnect = AsyncMock(return_value=None)
    return queue


@pytest.fixture
def mock_lock_provider():
    """Create a mock lock provider instance for testing."""
    lock = AsyncMock()
    lock.acquire_lock = AsyncMock(return_value="test-lock-token")
    lock.acquire_lock_with_retry = AsyncMock(return_value="test-lock-token")
    lock.release_lock = AsyncMock(return_value=True)
    lock.extend_lock = AsyncMock(return_value=True)
    lock.is_locked = AsyncMock(return_value=False)
    return lock


@pytest.fixture(autouse=True)
def mock_get_lock_provider(mock_lock_provider):
    """Automatically mock get_lock_provider for all unit tests."""
    with patch(
        "common.providers.locking.factory.get_lock_provider",
        return_value=mock_lock_provider,
    ), patch(
        "packages.rag.services.ingestion_service.get_lock_provider",
        return_value=mock_lock_provider,
    ):
        yield


@pytest.fixture
def mock_embedder():
    """Embedder returning one deterministic full-dimension vector per input text."""
    embedder = AsyncMock()
    padding = [0.0] * (settings.embedding_dimensions - 2)

    async def _embed_many(texts):
        return [[float(len(text)), float(i)] + padding for i, text in enumerate(texts)]

    embedder.generate_embeddings = AsyncMock(side_effect=_embed_many)
    embedder.generate_embedding = AsyncMock(
        return_value=[0.5] * settings.embedding_dimensions
    )
    embedder.get_embedding_dimension = MagicMock(
        return_value=settings.embedding_dimensions
    )
    embedder.get_model_name = MagicMock(return_value="test-embedding")
    return embedder


@pytest.fixture
def mock_span():
    """Create a mock span instance for testing telemetry."""
    span = MagicMock()
    span.__enter__ = MagicMock(return_value=span)
    span.__exit__ = MagicMock(return_value=None)
    span.__aenter__ = AsyncMock(return_value=span)
    span.__aexit__ = AsyncMock(return_value=None)
    return span


@pytest.fixture
def mock_start_span(mock_span):
    """Create a mock start_span function that returns mock_span."""
    with patch(
        "common.core.otel_axiom_exporter.axiom_tracer.start_as_current_span",
        return_value=mock_span,
    ) as mock:
        yield mock
