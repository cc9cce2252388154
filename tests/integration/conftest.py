import uuid

import pytest


@pytest.fixture
def test_queue_name():
    """Provide a unique test queue name."""
    return f"test_rag_ingestion_{uuid.uuid4().hex[:8]}"


@pytest.fixture
def test_work_id():
    """Provide a work id unlikely to collide with other runs."""
    return uuid.uuid4().int % 10**9
