import pytest

from common.providers.locking.redis_lock import RedisLock
from common.providers.messaging.rabbitmq_async import RabbitMQClient
from common.providers.storage.s3 import S3Storage


@pytest.fixture
async def redis_lock():
    """
    Provide a Redis lock for integration tests.
    Requires Redis to be running (e.g., via docker-compose).
    """
    lock = RedisLock()
    if not await lock.connect():
        pytest.skip("Redis is not available for integration tests")

    yield lock

    await lock.disconnect()


@pytest.fixture
async def rabbitmq_client():
    """
    Provide a RabbitMQ client for integration tests.
    Requires RabbitMQ to be running (e.g., via docker-compose).
    """
    client = RabbitMQClient()
    if not await client.connect():
        pytest.skip("RabbitMQ is not available for integration tests")

    yield client

    await client.disconnect()


@pytest.fixture
async def s3_storage():
    """
    Provide an S3Storage client for integration tests.
    Uses the configured endpoint (LocalStack or MinIO locally).
    """
    storage = S3Storage()
    try:
        storage.client.head_bucket(Bucket=storage.bucket_name)
    except Exception as e:
        pytest.skip(f"S3 bucket {storage.bucket_name} is not available: {e}")

    yield storage


@pytest.fixture
def sample_pdf_bytes():
    """Smallest payload the PDF magic-byte check accepts."""
    return b"%PDF-1.7\n1 0 obj << >> endobj\ntrailer << >>\n%%EOF\n"
