from typing import Optional, List
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.core.constants import Environment, StorageProvider


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment Profile
    environment: Environment = Environment.LOCAL

    app_name: str = "litreview-rag"
    debug: bool = False

    # Database Components
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "litreview"
    db_use_nullpool: bool = (
        False  # True for workers (sequential), False for library callers
    )
    db_pool_size: int = 10
    db_pool_overflow: int = 5

    @property
    def database_url(self) -> str:
        """Construct database URL from components."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # AWS/S3 (also R2 / LocalStack through the endpoint override)
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_region: str = "us-east-1"
    s3_bucket_name: str = "litreview-pdfs"
    s3_endpoint_url: Optional[str] = None

    # RabbitMQ
    rabbitmq_host: str = "localhost"
    rabbitmq_port: int = 5672
    rabbitmq_username: str = "guest"
    rabbitmq_password: str = "guest"
    rabbitmq_vhost: str = ""

    # Worker Concurrency Settings
    rag_ingestion_worker_prefetch_count: int = 2

    # Ingestion job retries (whole-job attempts, on top of per-batch retries)
    rag_ingestion_job_max_attempts: int = 3
    rag_ingestion_job_backoff_seconds: float = 5.0

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    # OpenAI
    openai_api_keys: List[str] = []

    # Embeddings
    embedding_provider: str = "openai"
    embedding_model: str = "text-embedding-3-large"
    embedding_dimensions: int = 1536  # Must match the vector column width

    # OpenTelemetry
    otel_service_name: str = "litreview-rag"
    otel_service_version: str = "0.1.0"

    # Axiom (traces are only exported when a token is configured)
    axiom_token: str = ""
    axiom_dataset: str = ""

    # Chunking
    rag_chunk_size: int = 1000
    rag_chunk_overlap: int = 200
    rag_chunking_strategy: str = "recursive"

    # Ingestion
    rag_embedding_batch_size: int = 5
    rag_embedding_max_attempts: int = 3
    rag_backoff_base_seconds: float = 1.0
    rag_backoff_jitter_seconds: float = 1.0
    rag_backoff_max_seconds: float = 10.0
    rag_inter_batch_delay_seconds: float = 0.2
    rag_ingestion_lock_enabled: bool = True
    rag_ingestion_lock_ttl_seconds: int = 600

    # PDF fetching
    pdf_fetch_timeout_seconds: float = 30.0
    pdf_max_size_bytes: int = 50 * 1024 * 1024
    pdf_fetch_max_attempts: int = 3
    pdf_fetch_backoff_seconds: float = 1.0
    pdf_fetch_user_agent: str = "LitLens/1.0 (Systematic Review Tool)"

    # Retrieval
    rag_search_default_limit: int = 5
    rag_search_min_similarity: float = 0.3
    rag_search_strategy: str = "hybrid"
    rag_rrf_k: int = 60

    @property
    def storage_provider(self) -> StorageProvider:
        """Object storage is S3-compatible in every environment."""
        return StorageProvider.S3


settings = Settings()
