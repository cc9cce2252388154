"""Ingestion request/result types."""

from dataclasses import dataclass
from enum import StrEnum
from typing import Optional

from packages.rag.models.domain.chunking import ChunkingConfig, ChunkingStrategy


class IngestionStage(StrEnum):
    FETCH = "fetch"
    EXTRACT = "extract"
    CLEAR_OLD = "clear_old"
    CHUNK = "chunk"
    EMBED_AND_STORE = "embed_and_store"
    DONE = "done"


class IngestionOutcome(StrEnum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class SkipReason:
    NO_PDF = "No PDF available"
    NO_TEXT = "PDF contains no extractable text"
    NO_CHUNKS = "No chunks generated"
    IN_PROGRESS = "Ingestion already in progress"


@dataclass(frozen=True)
class IngestionRequest:
    project_work_id: int
    work_id: int
    config: Optional[ChunkingConfig] = None


@dataclass
class IngestionResult:
    """
    Job-level outcome. `skipped` means nothing to do; only `failed` is an
    operational problem.
    """

    outcome: IngestionOutcome
    project_work_id: int
    work_id: int
    stage: IngestionStage
    chunks_created: int = 0
    processing_time_ms: int = 0
    reason: Optional[str] = None
    file_size: Optional[int] = None
    page_count: Optional[int] = None
    chunking_strategy: Optional[ChunkingStrategy] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == IngestionOutcome.COMPLETED

    @property
    def skipped(self) -> bool:
        return self.outcome == IngestionOutcome.SKIPPED

    @property
    def failed(self) -> bool:
        return self.outcome == IngestionOutcome.FAILED
