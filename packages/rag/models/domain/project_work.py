from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, field_validator

from packages.rag.models.domain.work import WorkModel


class IngestionStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class ScreeningDecision(StrEnum):
    INCLUDE = "INCLUDE"
    EXCLUDE = "EXCLUDE"
    MAYBE = "MAYBE"


class PdfSource(StrEnum):
    UPLOAD = "upload"
    URL_FETCH = "url_fetch"


class ProjectWorkModel(BaseModel):
    id: int
    project_id: int
    work_id: int
    final_decision: Optional[str] = None
    pdf_storage_key: Optional[str] = None
    pdf_uploaded_at: Optional[datetime] = None
    pdf_file_size: Optional[int] = None
    pdf_source: Optional[str] = None
    ingestion_status: IngestionStatus = IngestionStatus.PENDING
    ingestion_error: Optional[str] = None
    chunks_created: int = 0
    last_ingested_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @property
    def is_included(self) -> bool:
        return self.final_decision == ScreeningDecision.INCLUDE

    @property
    def pdf_version(self) -> int:
        """Epoch milliseconds of the cached PDF, 0 when there is none."""
        if self.pdf_uploaded_at is None:
            return 0
        return int(self.pdf_uploaded_at.timestamp() * 1000)


class ProjectWorkWithWorkModel(ProjectWorkModel):
    """Project work joined with its bibliographic record."""

    work: WorkModel


class ProjectWorkIngestionUpdateModel(BaseModel):
    """Ingestion bookkeeping written back by the ingestion worker."""

    ingestion_status: Optional[str] = None
    ingestion_error: Optional[str] = None
    chunks_created: Optional[int] = None
    last_ingested_at: Optional[datetime] = None

    @field_validator("ingestion_status", mode="before")
    @classmethod
    def validate_status(cls, v):
        if isinstance(v, IngestionStatus):
            return v.value
        return v


class ProjectWorkPdfUpdateModel(BaseModel):
    """Cached-PDF pointer recorded after a successful URL fetch."""

    pdf_storage_key: str
    pdf_uploaded_at: datetime
    pdf_file_size: int
    pdf_source: str
