from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType
from packages.rag.models.domain.project_work import IngestionStatus


class ProjectWorkEntity(Base):
    """A work as seen by one review project: screening decision, cached PDF, ingestion state."""

    __tablename__ = "project_works"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    project_id = Column(BigIntegerType, nullable=False, index=True)
    work_id = Column(
        BigIntegerType, ForeignKey("works.id"), nullable=False, index=True
    )
    final_decision = Column(String, nullable=True)  # INCLUDE / EXCLUDE / MAYBE

    # Cached PDF pointer
    pdf_storage_key = Column(String, nullable=True)
    pdf_uploaded_at = Column(DateTime(timezone=True), nullable=True)
    pdf_file_size = Column(BigIntegerType, nullable=True)
    pdf_source = Column(String, nullable=True)  # upload / url_fetch

    # Ingestion tracking
    ingestion_status = Column(
        String, nullable=False, default=IngestionStatus.PENDING.value, index=True
    )
    ingestion_error = Column(Text, nullable=True)
    chunks_created = Column(Integer, nullable=False, default=0)
    last_ingested_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    work = relationship("WorkEntity", lazy="raise")

    __table_args__ = (
        UniqueConstraint("project_id", "work_id", name="uq_project_works_project_work"),
    )
