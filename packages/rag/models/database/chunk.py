from pgvector.sqlalchemy import Vector
from sqlalchemy import Column, Text, Integer, JSON, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB

from common.core.config import settings
from common.db.base import Base, BigIntegerType, TSVectorType, utcnow


class ChunkEntity(Base):
    __tablename__ = "document_chunks"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    work_id = Column(
        BigIntegerType,
        ForeignKey("works.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content = Column(Text, nullable=False)
    chunk_index = Column(Integer, nullable=False)  # 0..total_chunks-1
    total_chunks = Column(Integer, nullable=False)
    embedding = Column(Vector(settings.embedding_dimensions), nullable=False)
    chunk_metadata = Column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict
    )
    # Maintained by the document_chunks_tsv_update trigger, never written by the app
    content_tsv = Column(TSVectorType, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint(
            "work_id", "chunk_index", name="uq_document_chunks_work_chunk_index"
        ),
    )
