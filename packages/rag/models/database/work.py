from sqlalchemy import Column, String, Text, Integer, JSON, DateTime
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType


class WorkEntity(Base):
    """Bibliographic record. Owned by the catalog; the RAG pipeline only reads it."""

    __tablename__ = "works"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    title = Column(Text, nullable=False)
    authors = Column(JSON, nullable=False, default=list)
    year = Column(Integer, nullable=True)
    doi = Column(String, nullable=True, index=True)
    url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
