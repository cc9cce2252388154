"""Domain models for stored chunks."""

from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel


class ChunkModel(BaseModel):
    """Stored chunk. The embedding is write-only from the application's point of view."""

    id: int
    work_id: int
    content: str
    chunk_index: int
    total_chunks: int
    chunk_metadata: Dict[str, Any]
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ChunkCreateModel(BaseModel):
    """Model for creating a chunk."""

    work_id: int
    content: str
    chunk_index: int
    total_chunks: int
    embedding: List[float]
    chunk_metadata: Dict[str, Any]
