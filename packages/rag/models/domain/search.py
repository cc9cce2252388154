"""Search query, filter and result types."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SearchStrategy(StrEnum):
    VECTOR_ONLY = "vector_only"
    HYBRID = "hybrid"
    RERANKED = "reranked"  # Declared extension point, not implemented


@dataclass(frozen=True)
class SearchFilters:
    """
    Conjunctive predicates applied by the vector store.

    An empty/None work_ids means "no restriction", never "match nothing".
    """

    project_id: int
    work_ids: Optional[List[int]] = None
    only_included: bool = True


@dataclass
class RawSearchResult:
    """Row as returned by the vector store."""

    chunk_id: int
    work_id: int
    content: str
    chunk_metadata: Dict[str, Any] = field(default_factory=dict)
    similarity: float = 0.0  # 1 - cosine distance
    rrf_score: Optional[float] = None  # hybrid search only


class SearchQuery(BaseModel):
    query: str = Field(min_length=1)
    project_id: int
    limit: Optional[int] = Field(default=None, gt=0)
    min_similarity: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    work_ids: Optional[List[int]] = None
    only_included: bool = True
    include_metadata: bool = True
    strategy: Optional[SearchStrategy] = None


class CitationMetadata(BaseModel):
    """Citation back-reference extracted from the chunk metadata bag."""

    work_id: int
    title: Optional[str] = None
    doi: Optional[str] = None
    chunk_index: Optional[int] = None
    total_chunks: Optional[int] = None
    page_number: Optional[int] = None


class SearchResult(BaseModel):
    chunk_id: int
    work_id: int
    content: str
    similarity: float
    rrf_score: Optional[float] = None
    metadata: Optional[CitationMetadata] = None
