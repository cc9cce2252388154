from abc import ABC, abstractmethod
from typing import List

from packages.rag.models.domain.search import RawSearchResult, SearchFilters


class VectorStoreInterface(ABC):
    """Similarity search over stored chunk embeddings."""

    @abstractmethod
    async def vector_search(
        self, embedding: List[float], filters: SearchFilters, limit: int
    ) -> List[RawSearchResult]:
        """Nearest chunks by cosine distance, most similar first."""
        pass

    @abstractmethod
    async def hybrid_search(
        self,
        embedding: List[float],
        query_text: str,
        filters: SearchFilters,
        limit: int,
    ) -> List[RawSearchResult]:
        """Vector and full-text rankings fused with Reciprocal Rank Fusion."""
        pass
