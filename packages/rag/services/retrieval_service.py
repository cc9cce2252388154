from typing import Any, Dict, List, Optional

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.context import readonly
from common.providers.embeddings.factory import get_embedding_provider
from common.providers.embeddings.interface import EmbeddingProviderInterface
from packages.rag.models.domain.search import (
    CitationMetadata,
    RawSearchResult,
    SearchFilters,
    SearchQuery,
    SearchResult,
    SearchStrategy,
)
from packages.rag.providers.vector_store.factory import get_vector_store
from packages.rag.providers.vector_store.interface import VectorStoreInterface

logger = get_logger(__name__)


class RetrievalService:
    """
    Read-only chunk retrieval for grounding answers in a review's evidence.

    Results are restricted to included studies unless the query opts out.
    """

    def __init__(
        self,
        embedder: Optional[EmbeddingProviderInterface] = None,
        vector_store: Optional[VectorStoreInterface] = None,
    ):
        self.embedder = embedder or get_embedding_provider()
        self.vector_store = vector_store or get_vector_store()

    @trace_span
    @readonly
    async def search(self, query: SearchQuery) -> List[SearchResult]:
        """
        Embed the query, run the requested strategy, drop results below the
        similarity threshold and map the rest to citation-bearing results.

        Raises:
            NotImplementedError: For the reranked strategy.
        """
        strategy = query.strategy or SearchStrategy(settings.rag_search_strategy)
        if strategy == SearchStrategy.RERANKED:
            raise NotImplementedError("Reranked search is not implemented")

        limit = query.limit or settings.rag_search_default_limit
        min_similarity = (
            query.min_similarity
            if query.min_similarity is not None
            else settings.rag_search_min_similarity
        )
        filters = SearchFilters(
            project_id=query.project_id,
            work_ids=query.work_ids,
            only_included=query.only_included,
        )

        embedding = await self.embedder.generate_embedding(query.query)

        match strategy:
            case SearchStrategy.VECTOR_ONLY:
                raw_results = await self.vector_store.vector_search(
                    embedding, filters, limit
                )
            case SearchStrategy.HYBRID:
                raw_results = await self.vector_store.hybrid_search(
                    embedding, query.query, filters, limit
                )
            case _:
                raise ValueError(f"Unknown search strategy: {strategy}")

        results = [
            self._to_search_result(raw, query.include_metadata)
            for raw in raw_results
            if raw.similarity >= min_similarity
        ]
        logger.info(
            f"{strategy} search in project {query.project_id}: {len(results)} of "
            f"{len(raw_results)} results above similarity {min_similarity}"
        )
        return results

    def _to_search_result(
        self, raw: RawSearchResult, include_metadata: bool
    ) -> SearchResult:
        return SearchResult(
            chunk_id=raw.chunk_id,
            work_id=raw.work_id,
            content=raw.content,
            similarity=raw.similarity,
            rrf_score=raw.rrf_score,
            metadata=(
                self._citation_metadata(raw.work_id, raw.chunk_metadata)
                if include_metadata
                else None
            ),
        )

    @staticmethod
    def _citation_metadata(work_id: int, bag: Dict[str, Any]) -> CitationMetadata:
        return CitationMetadata(
            work_id=work_id,
            title=bag.get("title"),
            doi=bag.get("doi"),
            chunk_index=bag.get("chunk_index"),
            total_chunks=bag.get("total_chunks"),
            page_number=bag.get("page_number"),
        )
