import pytest
from unittest.mock import AsyncMock

from common.db.context import is_readonly_forced
from packages.rag.models.domain.search import (
    RawSearchResult,
    SearchFilters,
    SearchQuery,
    SearchStrategy,
)
from packages.rag.services.retrieval_service import RetrievalService


def raw_result(chunk_id, similarity, rrf_score=None, work_id=3):
    return RawSearchResult(
        chunk_id=chunk_id,
        work_id=work_id,
        content=f"Chunk {chunk_id} discusses exercise therapy.",
        chunk_metadata={
            "title": "Exercise interventions for chronic low back pain",
            "doi": "10.1000/example.2021.001",
            "chunk_index": chunk_id,
            "total_chunks": 12,
            "page_number": 2,
            "char_start": 100,
        },
        similarity=similarity,
        rrf_score=rrf_score,
    )


@pytest.fixture
def vector_store():
    store = AsyncMock()
    store.vector_search = AsyncMock(
        return_value=[raw_result(1, 0.9), raw_result(2, 0.5), raw_result(3, 0.1)]
    )
    store.hybrid_search = AsyncMock(
        return_value=[raw_result(2, 0.5, 0.032), raw_result(1, 0.9, 0.031)]
    )
    return store


@pytest.fixture
def service(mock_embedder, vector_store):
    return RetrievalService(embedder=mock_embedder, vector_store=vector_store)


class TestSearch:
    async def test_defaults_to_hybrid_with_configured_limit(
        self, service, vector_store, mock_embedder
    ):
        results = await service.search(
            SearchQuery(query="Does exercise reduce pain?", project_id=7)
        )

        mock_embedder.generate_embedding.assert_awaited_once_with(
            "Does exercise reduce pain?"
        )
        embedding, text, filters, limit = vector_store.hybrid_search.await_args.args
        assert text == "Does exercise reduce pain?"
        assert filters == SearchFilters(project_id=7, work_ids=None, only_included=True)
        assert limit == 5
        assert [r.chunk_id for r in results] == [2, 1]
        assert results[0].rrf_score == pytest.approx(0.032)
        vector_store.vector_search.assert_not_awaited()

    async def test_vector_only(self, service, vector_store):
        results = await service.search(
            SearchQuery(
                query="pain",
                project_id=7,
                strategy=SearchStrategy.VECTOR_ONLY,
                limit=10,
            )
        )

        assert vector_store.vector_search.await_args.args[2] == 10
        assert [r.chunk_id for r in results] == [1, 2]
        assert all(r.rrf_score is None for r in results)

    async def test_default_threshold_drops_weak_matches(self, service):
        results = await service.search(
            SearchQuery(query="pain", project_id=7, strategy="vector_only")
        )

        assert all(r.similarity >= 0.3 for r in results)
        assert 3 not in [r.chunk_id for r in results]

    async def test_threshold_is_inclusive(self, service):
        results = await service.search(
            SearchQuery(
                query="pain", project_id=7, strategy="vector_only", min_similarity=0.5
            )
        )

        assert [r.chunk_id for r in results] == [1, 2]

    async def test_zero_threshold_keeps_everything(self, service):
        results = await service.search(
            SearchQuery(
                query="pain", project_id=7, strategy="vector_only", min_similarity=0.0
            )
        )

        assert len(results) == 3

    async def test_citation_metadata(self, service):
        results = await service.search(SearchQuery(query="pain", project_id=7))

        citation = results[0].metadata
        assert citation.work_id == 3
        assert citation.title == "Exercise interventions for chronic low back pain"
        assert citation.doi == "10.1000/example.2021.001"
        assert citation.chunk_index == 2
        assert citation.total_chunks == 12
        assert citation.page_number == 2

    async def test_metadata_can_be_omitted(self, service):
        results = await service.search(
            SearchQuery(query="pain", project_id=7, include_metadata=False)
        )

        assert all(r.metadata is None for r in results)

    async def test_filters_are_passed_through(self, service, vector_store):
        await service.search(
            SearchQuery(
                query="pain",
                project_id=7,
                work_ids=[3, 4],
                only_included=False,
                strategy="vector_only",
            )
        )

        filters = vector_store.vector_search.await_args.args[1]
        assert filters == SearchFilters(project_id=7, work_ids=[3, 4], only_included=False)

    async def test_reranked_is_not_implemented(self, service, mock_embedder):
        with pytest.raises(NotImplementedError):
            await service.search(
                SearchQuery(query="pain", project_id=7, strategy="reranked")
            )

        mock_embedder.generate_embedding.assert_not_awaited()

    async def test_runs_read_only(self, service, vector_store):
        seen = {}

        async def capture(*args):
            seen["readonly"] = is_readonly_forced()
            return []

        vector_store.hybrid_search.side_effect = capture

        assert await service.search(SearchQuery(query="pain", project_id=7)) == []
        assert seen["readonly"] is True
        assert is_readonly_forced() is False

    async def test_empty_query_rejected(self):
        with pytest.raises(ValueError):
            SearchQuery(query="", project_id=7)
