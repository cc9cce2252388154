import pytest
from sqlalchemy.dialects import postgresql
from unittest.mock import AsyncMock, MagicMock

from packages.rag.models.domain.search import SearchFilters
from packages.rag.providers.vector_store.factory import get_vector_store
from packages.rag.providers.vector_store.pgvector_store import PgVectorStore, rrf_term

EMBEDDING = [0.1] * 1536


def compile_sql(query) -> str:
    return " ".join(str(query.compile(dialect=postgresql.dialect())).split())


def mock_session(rows):
    result = MagicMock()
    result.mappings.return_value.all.return_value = rows
    session = AsyncMock()
    session.execute = AsyncMock(return_value=result)
    return session


@pytest.fixture
def store():
    return PgVectorStore(rrf_k=60)


class TestRrfTerm:
    def test_formula(self):
        assert rrf_term(1, 60) == pytest.approx(1 / 61)
        assert rrf_term(3, 60) == pytest.approx(1 / 63)

    def test_fusion_favours_chunks_ranked_by_both(self):
        both = rrf_term(3, 60) + rrf_term(3, 60)
        vector_only = rrf_term(1, 60)

        assert both > vector_only

    def test_equal_ranks_tie(self):
        assert rrf_term(1, 60) + rrf_term(2, 60) == rrf_term(2, 60) + rrf_term(1, 60)


class TestVectorSearchQuery:
    def test_scoped_to_project_and_included_works(self, store):
        sql = compile_sql(
            store.build_vector_search_query(EMBEDDING, SearchFilters(project_id=7), 5)
        )

        assert "JOIN project_works ON project_works.work_id = document_chunks.work_id" in sql
        assert "project_works.project_id =" in sql
        assert "project_works.final_decision =" in sql
        assert "<=>" in sql
        assert "LIMIT" in sql
        assert "IN (" not in sql

    def test_all_decisions_when_not_only_included(self, store):
        sql = compile_sql(
            store.build_vector_search_query(
                EMBEDDING, SearchFilters(project_id=7, only_included=False), 5
            )
        )

        assert "final_decision" not in sql

    def test_work_id_restriction(self, store):
        sql = compile_sql(
            store.build_vector_search_query(
                EMBEDDING, SearchFilters(project_id=7, work_ids=[1, 2]), 5
            )
        )

        assert "document_chunks.work_id IN" in sql

    def test_empty_work_ids_is_no_restriction(self, store):
        sql = compile_sql(
            store.build_vector_search_query(
                EMBEDDING, SearchFilters(project_id=7, work_ids=[]), 5
            )
        )

        assert "document_chunks.work_id IN" not in sql

    def test_ordered_by_distance_then_id(self, store):
        sql = compile_sql(
            store.build_vector_search_query(EMBEDDING, SearchFilters(project_id=7), 5)
        )

        order_by = sql.split("ORDER BY")[1]
        assert "<=>" in order_by
        assert order_by.index("<=>") < order_by.index("document_chunks.id")


class TestHybridSearchQuery:
    def test_fuses_two_rankings(self, store):
        sql = compile_sql(
            store.build_hybrid_search_query(
                EMBEDDING, "exercise pain", SearchFilters(project_id=7), 5
            )
        )

        assert "WITH vector_ranked AS" in sql
        assert "text_ranked AS" in sql
        assert "row_number() OVER" in sql
        assert "plainto_tsquery" in sql
        assert "ts_rank(document_chunks.content_tsv" in sql
        assert "@@" in sql
        assert "LEFT OUTER JOIN text_ranked" in sql
        assert "coalesce(" in sql
        assert "ORDER BY rrf_score DESC, document_chunks.id" in sql

    def test_filters_apply_to_both_rankings(self, store):
        sql = compile_sql(
            store.build_hybrid_search_query(
                EMBEDDING, "pain", SearchFilters(project_id=7, work_ids=[4]), 5
            )
        )

        assert sql.count("project_works.project_id =") == 2
        assert sql.count("document_chunks.work_id IN") == 2


class TestExecution:
    async def test_vector_search_maps_rows(self):
        session = mock_session(
            [
                {
                    "chunk_id": 10,
                    "work_id": 3,
                    "content": "Exercise reduced pain scores.",
                    "chunk_metadata": {"title": "Exercise trial"},
                    "similarity": 0.83,
                }
            ]
        )
        store = PgVectorStore(db_session=session)

        results = await store.vector_search(EMBEDDING, SearchFilters(project_id=7), 5)

        assert len(results) == 1
        assert results[0].chunk_id == 10
        assert results[0].similarity == pytest.approx(0.83)
        assert results[0].rrf_score is None
        assert results[0].chunk_metadata == {"title": "Exercise trial"}
        session.execute.assert_awaited_once()

    async def test_hybrid_search_keeps_rrf_score(self):
        session = mock_session(
            [
                {
                    "chunk_id": 10,
                    "work_id": 3,
                    "content": "Exercise reduced pain scores.",
                    "chunk_metadata": None,
                    "similarity": 0.5,
                    "rrf_score": 2 / 61,
                }
            ]
        )
        store = PgVectorStore(db_session=session)

        results = await store.hybrid_search(
            EMBEDDING, "exercise", SearchFilters(project_id=7), 5
        )

        assert results[0].rrf_score == pytest.approx(2 / 61)
        assert results[0].chunk_metadata == {}

    async def test_empty_result(self):
        store = PgVectorStore(db_session=mock_session([]))

        assert await store.vector_search(EMBEDDING, SearchFilters(project_id=7), 5) == []


def test_factory_returns_pgvector_store():
    store = get_vector_store()

    assert isinstance(store, PgVectorStore)
    assert store.rrf_k == 60
