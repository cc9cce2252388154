"""
pgvector-backed chunk search.

Chunks belong to works, and works reach a project through `project_works`, so
every query joins chunks to project works on work_id and applies the project
filters there. Similarity is `1 - cosine distance`.

Hybrid search ranks the scoped chunks twice (by cosine distance, and by
`ts_rank` over the English full-text index for chunks matching the query) and
fuses the two rankings with Reciprocal Rank Fusion:

    score(chunk) = 1 / (k + vector_rank) + 1 / (k + text_rank)

A chunk missing from the text ranking contributes 0 for that term. Ties are
broken by chunk id so results are stable across runs.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, List, Optional

from sqlalchemy import Select, func, literal, select
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.scoped import get_session
from packages.rag.models.database.chunk import ChunkEntity
from packages.rag.models.database.project_work import ProjectWorkEntity
from packages.rag.models.domain.project_work import ScreeningDecision
from packages.rag.models.domain.search import RawSearchResult, SearchFilters
from .interface import VectorStoreInterface

logger = get_logger(__name__)

TEXT_SEARCH_CONFIG = "english"


def rrf_term(rank: Any, k: int) -> Any:
    """
    One Reciprocal Rank Fusion term, 1 / (k + rank).

    Works on plain numbers and on SQL column expressions alike, so the SQL
    query and any in-process check share one formula.
    """
    return 1.0 / (k + rank)


class PgVectorStore(VectorStoreInterface):
    def __init__(
        self, db_session: Optional[AsyncSession] = None, rrf_k: Optional[int] = None
    ):
        self._explicit_session = db_session
        self.rrf_k = rrf_k or settings.rag_rrf_k

    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[AsyncSession, None]:
        if self._explicit_session is not None:
            yield self._explicit_session
        else:
            async with get_session(readonly=True) as session:
                yield session

    @staticmethod
    def _filter_conditions(filters: SearchFilters) -> list:
        conditions = [ProjectWorkEntity.project_id == filters.project_id]
        if filters.only_included:
            conditions.append(
                ProjectWorkEntity.final_decision == ScreeningDecision.INCLUDE.value
            )
        # Empty list means no restriction
        if filters.work_ids:
            conditions.append(ChunkEntity.work_id.in_(filters.work_ids))
        return conditions

    def build_vector_search_query(
        self, embedding: List[float], filters: SearchFilters, limit: int
    ) -> Select:
        distance = ChunkEntity.embedding.cosine_distance(embedding)
        return (
            select(
                ChunkEntity.id.label("chunk_id"),
                ChunkEntity.work_id,
                ChunkEntity.content,
                ChunkEntity.chunk_metadata,
                (literal(1.0) - distance).label("similarity"),
            )
            .join(ProjectWorkEntity, ProjectWorkEntity.work_id == ChunkEntity.work_id)
            .where(*self._filter_conditions(filters))
            .order_by(distance, ChunkEntity.id)
            .limit(limit)
        )

    def build_hybrid_search_query(
        self,
        embedding: List[float],
        query_text: str,
        filters: SearchFilters,
        limit: int,
    ) -> Select:
        conditions = self._filter_conditions(filters)
        distance = ChunkEntity.embedding.cosine_distance(embedding)
        tsquery = func.plainto_tsquery(TEXT_SEARCH_CONFIG, query_text)
        text_score = func.ts_rank(ChunkEntity.content_tsv, tsquery)

        # Every scoped chunk gets a vector rank
        vector_ranked = (
            select(
                ChunkEntity.id.label("chunk_id"),
                (literal(1.0) - distance).label("similarity"),
                func.row_number()
                .over(order_by=(distance, ChunkEntity.id))
                .label("rank"),
            )
            .join(ProjectWorkEntity, ProjectWorkEntity.work_id == ChunkEntity.work_id)
            .where(*conditions)
            .cte("vector_ranked")
        )

        # Only chunks matching the query get a text rank
        text_ranked = (
            select(
                ChunkEntity.id.label("chunk_id"),
                func.row_number()
                .over(order_by=(text_score.desc(), ChunkEntity.id))
                .label("rank"),
            )
            .join(ProjectWorkEntity, ProjectWorkEntity.work_id == ChunkEntity.work_id)
            .where(*conditions, ChunkEntity.content_tsv.bool_op("@@")(tsquery))
            .cte("text_ranked")
        )

        rrf_score = (
            rrf_term(vector_ranked.c.rank, self.rrf_k)
            + func.coalesce(rrf_term(text_ranked.c.rank, self.rrf_k), 0.0)
        ).label("rrf_score")

        return (
            select(
                ChunkEntity.id.label("chunk_id"),
                ChunkEntity.work_id,
                ChunkEntity.content,
                ChunkEntity.chunk_metadata,
                vector_ranked.c.similarity,
                rrf_score,
            )
            .select_from(vector_ranked)
            .join(ChunkEntity, ChunkEntity.id == vector_ranked.c.chunk_id)
            .outerjoin(text_ranked, text_ranked.c.chunk_id == vector_ranked.c.chunk_id)
            .order_by(rrf_score.desc(), ChunkEntity.id)
            .limit(limit)
        )

    @trace_span
    async def vector_search(
        self, embedding: List[float], filters: SearchFilters, limit: int
    ) -> List[RawSearchResult]:
        query = self.build_vector_search_query(embedding, filters, limit)
        rows = await self._fetch(query)
        logger.info(
            f"Vector search in project {filters.project_id} returned {len(rows)} chunks"
        )
        return rows

    @trace_span
    async def hybrid_search(
        self,
        embedding: List[float],
        query_text: str,
        filters: SearchFilters,
        limit: int,
    ) -> List[RawSearchResult]:
        query = self.build_hybrid_search_query(embedding, query_text, filters, limit)
        rows = await self._fetch(query)
        logger.info(
            f"Hybrid search in project {filters.project_id} returned {len(rows)} chunks"
        )
        return rows

    async def _fetch(self, query: Select) -> List[RawSearchResult]:
        async with self._get_session() as session:
            result = await session.execute(query)
            return [self._to_raw_result(row) for row in result.mappings().all()]

    @staticmethod
    def _to_raw_result(row) -> RawSearchResult:
        rrf_score = row.get("rrf_score")
        return RawSearchResult(
            chunk_id=row["chunk_id"],
            work_id=row["work_id"],
            content=row["content"],
            chunk_metadata=row["chunk_metadata"] or {},
            similarity=float(row["similarity"]),
            rrf_score=float(rrf_score) if rrf_score is not None else None,
        )
