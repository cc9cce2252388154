from typing import List
from sqlalchemy import select, delete, func
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.repositories.base import BaseRepository
from packages.rag.models.database.chunk import ChunkEntity
from packages.rag.models.domain.chunk import ChunkModel, ChunkCreateModel

logger = get_logger(__name__)


class ChunkRepository(BaseRepository[ChunkEntity, ChunkModel]):
    """
    Chunk store. The only writer of `document_chunks`.

    Re-ingestion always goes delete_by_work_id -> insert_batch (repeated);
    rows are never updated in place.
    """

    def __init__(self, db_session=None):
        super().__init__(ChunkEntity, ChunkModel, db_session)

    @trace_span
    async def delete_by_work_id(self, work_id: int) -> int:
        """Delete every chunk of a work. Returns the number removed (0 is fine)."""
        async with self._get_session() as session:
            result = await session.execute(
                delete(ChunkEntity).where(ChunkEntity.work_id == work_id)
            )
            deleted = result.rowcount or 0
        logger.info(f"Deleted {deleted} chunks for work {work_id}")
        return deleted

    @trace_span
    async def insert_batch(self, chunks: List[ChunkCreateModel]) -> List[ChunkModel]:
        """
        Persist a batch of chunks with their embeddings.

        All-or-nothing: the batch shares one session and one commit (or joins
        the caller's transaction), so a failure leaves no row of the batch.
        """
        if not chunks:
            return []

        entities = [ChunkEntity(**chunk.model_dump()) for chunk in chunks]
        return await self.bulk_create(entities)

    @trace_span
    async def get_by_work_id(self, work_id: int) -> List[ChunkModel]:
        """Get all chunks for a work in ordinal order."""
        query = (
            select(ChunkEntity)
            .where(ChunkEntity.work_id == work_id)
            .order_by(ChunkEntity.chunk_index)
        )
        async with self._get_session() as session:
            result = await session.execute(query)
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def count_by_work_id(self, work_id: int) -> int:
        query = select(func.count(ChunkEntity.id)).where(ChunkEntity.work_id == work_id)
        async with self._get_session() as session:
            result = await session.execute(query)
            return result.scalar_one()
