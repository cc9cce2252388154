"""
Document ingestion pipeline: fetch -> extract -> clear old -> chunk -> embed and store.

One call ingests one project work. Stages run strictly in order, embedding
batches run one after another, and every expected "nothing to do" condition
comes back as a SKIPPED result instead of an exception.

Re-ingestion replaces a work's chunks: old chunks are deleted before the first
new batch is written. If a later batch then fails, the batches already stored
are deleted again, so a failed run leaves the work with no chunks rather than
a partial document. The per-work lock is extended before every batch.
"""

import asyncio
import random
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from common.core.config import settings
from common.core.exceptions import (
    EmbeddingCountMismatchError,
    InvariantViolationError,
    LockUnavailableError,
    ProcessingError,
)
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.embeddings.factory import get_embedding_provider
from common.providers.embeddings.interface import EmbeddingProviderInterface
from common.providers.locking.factory import get_lock_provider
from common.providers.locking.interface import DistributedLockInterface
from packages.rag.exceptions import IngestionLockLostError
from packages.rag.lock_keys import ingestion_lock_key
from packages.rag.models.domain.chunk import ChunkCreateModel
from packages.rag.models.domain.chunking import ChunkingConfig, TextChunk
from packages.rag.models.domain.ingestion import (
    IngestionOutcome,
    IngestionRequest,
    IngestionResult,
    IngestionStage,
    SkipReason,
)
from packages.rag.models.domain.pdf import ExtractedPdf, NoPdf, PdfFetched
from packages.rag.models.domain.project_work import ProjectWorkWithWorkModel
from packages.rag.repositories.chunk_repository import ChunkRepository
from packages.rag.repositories.project_work_repository import ProjectWorkRepository
from packages.rag.services.pdf_extraction_service import PdfExtractionService
from packages.rag.services.pdf_fetcher_service import PdfFetcherService
from packages.rag.services.text_chunking_service import (
    TextChunkingService,
    default_chunking_config,
    estimate_page_number,
)

logger = get_logger(__name__)

RATE_LIMIT_STATUS = 429
RATE_LIMIT_CODE = "rate_limit_exceeded"


def is_rate_limit_error(error: BaseException) -> bool:
    """HTTP 429 or the provider's rate_limit_exceeded code, wherever the SDK puts it."""
    for status in (
        getattr(error, "status_code", None),
        getattr(error, "status", None),
        getattr(getattr(error, "response", None), "status_code", None),
    ):
        if status == RATE_LIMIT_STATUS:
            return True
    return getattr(error, "code", None) == RATE_LIMIT_CODE


class IngestionService:
    def __init__(
        self,
        project_work_repo: Optional[ProjectWorkRepository] = None,
        pdf_fetcher: Optional[PdfFetcherService] = None,
        pdf_extractor: Optional[PdfExtractionService] = None,
        chunker: Optional[TextChunkingService] = None,
        embedder: Optional[EmbeddingProviderInterface] = None,
        chunk_repo: Optional[ChunkRepository] = None,
        lock_provider: Optional[DistributedLockInterface] = None,
        batch_size: Optional[int] = None,
        max_attempts: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_jitter_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        inter_batch_delay_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.project_work_repo = project_work_repo or ProjectWorkRepository()
        self.pdf_fetcher = pdf_fetcher or PdfFetcherService(
            project_work_repo=self.project_work_repo
        )
        self.pdf_extractor = pdf_extractor or PdfExtractionService()
        self.chunker = chunker or TextChunkingService()
        self.embedder = embedder or get_embedding_provider()
        self.chunk_repo = chunk_repo or ChunkRepository()
        self.lock_provider = lock_provider

        self.batch_size = batch_size or settings.rag_embedding_batch_size
        self.max_attempts = max_attempts or settings.rag_embedding_max_attempts
        self.backoff_base_seconds = _or_default(
            backoff_base_seconds, settings.rag_backoff_base_seconds
        )
        self.backoff_jitter_seconds = _or_default(
            backoff_jitter_seconds, settings.rag_backoff_jitter_seconds
        )
        self.backoff_max_seconds = _or_default(
            backoff_max_seconds, settings.rag_backoff_max_seconds
        )
        self.inter_batch_delay_seconds = _or_default(
            inter_batch_delay_seconds, settings.rag_inter_batch_delay_seconds
        )
        self._sleep = sleep
        self._rng = rng or random.Random()

    @trace_span
    async def ingest(
        self,
        request: IngestionRequest,
        on_start: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> IngestionResult:
        """
        Ingest one project work.

        Returns COMPLETED, SKIPPED or FAILED. Invariant violations (empty
        embedding input, embedding count mismatch) are raised, not returned.

        `on_start` is awaited once this run owns the work, i.e. after the lock
        is taken. A run skipped as IN_PROGRESS never calls it.
        """
        started = time.perf_counter()

        if self.lock_provider is None:
            if on_start:
                await on_start()
            return await self._run(request, started)

        lock_key = ingestion_lock_key(request.work_id)
        try:
            token = await self.lock_provider.acquire_lock(
                lock_key, settings.rag_ingestion_lock_ttl_seconds
            )
        except LockUnavailableError as e:
            logger.error(f"Cannot lock work {request.work_id} for ingestion: {e}")
            return self._result(
                request,
                started,
                IngestionOutcome.FAILED,
                IngestionStage.FETCH,
                reason=str(e),
            )
        if token is None:
            logger.info(f"Ingestion of work {request.work_id} already in progress")
            return self._result(
                request,
                started,
                IngestionOutcome.SKIPPED,
                IngestionStage.FETCH,
                reason=SkipReason.IN_PROGRESS,
            )
        try:
            if on_start:
                await on_start()
            return await self._run(request, started, lock=(lock_key, token))
        finally:
            await self.lock_provider.release_lock(lock_key, token)

    async def _run(
        self,
        request: IngestionRequest,
        started: float,
        lock: Optional[Tuple[str, str]] = None,
    ) -> IngestionResult:
        stage = IngestionStage.FETCH
        config = request.config or default_chunking_config()
        try:
            project_work = await self.project_work_repo.get_with_work(
                request.project_work_id
            )
            if project_work is None or project_work.work_id != request.work_id:
                return self._result(
                    request,
                    started,
                    IngestionOutcome.SKIPPED,
                    stage,
                    reason=f"{SkipReason.NO_PDF}: project work "
                    f"{request.project_work_id} not found for work {request.work_id}",
                )

            fetched = await self.pdf_fetcher.fetch_for(project_work)
            if isinstance(fetched, NoPdf):
                return self._result(
                    request,
                    started,
                    IngestionOutcome.SKIPPED,
                    stage,
                    reason=f"{SkipReason.NO_PDF}: {fetched.reason}",
                )

            stage = IngestionStage.EXTRACT
            extracted = await self.pdf_extractor.extract(fetched.data)
            if extracted.is_empty:
                return self._result(
                    request,
                    started,
                    IngestionOutcome.SKIPPED,
                    stage,
                    reason=SkipReason.NO_TEXT,
                    file_size=fetched.file_size,
                    page_count=extracted.page_count,
                )

            stage = IngestionStage.CLEAR_OLD
            await self.chunk_repo.delete_by_work_id(request.work_id)

            stage = IngestionStage.CHUNK
            chunks = self.chunker.chunk(extracted.text, config)
            if not chunks:
                return self._result(
                    request,
                    started,
                    IngestionOutcome.SKIPPED,
                    stage,
                    reason=SkipReason.NO_CHUNKS,
                    file_size=fetched.file_size,
                    page_count=extracted.page_count,
                )

            stage = IngestionStage.EMBED_AND_STORE
            stored = await self._embed_and_store(
                request, project_work, fetched, extracted, chunks, lock
            )

        except InvariantViolationError:
            if stage == IngestionStage.EMBED_AND_STORE:
                await self._discard_partial_chunks(request.work_id)
            raise
        except IngestionLockLostError as e:
            # Another run may own the work now; its chunks are not ours to delete
            logger.error(f"Ingestion of project work {request.project_work_id}: {e}")
            return self._result(
                request,
                started,
                IngestionOutcome.FAILED,
                stage,
                reason=str(e),
            )
        except Exception as e:
            logger.error(
                f"Ingestion of project work {request.project_work_id} failed "
                f"at stage {stage}: {e}"
            )
            if stage == IngestionStage.EMBED_AND_STORE:
                await self._discard_partial_chunks(request.work_id)
            return self._result(
                request,
                started,
                IngestionOutcome.FAILED,
                stage,
                reason=str(e),
            )

        result = self._result(
            request,
            started,
            IngestionOutcome.COMPLETED,
            IngestionStage.DONE,
            chunks_created=stored,
            file_size=fetched.file_size,
            page_count=extracted.page_count,
            chunking_strategy=config.strategy,
        )
        logger.info(
            f"Ingested project work {request.project_work_id}: {stored} chunks "
            f"in {result.processing_time_ms}ms"
        )
        return result

    async def _embed_and_store(
        self,
        request: IngestionRequest,
        project_work: ProjectWorkWithWorkModel,
        fetched: PdfFetched,
        extracted: ExtractedPdf,
        chunks: List[TextChunk],
        lock: Optional[Tuple[str, str]] = None,
    ) -> int:
        total_chunks = len(chunks)
        total_chars = len(extracted.text)
        title = extracted.title or project_work.work.title
        batches = [
            chunks[i : i + self.batch_size]
            for i in range(0, total_chunks, self.batch_size)
        ]

        stored = 0
        for batch_number, batch in enumerate(batches, start=1):
            if batch_number > 1 and self.inter_batch_delay_seconds > 0:
                await self._sleep(self.inter_batch_delay_seconds)
            if lock is not None:
                await self._extend_lock(*lock)

            rows = [
                {
                    "chunk": chunk,
                    "metadata": self._chunk_metadata(
                        request,
                        chunk,
                        total_chunks,
                        title,
                        project_work.work.doi,
                        extracted.page_count,
                        total_chars,
                    ),
                }
                for chunk in batch
            ]
            stored += await self._store_batch_with_retry(
                request.work_id, rows, total_chunks, batch_number, len(batches)
            )

        logger.debug(
            f"Stored {stored} chunks for work {request.work_id} "
            f"({fetched.origin} PDF, {fetched.file_size} bytes)"
        )
        return stored

    async def _store_batch_with_retry(
        self,
        work_id: int,
        rows: List[Dict[str, Any]],
        total_chunks: int,
        batch_number: int,
        batch_count: int,
    ) -> int:
        texts = [row["chunk"].content for row in rows]

        for attempt in range(1, self.max_attempts + 1):
            try:
                embeddings = await self.embedder.generate_embeddings(texts)
                if len(embeddings) != len(texts):
                    raise EmbeddingCountMismatchError(
                        f"Batch {batch_number}: sent {len(texts)} texts, "
                        f"received {len(embeddings)} embeddings"
                    )

                await self.chunk_repo.insert_batch(
                    [
                        ChunkCreateModel(
                            work_id=work_id,
                            content=row["chunk"].content,
                            chunk_index=row["chunk"].index,
                            total_chunks=total_chunks,
                            embedding=embedding,
                            chunk_metadata=row["metadata"],
                        )
                        for row, embedding in zip(rows, embeddings)
                    ]
                )
                return len(rows)

            except InvariantViolationError:
                raise
            except Exception as e:
                logger.warning(
                    f"Embedding batch {batch_number}/{batch_count} for work {work_id} "
                    f"failed (attempt {attempt}/{self.max_attempts}): {e}"
                )
                if attempt >= self.max_attempts:
                    raise ProcessingError(
                        f"Embedding batch {batch_number}/{batch_count} failed after "
                        f"{self.max_attempts} attempts: {e}"
                    ) from e

                delay = self.retry_delay(attempt, e)
                logger.info(f"Retrying batch {batch_number} in {delay:.2f}s")
                await self._sleep(delay)

        return 0

    async def _extend_lock(self, lock_key: str, token: str) -> None:
        extended = await self.lock_provider.extend_lock(
            lock_key, token, settings.rag_ingestion_lock_ttl_seconds
        )
        if not extended:
            raise IngestionLockLostError(
                f"Ingestion lock {lock_key} was lost before all batches were stored"
            )

    async def _discard_partial_chunks(self, work_id: int) -> None:
        try:
            removed = await self.chunk_repo.delete_by_work_id(work_id)
        except Exception as e:
            logger.error(f"Could not remove partial chunks of work {work_id}: {e}")
            return
        if removed:
            logger.info(f"Removed {removed} partially stored chunks of work {work_id}")

    def retry_delay(self, attempt: int, error: BaseException) -> float:
        """
        Delay before retrying after failed attempt number `attempt` (1-based).

        Rate limits: jittered exponential, capped. Anything else: linear.
        """
        if is_rate_limit_error(error):
            delay = (
                self.backoff_base_seconds * 2**attempt
                + self._rng.random() * self.backoff_jitter_seconds
            )
            return min(delay, self.backoff_max_seconds)
        return self.backoff_base_seconds * attempt

    @staticmethod
    def _chunk_metadata(
        request: IngestionRequest,
        chunk: TextChunk,
        total_chunks: int,
        title: Optional[str],
        doi: Optional[str],
        page_count: int,
        total_chars: int,
    ) -> Dict[str, Any]:
        return {
            "work_id": request.work_id,
            "project_work_id": request.project_work_id,
            "chunk_index": chunk.index,
            "total_chunks": total_chunks,
            "title": title,
            "doi": doi,
            "page_number": estimate_page_number(
                chunk.char_start, total_chars, page_count
            ),
            "page_count": page_count or None,
            "char_start": chunk.char_start,
            "char_end": chunk.char_end,
        }

    @staticmethod
    def _result(
        request: IngestionRequest,
        started: float,
        outcome: IngestionOutcome,
        stage: IngestionStage,
        **fields,
    ) -> IngestionResult:
        return IngestionResult(
            outcome=outcome,
            project_work_id=request.project_work_id,
            work_id=request.work_id,
            stage=stage,
            processing_time_ms=int((time.perf_counter() - started) * 1000),
            **fields,
        )


def _or_default(value: Optional[float], default: float) -> float:
    return default if value is None else value


def get_ingestion_service() -> IngestionService:
    """Build the ingestion service with the configured providers."""
    lock_provider = (
        get_lock_provider() if settings.rag_ingestion_lock_enabled else None
    )
    return IngestionService(lock_provider=lock_provider)
