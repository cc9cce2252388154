import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.messaging.constants import QueueName
from common.providers.messaging.interface import MessageQueueInterface
from common.providers.messaging.messages import RagIngestionMessage
from common.workers.base_worker import BaseWorker
from packages.rag.models.domain.ingestion import (
    IngestionOutcome,
    IngestionRequest,
    SkipReason,
)
from packages.rag.models.domain.project_work import IngestionStatus
from packages.rag.repositories.project_work_repository import ProjectWorkRepository
from packages.rag.services.ingestion_service import (
    IngestionService,
    get_ingestion_service,
)

logger = get_logger(__name__)


class RagIngestionWorker(BaseWorker[RagIngestionMessage]):
    """
    Runs ingestion for queued project works and records the outcome.

    A FAILED run is retried as a whole job: the work goes back to PENDING
    with an "Attempt n/m failed" error and the message is re-published after
    an exponential delay. Only the last attempt records FAILED.
    """

    def __init__(
        self,
        ingestion_service: Optional[IngestionService] = None,
        project_work_repo: Optional[ProjectWorkRepository] = None,
        message_queue: Optional[MessageQueueInterface] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(
            QueueName.RAG_INGESTION,
            None,
            RagIngestionMessage,
            max_concurrent_messages=settings.rag_ingestion_worker_prefetch_count,
            message_queue=message_queue,
        )
        self._ingestion_service = ingestion_service
        self.project_work_repo = project_work_repo or ProjectWorkRepository()
        self.max_attempts = max_attempts or settings.rag_ingestion_job_max_attempts
        self.backoff_seconds = (
            settings.rag_ingestion_job_backoff_seconds
            if backoff_seconds is None
            else backoff_seconds
        )
        self._sleep = sleep

    @property
    def ingestion_service(self) -> IngestionService:
        if self._ingestion_service is None:
            self._ingestion_service = get_ingestion_service()
        return self._ingestion_service

    @trace_span
    async def process_message(self, message: RagIngestionMessage):
        project_work_id = message.project_work_id
        logger.info(
            f"Ingesting project work {project_work_id} (work {message.work_id}, "
            f"source={message.source}, attempt {message.attempt}/{self.max_attempts})"
        )

        if await self._is_superseded(message):
            return

        async def mark_processing():
            await self.project_work_repo.update_ingestion_status(
                project_work_id, IngestionStatus.PROCESSING
            )

        try:
            result = await self.ingestion_service.ingest(
                IngestionRequest(
                    project_work_id=project_work_id, work_id=message.work_id
                ),
                on_start=mark_processing,
            )
        except Exception as e:
            # Invariant violations and infrastructure errors: record, then dead-letter
            await self.project_work_repo.update_ingestion_status(
                project_work_id, IngestionStatus.FAILED, error=str(e)
            )
            raise

        match result.outcome:
            case IngestionOutcome.COMPLETED:
                await self.project_work_repo.update_ingestion_status(
                    project_work_id,
                    IngestionStatus.COMPLETED,
                    chunks_created=result.chunks_created,
                    last_ingested_at=datetime.now(timezone.utc),
                )
            case IngestionOutcome.SKIPPED if result.reason == SkipReason.IN_PROGRESS:
                # The run holding the lock owns the status
                logger.info(f"Project work {project_work_id} is already being ingested")
            case IngestionOutcome.SKIPPED:
                await self.project_work_repo.update_ingestion_status(
                    project_work_id, IngestionStatus.SKIPPED, error=result.reason
                )
            case IngestionOutcome.FAILED:
                await self._retry_or_fail(message, result.reason)

        logger.info(
            f"Project work {project_work_id} ingestion {result.outcome} at stage "
            f"{result.stage}: {result.chunks_created} chunks, "
            f"{result.processing_time_ms}ms"
        )

    async def _is_superseded(self, message: RagIngestionMessage) -> bool:
        current = await self.project_work_repo.get(message.project_work_id)
        if current is None or message.pdf_version >= current.pdf_version:
            return False
        logger.info(
            f"Dropping ingestion message for project work {message.project_work_id}: "
            f"PDF version {message.pdf_version} superseded by {current.pdf_version}"
        )
        return True

    async def _retry_or_fail(
        self, message: RagIngestionMessage, reason: Optional[str]
    ) -> None:
        project_work_id = message.project_work_id
        error = f"Attempt {message.attempt}/{self.max_attempts} failed: {reason}"

        if message.attempt >= self.max_attempts:
            await self.project_work_repo.update_ingestion_status(
                project_work_id, IngestionStatus.FAILED, error=error
            )
            return

        await self.project_work_repo.update_ingestion_status(
            project_work_id, IngestionStatus.PENDING, error=error
        )
        delay = self.backoff_seconds * 2 ** (message.attempt - 1)
        logger.info(f"Retrying project work {project_work_id} in {delay:.1f}s")
        await self._sleep(delay)

        # The failed attempt may have cached the PDF, which moves its version
        current = await self.project_work_repo.get(project_work_id)
        retry = message.model_copy(
            update={
                "attempt": message.attempt + 1,
                "pdf_version": current.pdf_version if current else message.pdf_version,
            }
        )
        if not await self.message_queue.publish(self.queue_name, retry.model_dump()):
            logger.error(
                f"Could not re-queue ingestion of project work {project_work_id}"
            )
            await self.project_work_repo.update_ingestion_status(
                project_work_id,
                IngestionStatus.FAILED,
                error=f"{error} (retry could not be queued)",
            )
