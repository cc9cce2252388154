from typing import List, Optional

from common.core.exceptions import NotFoundError
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.messaging.constants import QueueName
from common.providers.messaging.factory import get_message_queue
from common.providers.messaging.interface import MessageQueueInterface
from common.providers.messaging.messages import RagIngestionMessage
from packages.rag.models.domain.project_work import IngestionStatus
from packages.rag.repositories.project_work_repository import ProjectWorkRepository

logger = get_logger(__name__)


class IngestionJobService:
    """Queues project works for ingestion by the RAG ingestion worker."""

    def __init__(
        self,
        project_work_repo: Optional[ProjectWorkRepository] = None,
        message_queue: Optional[MessageQueueInterface] = None,
    ):
        self.project_work_repo = project_work_repo or ProjectWorkRepository()
        self.message_queue = message_queue or get_message_queue()

    @trace_span
    async def enqueue_ingestion(
        self, project_work_id: int, work_id: int, source: str = "manual_trigger"
    ) -> bool:
        """
        Mark a project work pending and publish its ingestion message, stamped
        with the current PDF version so superseded messages can be dropped.

        Raises:
            NotFoundError: If the project work does not exist.
        """
        updated = await self.project_work_repo.update_ingestion_status(
            project_work_id, IngestionStatus.PENDING
        )
        if updated is None:
            raise NotFoundError(f"Project work {project_work_id} not found")

        message = RagIngestionMessage(
            project_work_id=project_work_id,
            work_id=work_id,
            source=source,
            pdf_version=updated.pdf_version,
        )
        await self.message_queue.declare_queue(QueueName.RAG_INGESTION)
        success = await self.message_queue.publish(
            QueueName.RAG_INGESTION, message.model_dump()
        )

        if success:
            logger.info(
                f"Queued ingestion of project work {project_work_id} (source={source})"
            )
        else:
            logger.error(f"Failed to queue ingestion of project work {project_work_id}")
        return success

    @trace_span
    async def retry_failed(
        self, project_id: int, work_ids: Optional[List[int]] = None
    ) -> int:
        """
        Re-queue failed ingestions of a project that still have a PDF source
        (a cached copy or a URL). Returns the number queued.
        """
        failed = await self.project_work_repo.get_failed_for_project(
            project_id, work_ids
        )

        queued = 0
        for project_work in failed:
            if not project_work.pdf_storage_key and not project_work.work.url:
                logger.debug(
                    f"Not retrying project work {project_work.id}: no PDF source"
                )
                continue
            if await self.enqueue_ingestion(
                project_work.id, project_work.work_id, source="retry_failed"
            ):
                queued += 1

        logger.info(
            f"Re-queued {queued} of {len(failed)} failed ingestions in project {project_id}"
        )
        return queued
