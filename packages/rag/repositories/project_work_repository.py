from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from common.core.otel_axiom_exporter import trace_span
from common.repositories.base import BaseRepository
from packages.rag.models.database.project_work import ProjectWorkEntity
from packages.rag.models.domain.project_work import (
    IngestionStatus,
    PdfSource,
    ProjectWorkModel,
    ProjectWorkWithWorkModel,
    ProjectWorkIngestionUpdateModel,
    ProjectWorkPdfUpdateModel,
)


class ProjectWorkRepository(BaseRepository[ProjectWorkEntity, ProjectWorkModel]):
    def __init__(self, db_session=None):
        super().__init__(ProjectWorkEntity, ProjectWorkModel, db_session)

    @trace_span
    async def get_with_work(
        self, project_work_id: int
    ) -> Optional[ProjectWorkWithWorkModel]:
        """Get a project work together with its bibliographic record."""
        query = (
            select(ProjectWorkEntity)
            .options(selectinload(ProjectWorkEntity.work))
            .where(ProjectWorkEntity.id == project_work_id)
        )
        async with self._get_session() as session:
            result = await session.execute(query)
            entity = result.scalar_one_or_none()
            return ProjectWorkWithWorkModel.model_validate(entity) if entity else None

    @trace_span
    async def update_ingestion_status(
        self,
        project_work_id: int,
        status: IngestionStatus,
        error: Optional[str] = None,
        chunks_created: Optional[int] = None,
        last_ingested_at: Optional[datetime] = None,
    ) -> Optional[ProjectWorkModel]:
        """Record an ingestion status transition. The error is always overwritten."""
        values = {"ingestion_status": status, "ingestion_error": error}
        if chunks_created is not None:
            values["chunks_created"] = chunks_created
        if last_ingested_at is not None:
            values["last_ingested_at"] = last_ingested_at
        return await self.update(
            project_work_id, ProjectWorkIngestionUpdateModel(**values)
        )

    @trace_span
    async def record_cached_pdf(
        self, project_work_id: int, storage_key: str, file_size: int
    ) -> Optional[ProjectWorkModel]:
        """Point the project work at a PDF copy written to object storage."""
        return await self.update(
            project_work_id,
            ProjectWorkPdfUpdateModel(
                pdf_storage_key=storage_key,
                pdf_uploaded_at=datetime.now(timezone.utc),
                pdf_file_size=file_size,
                pdf_source=PdfSource.URL_FETCH.value,
            ),
        )

    @trace_span
    async def get_failed_for_project(
        self, project_id: int, work_ids: Optional[List[int]] = None
    ) -> List[ProjectWorkWithWorkModel]:
        """Project works whose last ingestion failed, optionally restricted to work_ids."""
        query = (
            select(ProjectWorkEntity)
            .options(selectinload(ProjectWorkEntity.work))
            .where(
                ProjectWorkEntity.project_id == project_id,
                ProjectWorkEntity.ingestion_status == IngestionStatus.FAILED.value,
            )
            .order_by(ProjectWorkEntity.id)
        )
        if work_ids:
            query = query.where(ProjectWorkEntity.work_id.in_(work_ids))

        async with self._get_session() as session:
            result = await session.execute(query)
            return [
                ProjectWorkWithWorkModel.model_validate(entity)
                for entity in result.scalars().all()
            ]
