from datetime import datetime, timezone

import pytest

from packages.rag.models.database import ProjectWorkEntity, WorkEntity
from packages.rag.models.domain.project_work import IngestionStatus, PdfSource
from packages.rag.repositories.project_work_repository import ProjectWorkRepository


@pytest.fixture
def project_work_repo():
    return ProjectWorkRepository()


async def add_project_work(test_db, project_id, title, status, url=None):
    work = WorkEntity(title=title, authors=[], url=url)
    test_db.add(work)
    await test_db.flush()
    project_work = ProjectWorkEntity(
        project_id=project_id,
        work_id=work.id,
        final_decision="INCLUDE",
        ingestion_status=status.value,
    )
    test_db.add(project_work)
    await test_db.commit()
    return project_work


class TestGetWithWork:
    async def test_loads_bibliographic_record(
        self, project_work_repo, sample_project_work, sample_work
    ):
        project_work = await project_work_repo.get_with_work(sample_project_work.id)

        assert project_work.work_id == sample_work.id
        assert project_work.work.title == sample_work.title
        assert project_work.work.doi == "10.1000/example.2021.001"
        assert project_work.is_included
        assert project_work.ingestion_status == IngestionStatus.PENDING

    async def test_missing(self, project_work_repo):
        assert await project_work_repo.get_with_work(404) is None


class TestUpdateIngestionStatus:
    async def test_completed_records_counts(
        self, project_work_repo, sample_project_work
    ):
        finished_at = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

        updated = await project_work_repo.update_ingestion_status(
            sample_project_work.id,
            IngestionStatus.COMPLETED,
            chunks_created=12,
            last_ingested_at=finished_at,
        )

        assert updated.ingestion_status == IngestionStatus.COMPLETED
        assert updated.chunks_created == 12
        assert updated.last_ingested_at.replace(tzinfo=timezone.utc) == finished_at
        assert updated.ingestion_error is None

    async def test_error_is_cleared_on_next_transition(
        self, project_work_repo, sample_project_work
    ):
        await project_work_repo.update_ingestion_status(
            sample_project_work.id, IngestionStatus.FAILED, error="HTTP 503"
        )

        updated = await project_work_repo.update_ingestion_status(
            sample_project_work.id, IngestionStatus.PROCESSING
        )

        assert updated.ingestion_status == IngestionStatus.PROCESSING
        assert updated.ingestion_error is None

    async def test_unknown_project_work(self, project_work_repo):
        assert (
            await project_work_repo.update_ingestion_status(
                404, IngestionStatus.PENDING
            )
            is None
        )


class TestRecordCachedPdf:
    async def test_points_at_cached_copy(self, project_work_repo, sample_project_work):
        updated = await project_work_repo.record_cached_pdf(
            sample_project_work.id, "pdfs/7/1.pdf", 2048
        )

        assert updated.pdf_storage_key == "pdfs/7/1.pdf"
        assert updated.pdf_file_size == 2048
        assert updated.pdf_source == PdfSource.URL_FETCH
        assert updated.pdf_uploaded_at is not None


class TestGetFailedForProject:
    async def test_only_failed_works_of_the_project(self, project_work_repo, test_db):
        failed = await add_project_work(
            test_db, 7, "Failed trial", IngestionStatus.FAILED
        )
        await add_project_work(test_db, 7, "Completed trial", IngestionStatus.COMPLETED)
        await add_project_work(test_db, 8, "Other project", IngestionStatus.FAILED)

        results = await project_work_repo.get_failed_for_project(7)

        assert [pw.id for pw in results] == [failed.id]
        assert results[0].work.title == "Failed trial"

    async def test_restricted_to_work_ids(self, project_work_repo, test_db):
        first = await add_project_work(test_db, 7, "First", IngestionStatus.FAILED)
        await add_project_work(test_db, 7, "Second", IngestionStatus.FAILED)

        results = await project_work_repo.get_failed_for_project(
            7, work_ids=[first.work_id]
        )

        assert [pw.work_id for pw in results] == [first.work_id]

    async def test_empty_work_ids_means_all(self, project_work_repo, test_db):
        await add_project_work(test_db, 7, "First", IngestionStatus.FAILED)
        await add_project_work(test_db, 7, "Second", IngestionStatus.FAILED)

        assert len(await project_work_repo.get_failed_for_project(7, work_ids=[])) == 2
