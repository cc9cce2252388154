import io

import httpx
import pytest
from unittest.mock import AsyncMock

from packages.rag.models.domain.pdf import NoPdf, PdfFetched, PdfOrigin
from packages.rag.models.domain.project_work import ProjectWorkWithWorkModel
from packages.rag.models.domain.work import WorkModel
from packages.rag.services.pdf_fetcher_service import PdfFetcherService

PDF_URL = "https://journals.example.org/articles/lbp-exercise.pdf"
PDF_BYTES = b"%PDF-1.7\n1 0 obj << >> endobj\n%%EOF"


def make_project_work(url=PDF_URL, pdf_storage_key=None, work_id=3):
    return ProjectWorkWithWorkModel(
        id=11,
        project_id=7,
        work_id=work_id,
        final_decision="INCLUDE",
        pdf_storage_key=pdf_storage_key,
        work=WorkModel(id=work_id, title="Exercise for low back pain", url=url),
    )


def pdf_response(content=PDF_BYTES, content_type="application/pdf", status=200):
    headers = {"content-type": content_type} if content_type else {}
    return httpx.Response(status, headers=headers, content=content)


class Responder:
    """MockTransport handler replaying a scripted sequence of responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(
            outcome.status_code, headers=outcome.headers, content=outcome.content
        )


@pytest.fixture
def project_work_repo():
    repo = AsyncMock()
    repo.record_cached_pdf = AsyncMock(return_value=None)
    return repo


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def make_fetcher(mock_storage, project_work_repo, sleep):
    def _make(responder, **overrides):
        client = httpx.AsyncClient(transport=httpx.MockTransport(responder))
        options = {"max_attempts": 3, "backoff_seconds": 1.0}
        options.update(overrides)
        return PdfFetcherService(
            storage=mock_storage,
            project_work_repo=project_work_repo,
            http_client=client,
            sleep=sleep,
            **options,
        )

    return _make


def delays(sleep):
    return [call.args[0] for call in sleep.await_args_list]


class TestCacheResolution:
    async def test_cached_copy_wins(self, make_fetcher, mock_storage):
        mock_storage.download.return_value = PDF_BYTES
        responder = Responder(pdf_response())
        fetcher = make_fetcher(responder)

        outcome = await fetcher.fetch_for(make_project_work())

        assert isinstance(outcome, PdfFetched)
        assert outcome.origin == PdfOrigin.CACHE
        assert outcome.storage_key == "pdfs/7/11.pdf"
        assert outcome.file_size == len(PDF_BYTES)
        assert responder.requests == []

    async def test_recorded_storage_key_is_read(self, make_fetcher, mock_storage):
        mock_storage.download.return_value = PDF_BYTES
        fetcher = make_fetcher(Responder(pdf_response()))

        outcome = await fetcher.fetch_for(
            make_project_work(pdf_storage_key="uploads/7/manual.pdf")
        )

        mock_storage.download.assert_awaited_once_with("uploads/7/manual.pdf")
        assert outcome.storage_key == "uploads/7/manual.pdf"

    async def test_non_pdf_cache_entry_falls_through_to_url(
        self, make_fetcher, mock_storage
    ):
        mock_storage.download.return_value = b"<html>error page</html>"
        responder = Responder(pdf_response())
        fetcher = make_fetcher(responder)

        outcome = await fetcher.fetch_for(make_project_work())

        assert outcome.origin == PdfOrigin.URL
        assert len(responder.requests) == 1

    async def test_cache_read_error_falls_through_to_url(
        self, make_fetcher, mock_storage
    ):
        mock_storage.download.side_effect = RuntimeError("storage unavailable")
        fetcher = make_fetcher(Responder(pdf_response()))

        outcome = await fetcher.fetch_for(make_project_work())

        assert isinstance(outcome, PdfFetched)
        assert outcome.origin == PdfOrigin.URL

    async def test_no_cache_and_no_url(self, make_fetcher):
        responder = Responder(pdf_response())
        fetcher = make_fetcher(responder)

        outcome = await fetcher.fetch_for(make_project_work(url=None))

        assert isinstance(outcome, NoPdf)
        assert "no URL" in outcome.reason
        assert responder.requests == []


class TestUrlDownload:
    async def test_download_sends_user_agent_and_caches(
        self, make_fetcher, mock_storage, project_work_repo
    ):
        responder = Responder(pdf_response())
        fetcher = make_fetcher(responder)

        outcome = await fetcher.fetch_for(make_project_work())

        assert outcome == PdfFetched(
            data=PDF_BYTES, origin=PdfOrigin.URL, storage_key="pdfs/7/11.pdf"
        )
        request = responder.requests[0]
        assert request.headers["user-agent"] == "LitLens/1.0 (Systematic Review Tool)"

        key, body = mock_storage.upload.await_args.args[:2]
        metadata = mock_storage.upload.await_args.kwargs["metadata"]
        assert key == "pdfs/7/11.pdf"
        assert isinstance(body, io.BytesIO)
        assert body.getvalue() == PDF_BYTES
        assert metadata["source"] == "url_fetch"
        assert metadata["fetched_from"] == PDF_URL
        project_work_repo.record_cached_pdf.assert_awaited_once_with(
            11, "pdfs/7/11.pdf", len(PDF_BYTES)
        )

    async def test_missing_content_type_is_accepted(self, make_fetcher):
        fetcher = make_fetcher(Responder(pdf_response(content_type=None)))

        outcome = await fetcher.fetch_for(make_project_work())

        assert isinstance(outcome, PdfFetched)

    async def test_redirects_are_followed(self, make_fetcher):
        redirect = httpx.Response(
            302, headers={"location": "https://cdn.example.org/final.pdf"}
        )
        responder = Responder(redirect, pdf_response())
        fetcher = make_fetcher(responder)

        outcome = await fetcher.fetch_for(make_project_work())

        assert isinstance(outcome, PdfFetched)
        assert str(responder.requests[-1].url) == "https://cdn.example.org/final.pdf"

    async def test_html_landing_page_is_not_retried(self, make_fetcher, sleep):
        responder = Responder(
            pdf_response(content=b"<html></html>", content_type="text/html")
        )
        fetcher = make_fetcher(responder)

        outcome = await fetcher.fetch_for(make_project_work())

        assert isinstance(outcome, NoPdf)
        assert "content type" in outcome.reason
        assert len(responder.requests) == 1
        sleep.assert_not_awaited()

    async def test_bad_magic_bytes_rejected(self, make_fetcher, mock_storage):
        fetcher = make_fetcher(Responder(pdf_response(content=b"<!doctype html>")))

        outcome = await fetcher.fetch_for(make_project_work())

        assert isinstance(outcome, NoPdf)
        assert "magic" in outcome.reason
        mock_storage.upload.assert_not_awaited()

    async def test_payload_over_cap_rejected(self, make_fetcher):
        fetcher = make_fetcher(Responder(pdf_response()), max_size_bytes=10)

        outcome = await fetcher.fetch_for(make_project_work())

        assert isinstance(outcome, NoPdf)
        assert "exceeds" in outcome.reason

    async def test_client_error_is_permanent(self, make_fetcher, sleep):
        responder = Responder(pdf_response(status=404, content=b"missing"))
        fetcher = make_fetcher(responder)

        outcome = await fetcher.fetch_for(make_project_work())

        assert isinstance(outcome, NoPdf)
        assert "HTTP 404" in outcome.reason
        assert len(responder.requests) == 1
        sleep.assert_not_awaited()

    async def test_server_errors_retried_with_exponential_backoff(
        self, make_fetcher, sleep
    ):
        responder = Responder(
            pdf_response(status=503, content=b"busy"),
            pdf_response(status=429, content=b"slow down"),
            pdf_response(),
        )
        fetcher = make_fetcher(responder)

        outcome = await fetcher.fetch_for(make_project_work())

        assert isinstance(outcome, PdfFetched)
        assert len(responder.requests) == 3
        assert delays(sleep) == [1.0, 2.0]

    async def test_retries_exhausted(self, make_fetcher, sleep):
        responder = Responder(pdf_response(status=502, content=b"bad gateway"))
        fetcher = make_fetcher(responder)

        outcome = await fetcher.fetch_for(make_project_work())

        assert isinstance(outcome, NoPdf)
        assert len(responder.requests) == 3
        assert delays(sleep) == [1.0, 2.0]

    async def test_timeouts_are_retried(self, make_fetcher):
        responder = Responder(httpx.ReadTimeout("read timed out"), pdf_response())
        fetcher = make_fetcher(responder)

        outcome = await fetcher.fetch_for(make_project_work())

        assert isinstance(outcome, PdfFetched)
        assert len(responder.requests) == 2

    async def test_connection_errors_are_retried(self, make_fetcher, sleep):
        responder = Responder(httpx.ConnectError("connection refused"), pdf_response())
        fetcher = make_fetcher(responder)

        outcome = await fetcher.fetch_for(make_project_work())

        assert isinstance(outcome, PdfFetched)
        assert delays(sleep) == [1.0]

    async def test_unsupported_protocol_is_permanent(self, make_fetcher, sleep):
        responder = Responder(httpx.UnsupportedProtocol("ftp is not supported"))
        fetcher = make_fetcher(responder)

        outcome = await fetcher.fetch_for(
            make_project_work(url="ftp://files.example.org/paper.pdf")
        )

        assert isinstance(outcome, NoPdf)
        assert "Invalid URL" in outcome.reason
        assert len(responder.requests) == 1
        sleep.assert_not_awaited()


class TestCacheWrite:
    async def test_upload_failure_does_not_fail_fetch(
        self, make_fetcher, mock_storage, project_work_repo
    ):
        mock_storage.upload.side_effect = RuntimeError("bucket is read-only")
        fetcher = make_fetcher(Responder(pdf_response()))

        outcome = await fetcher.fetch_for(make_project_work())

        assert isinstance(outcome, PdfFetched)
        project_work_repo.record_cached_pdf.assert_not_awaited()

    async def test_rejected_upload_is_not_recorded(
        self, make_fetcher, mock_storage, project_work_repo
    ):
        mock_storage.upload.return_value = False
        fetcher = make_fetcher(Responder(pdf_response()))

        outcome = await fetcher.fetch_for(make_project_work())

        assert isinstance(outcome, PdfFetched)
        project_work_repo.record_cached_pdf.assert_not_awaited()

    async def test_record_failure_does_not_fail_fetch(
        self, make_fetcher, project_work_repo
    ):
        project_work_repo.record_cached_pdf.side_effect = RuntimeError("db down")
        fetcher = make_fetcher(Responder(pdf_response()))

        outcome = await fetcher.fetch_for(make_project_work())

        assert isinstance(outcome, PdfFetched)


class TestFetchById:
    async def test_loads_project_work(self, make_fetcher, project_work_repo):
        project_work_repo.get_with_work = AsyncMock(return_value=make_project_work())
        fetcher = make_fetcher(Responder(pdf_response()))

        outcome = await fetcher.fetch(11, 3)

        assert isinstance(outcome, PdfFetched)
        project_work_repo.get_with_work.assert_awaited_once_with(11)

    async def test_missing_project_work(self, make_fetcher, project_work_repo):
        project_work_repo.get_with_work = AsyncMock(return_value=None)
        fetcher = make_fetcher(Responder(pdf_response()))

        outcome = await fetcher.fetch(11, 3)

        assert isinstance(outcome, NoPdf)
        assert "not found" in outcome.reason

    async def test_work_mismatch(self, make_fetcher, project_work_repo):
        project_work_repo.get_with_work = AsyncMock(return_value=make_project_work())
        responder = Responder(pdf_response())
        fetcher = make_fetcher(responder)

        outcome = await fetcher.fetch(11, 99)

        assert isinstance(outcome, NoPdf)
        assert "does not belong" in outcome.reason
        assert responder.requests == []
