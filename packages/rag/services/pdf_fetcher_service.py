import asyncio
import io
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import httpx

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.storage.factory import get_storage
from common.providers.storage.interface import StorageInterface
from common.providers.storage.paths import get_project_work_pdf_path
from packages.rag.exceptions import (
    NotAPdfError,
    PdfFetchError,
    PdfTooLargeError,
    PermanentPdfFetchError,
)
from packages.rag.models.domain.pdf import FetchOutcome, NoPdf, PdfFetched, PdfOrigin
from packages.rag.models.domain.project_work import (
    PdfSource,
    ProjectWorkWithWorkModel,
)
from packages.rag.repositories.project_work_repository import ProjectWorkRepository

logger = get_logger(__name__)

PDF_MAGIC = b"%PDF-"


def looks_like_pdf(data: Optional[bytes]) -> bool:
    return bool(data) and data.startswith(PDF_MAGIC)


class PdfFetcherService:
    """
    Resolves the PDF bytes for a project work.

    Order: the project's cached copy in object storage, then the work's URL.
    A PDF fetched from a URL is written back to the cache so later runs skip
    the download.
    """

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        project_work_repo: Optional[ProjectWorkRepository] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: Optional[float] = None,
        max_size_bytes: Optional[int] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.storage = storage or get_storage()
        self.project_work_repo = project_work_repo or ProjectWorkRepository()
        self._http_client = http_client
        self.timeout_seconds = timeout_seconds or settings.pdf_fetch_timeout_seconds
        self.max_size_bytes = max_size_bytes or settings.pdf_max_size_bytes
        self.max_attempts = max(1, max_attempts or settings.pdf_fetch_max_attempts)
        self.backoff_seconds = (
            backoff_seconds
            if backoff_seconds is not None
            else settings.pdf_fetch_backoff_seconds
        )
        self._sleep = sleep

    @trace_span
    async def fetch(self, project_work_id: int, work_id: int) -> FetchOutcome:
        """Load the project work and resolve its PDF."""
        project_work = await self.project_work_repo.get_with_work(project_work_id)
        if project_work is None:
            return NoPdf(f"Project work {project_work_id} not found")
        if project_work.work_id != work_id:
            return NoPdf(
                f"Project work {project_work_id} does not belong to work {work_id}"
            )
        return await self.fetch_for(project_work)

    @trace_span
    async def fetch_for(self, project_work: ProjectWorkWithWorkModel) -> FetchOutcome:
        """Resolve the PDF of an already-loaded project work."""
        cache_key = project_work.pdf_storage_key or get_project_work_pdf_path(
            project_work.project_id, project_work.id
        )

        cached = await self._read_cache(cache_key)
        if cached is not None:
            return PdfFetched(data=cached, origin=PdfOrigin.CACHE, storage_key=cache_key)

        url = project_work.work.url
        if not url:
            logger.warning(
                f"No PDF available for project work {project_work.id} "
                f"(work {project_work.work_id}): no cached copy and no URL"
            )
            return NoPdf("no cached copy and no URL")

        try:
            data = await self._download_with_retry(url)
        except PdfFetchError as e:
            logger.warning(
                f"Failed to fetch PDF for project work {project_work.id} from {url}: {e}"
            )
            return NoPdf(str(e))

        await self._write_cache(project_work, cache_key, data, url)
        return PdfFetched(data=data, origin=PdfOrigin.URL, storage_key=cache_key)

    async def _read_cache(self, key: str) -> Optional[bytes]:
        try:
            data = await self.storage.download(key)
        except Exception as e:
            logger.error(f"Failed to read cached PDF {key}: {e}")
            return None

        if data is None:
            return None
        if not looks_like_pdf(data):
            logger.warning(f"Cached object {key} is not a PDF, ignoring it")
            return None
        logger.info(f"Using cached PDF {key} ({len(data)} bytes)")
        return data

    async def _write_cache(
        self,
        project_work: ProjectWorkWithWorkModel,
        key: str,
        data: bytes,
        url: str,
    ) -> None:
        """Best effort: a failed cache write never fails the fetch."""
        try:
            uploaded = await self.storage.upload(
                key,
                io.BytesIO(data),
                metadata={
                    "project_id": project_work.project_id,
                    "project_work_id": project_work.id,
                    "work_id": project_work.work_id,
                    "source": PdfSource.URL_FETCH.value,
                    "fetched_from": url,
                    "uploaded_at": datetime.now(timezone.utc).isoformat(),
                },
            )
            if not uploaded:
                logger.warning(f"Cache write for {key} was rejected by storage")
                return
            await self.project_work_repo.record_cached_pdf(
                project_work.id, key, len(data)
            )
        except Exception as e:
            logger.error(f"Failed to persist fetched PDF to {key}: {e}")

    async def _download_with_retry(self, url: str) -> bytes:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._download(url)
            except PdfFetchError as e:
                if not e.retryable or attempt >= self.max_attempts:
                    raise
                delay = self.backoff_seconds * 2 ** (attempt - 1)
                logger.info(
                    f"PDF fetch attempt {attempt}/{self.max_attempts} for {url} "
                    f"failed ({e}), retrying in {delay:.1f}s"
                )
                await self._sleep(delay)
        raise PdfFetchError(f"No attempts made for {url}")

    async def _download(self, url: str) -> bytes:
        if self._http_client is not None:
            return await self._download_with(self._http_client, url)
        async with httpx.AsyncClient() as client:
            return await self._download_with(client, url)

    async def _download_with(self, client: httpx.AsyncClient, url: str) -> bytes:
        headers = {
            "User-Agent": settings.pdf_fetch_user_agent,
            "Accept": "application/pdf",
        }
        try:
            async with client.stream(
                "GET",
                url,
                headers=headers,
                timeout=self.timeout_seconds,
                follow_redirects=True,
            ) as response:
                self._check_response(response)
                data = await self._read_capped(response)
        except (httpx.UnsupportedProtocol, httpx.InvalidURL) as e:
            raise PermanentPdfFetchError(f"Invalid URL {url}: {e}")
        except httpx.TimeoutException as e:
            raise PdfFetchError(f"Timed out fetching {url}: {e}")
        except httpx.TransportError as e:
            raise PdfFetchError(f"Transport error fetching {url}: {e}")

        if not looks_like_pdf(data):
            # Publishers frequently serve HTML landing pages
            raise NotAPdfError(f"Response from {url} is not a PDF (bad magic bytes)")

        logger.info(f"Downloaded PDF from {url} ({len(data)} bytes)")
        return data

    def _check_response(self, response: httpx.Response) -> None:
        status = response.status_code
        if status == 429 or status >= 500:
            raise PdfFetchError(f"HTTP {status}", status_code=status)
        if not response.is_success:
            raise PermanentPdfFetchError(f"HTTP {status}", status_code=status)

        content_type = response.headers.get("content-type")
        if content_type and "pdf" not in content_type.lower():
            raise NotAPdfError(f"Unexpected content type (expected pdf): {content_type}")

        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_size_bytes:
            raise PdfTooLargeError(
                f"Declared size {declared} exceeds {self.max_size_bytes} bytes"
            )

    async def _read_capped(self, response: httpx.Response) -> bytes:
        buffer = bytearray()
        async for piece in response.aiter_bytes():
            buffer.extend(piece)
            if len(buffer) > self.max_size_bytes:
                raise PdfTooLargeError(
                    f"Response exceeds {self.max_size_bytes} bytes"
                )
        return bytes(buffer)
