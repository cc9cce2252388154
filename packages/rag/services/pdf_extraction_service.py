import asyncio
import io
from typing import Any, Dict, Optional

from PyPDF2 import PdfReader

from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.rag.models.domain.pdf import ExtractedPdf

logger = get_logger(__name__)


class PdfExtractionService:
    """Plain-text extraction from PDF bytes using PyPDF2."""

    @trace_span
    async def extract(self, pdf_data: bytes) -> ExtractedPdf:
        """
        Extract text and metadata from a PDF.

        Unreadable or malformed input yields an empty ExtractedPdf rather than
        an error; the caller treats empty text as "nothing to ingest".
        """
        # PyPDF2 is CPU-bound and synchronous
        return await asyncio.to_thread(self._extract_sync, pdf_data)

    def _extract_sync(self, pdf_data: bytes) -> ExtractedPdf:
        try:
            reader = PdfReader(io.BytesIO(pdf_data))
            page_texts = [page.extract_text() or "" for page in reader.pages]
        except Exception as e:
            logger.warning(f"Could not parse PDF ({len(pdf_data)} bytes): {e}")
            return ExtractedPdf(text="")

        text = "\n".join(page_texts)
        metadata = self._read_metadata(reader)
        title = self._read_title(reader, metadata)

        logger.info(
            f"Extracted {len(text)} characters from PDF ({len(page_texts)} pages)"
        )
        return ExtractedPdf(
            text=text,
            page_count=len(page_texts),
            title=title,
            metadata=metadata,
        )

    def _read_metadata(self, reader: PdfReader) -> Dict[str, Any]:
        try:
            info = reader.metadata
        except Exception as e:
            logger.debug(f"PDF document info unreadable: {e}")
            return {}
        if not info:
            return {}
        # Keys come back as "/Title", "/Author", ...; values may be indirect objects
        return {str(key).lstrip("/").lower(): str(value) for key, value in info.items()}

    def _read_title(
        self, reader: PdfReader, metadata: Dict[str, Any]
    ) -> Optional[str]:
        """Document-info title first, then the XMP dc:title, else None."""
        title = (metadata.get("title") or "").strip()
        if title:
            return title

        try:
            xmp = reader.xmp_metadata
            dc_title = xmp.dc_title if xmp else None
        except Exception as e:
            logger.debug(f"PDF XMP metadata unreadable: {e}")
            return None

        if dc_title:
            for value in dc_title.values():
                if value and value.strip():
                    return value.strip()
        return None
