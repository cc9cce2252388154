"""Fetch and extraction outcomes for PDFs."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, Optional, Union


class PdfOrigin(StrEnum):
    CACHE = "cache"
    URL = "url"


@dataclass(frozen=True)
class PdfFetched:
    data: bytes
    origin: PdfOrigin
    storage_key: Optional[str] = None

    @property
    def file_size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class NoPdf:
    """No PDF could be resolved. An expected outcome, not an error."""

    reason: str


FetchOutcome = Union[PdfFetched, NoPdf]


@dataclass
class ExtractedPdf:
    text: str
    page_count: int = 0
    title: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()
