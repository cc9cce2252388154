"""
Boundary-aware text chunking for embedding.

Windows of `chunk_size` characters move forward through the text; each window
prefers to end on a newline, then on a space, and only cuts mid-word as a last
resort. Consecutive windows share up to `overlap` characters.
"""

from typing import List, Optional

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.rag.models.domain.chunking import (
    ChunkingConfig,
    ChunkingStrategy,
    TextChunk,
)

logger = get_logger(__name__)


def default_chunking_config() -> ChunkingConfig:
    return ChunkingConfig(
        chunk_size=settings.rag_chunk_size,
        overlap=settings.rag_chunk_overlap,
        strategy=ChunkingStrategy(settings.rag_chunking_strategy),
    )


def estimate_page_number(
    char_start: int, total_chars: int, page_count: Optional[int]
) -> Optional[int]:
    """
    Approximate the 1-based page a character offset falls on, assuming text is
    spread evenly across pages. Non-decreasing in char_start; never exact.
    """
    if not page_count or page_count <= 0 or total_chars <= 0:
        return None
    chars_per_page = total_chars / page_count
    return min(int(char_start // chars_per_page) + 1, page_count)


class TextChunkingService:
    """Splits extracted document text into overlapping chunks."""

    @trace_span
    def chunk(
        self, text: str, config: Optional[ChunkingConfig] = None
    ) -> List[TextChunk]:
        """
        Chunk text using the configured strategy.

        Args:
            text: Full extracted document text
            config: Chunk size, overlap and strategy (settings defaults if None)

        Returns:
            Non-empty chunks with contiguous indices starting at 0. Each
            chunk's content is text[char_start:char_end] with surrounding
            whitespace excluded.
        """
        config = config or default_chunking_config()
        if not text:
            return []

        chunks: List[TextChunk] = []
        text_length = len(text)
        start = 0

        while start < text_length:
            edge = min(start + config.chunk_size, text_length)
            split = edge
            if edge < text_length and config.strategy == ChunkingStrategy.RECURSIVE:
                split = self._find_split(text, start, edge, config.overlap)

            chunk = self._make_chunk(text, start, split, len(chunks))
            if chunk is not None:
                chunks.append(chunk)

            if split >= text_length:
                break
            # Always move forward, even when overlap >= the chunk just produced
            start = max(split - config.overlap, start + 1)

        logger.info(
            f"{config.strategy.value} chunking produced {len(chunks)} chunks "
            f"from {text_length} characters"
        )
        return chunks

    @staticmethod
    def _find_split(text: str, start: int, edge: int, overlap: int) -> int:
        """Last newline, else last space, strictly past start + overlap; else the edge."""
        floor = start + overlap + 1
        for separator in ("\n", " "):
            position = text.rfind(separator, floor, edge + 1)
            if position != -1:
                return position
        return edge

    @staticmethod
    def _make_chunk(
        text: str, start: int, end: int, index: int
    ) -> Optional[TextChunk]:
        window = text[start:end]
        content = window.strip()
        if not content:
            return None
        leading = len(window) - len(window.lstrip())
        char_start = start + leading
        return TextChunk(
            index=index,
            content=content,
            char_start=char_start,
            char_end=char_start + len(content),
        )
