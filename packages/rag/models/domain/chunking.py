"""Chunking configuration and chunker output."""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field


class ChunkingStrategy(str, Enum):
    FIXED_SIZE = "fixed_size"
    """Cut exactly every chunk_size characters (minus overlap)."""

    RECURSIVE = "recursive"
    """Prefer ending at a newline, then a space, then the window edge."""


class ChunkingConfig(BaseModel):
    chunk_size: int = Field(default=1000, gt=0)
    overlap: int = Field(default=200, ge=0)
    strategy: ChunkingStrategy = ChunkingStrategy.RECURSIVE


@dataclass(frozen=True)
class TextChunk:
    """A slice of the source text; content == text[char_start:char_end]."""

    index: int
    content: str
    char_start: int
    char_end: int
