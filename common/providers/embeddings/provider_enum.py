"""Embedding provider types."""

from enum import StrEnum


class EmbeddingProviderType(StrEnum):
    """Supported embedding provider types."""

    OPENAI = "openai"
