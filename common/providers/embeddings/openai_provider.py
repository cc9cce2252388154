"""OpenAI embedding provider implementation."""

from typing import List, Optional
from openai import AsyncOpenAI

from common.providers.embeddings.interface import (
    EmbeddingProviderInterface,
    normalize_embedding_input,
)
from common.core.config import settings
from common.core.exceptions import EmptyEmbeddingInputError, EmbeddingCountMismatchError
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.api_keys.rotation_provider import APIKeyRotationProvider
from common.providers.api_keys.provider_enum import APIProviderType

logger = get_logger(__name__)

# Models accepting the `dimensions` request parameter
_SHORTENABLE_MODELS = ("text-embedding-3-small", "text-embedding-3-large")


class OpenAIEmbeddingProvider(EmbeddingProviderInterface):
    """
    OpenAI embedding provider with key rotation.

    Does not retry: rate-limit and transport errors surface unchanged
    (e.g. `openai.RateLimitError`, status_code 429) so the caller can apply
    its own backoff policy.
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        dimensions: Optional[int] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize OpenAI embedding provider.

        Args:
            model_name: Model to use (default: settings.embedding_model)
            dimensions: Output dimension (default: settings.embedding_dimensions)
            client: Pre-built client; disables key rotation when given
        """
        self.model_name = model_name or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self._client = client
        self.rotator = (
            None
            if client is not None
            else APIKeyRotationProvider(
                keys=settings.openai_api_keys, provider_type=APIProviderType.OPENAI
            )
        )

    def _request_kwargs(self) -> dict:
        kwargs = {"model": self.model_name}
        if self.model_name in _SHORTENABLE_MODELS:
            kwargs["dimensions"] = self.dimensions
        return kwargs

    async def _create(self, inputs: List[str]):
        if self._client is not None:
            return await self._client.embeddings.create(
                input=inputs, **self._request_kwargs()
            )

        api_key = self.rotator.get_next_key()
        try:
            client = AsyncOpenAI(api_key=api_key)
            response = await client.embeddings.create(
                input=inputs, **self._request_kwargs()
            )
            self.rotator.report_success(api_key)
            return response
        except Exception:
            self.rotator.report_failure(api_key)
            raise

    @trace_span
    async def generate_embedding(self, text: str) -> List[float]:
        """Generate embedding for single text."""
        embeddings = await self.generate_embeddings([text])
        return embeddings[0]

    @trace_span
    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for multiple texts, preserving input order."""
        if not texts:
            return []

        inputs = [normalize_embedding_input(text) for text in texts]
        for position, value in enumerate(inputs):
            if not value:
                raise EmptyEmbeddingInputError(
                    f"Cannot embed empty text (input position {position})"
                )

        response = await self._create(inputs)

        # The API tags each vector with its input index; never trust list order
        items = sorted(response.data, key=lambda item: item.index)
        if [item.index for item in items] != list(range(len(inputs))):
            raise EmbeddingCountMismatchError(
                f"Requested {len(inputs)} embeddings, received indices "
                f"{[item.index for item in items]}"
            )

        logger.debug(f"Generated {len(items)} embeddings with {self.model_name}")
        return [item.embedding for item in items]

    def get_embedding_dimension(self) -> int:
        """Get embedding dimension for current model."""
        return self.dimensions

    def get_model_name(self) -> str:
        """Get the model name."""
        return self.model_name
