"""Interface for embedding providers."""

from abc import ABC, abstractmethod
from typing import List


class EmbeddingProviderInterface(ABC):
    """Turns text into fixed-dimension dense vectors."""

    @abstractmethod
    async def generate_embedding(self, text: str) -> List[float]:
        """
        Generate an embedding for a single text.

        Raises:
            EmptyEmbeddingInputError: If the text is empty after normalisation.
        """
        pass

    @abstractmethod
    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for many texts.

        Returns:
            One vector per input, result[i] belonging to texts[i].

        Raises:
            EmptyEmbeddingInputError: If any text is empty after normalisation.
            EmbeddingCountMismatchError: If the provider answered with a
                different number of vectors.
        """
        pass

    @abstractmethod
    def get_embedding_dimension(self) -> int:
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        pass


def normalize_embedding_input(text: str) -> str:
    """Collapse embedded newlines to spaces and trim."""
    return text.replace("\n", " ").strip()
