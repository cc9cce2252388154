from .interface import VectorStoreInterface
from .pgvector_store import PgVectorStore


def get_vector_store() -> VectorStoreInterface:
    """Get the vector store backing chunk retrieval."""
    return PgVectorStore()
