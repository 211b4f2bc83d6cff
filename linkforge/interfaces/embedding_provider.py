"""Abstract base class for text-embedding providers.

Vectors produced here are written to the graph store's document-level and
chunk-level vector indexes and used as hybrid-search query vectors, so
every provider must return the dimension those indexes were created with
(384 for all-MiniLM-L6-v2).
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   SentenceTransformerEmbeddingProvider -- all-MiniLM-L6-v2 (local)
# Located in: linkforge/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Raises
        ------
        EmbeddingError
            If the model fails or returns a vector of the wrong dimension.
        """

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts.  Output order matches input order."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of produced vectors."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier (e.g. ``"sentence-transformers"``)."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return whether the backing model can be loaded."""
