"""Abstract base class for the graph store.

The read side (``vector_search``, ``keyword_search``,
``chunk_vector_search``, ``link_context``) backs retrieval and question
answering.  The write side is used only by
the ingestion worker.  Implementations map database records to the models
in :mod:`linkforge.models.graph` before returning.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from linkforge.models.graph import (
    ChunkHit,
    ChunkNode,
    KeywordHit,
    LinkContext,
    LinkNode,
    VectorHit,
)


# Concrete implementations:
#   Neo4jGraphStore -- Neo4j 5 with native vector indexes
# Located in: linkforge/providers/graph/
class IGraphStore(ABC):
    """Contract for link/chunk/category/tag persistence and lookup."""

    # -- Read side ---------------------------------------------------------

    @abstractmethod
    async def vector_search(
        self, embedding: list[float], limit: int, index_name: str
    ) -> list[VectorHit]:
        """Approximate nearest-neighbour query over a link embedding index.

        Parameters
        ----------
        embedding:
            Query vector.
        limit:
            Maximum number of hits.
        index_name:
            Name of the vector index (``link_embedding_idx``).

        Returns
        -------
        list[VectorHit]
            Hits ordered by descending similarity.

        Raises
        ------
        GraphStoreError
            If the query fails.
        """

    @abstractmethod
    async def keyword_search(self, query: str, limit: int) -> list[KeywordHit]:
        """Substring match over link titles and descriptions.

        Each hit carries the link's category name (if any) and tag names.
        """

    @abstractmethod
    async def chunk_vector_search(self, embedding: list[float], limit: int) -> list[ChunkHit]:
        """Nearest-neighbour query over chunk embeddings, joined to parent links.

        Returns hits ordered by descending similarity.
        """

    @abstractmethod
    async def link_context(self, urls: list[str]) -> dict[str, LinkContext]:
        """Return description, category, tags and sharers for each stored URL.

        URLs with no link node are absent from the result.
        """

    @abstractmethod
    async def link_exists(self, url: str) -> bool:
        """Return whether a link node with *url* exists."""

    @abstractmethod
    async def count_links(self) -> int:
        """Return the number of stored links."""

    # -- Write side ----------------------------------------------------------

    @abstractmethod
    async def ensure_schema(self, dimension: int) -> None:
        """Create constraints, text indexes and vector indexes if missing."""

    @abstractmethod
    async def upsert_link(self, link: LinkNode) -> None:
        """Create or update a link node keyed by URL."""

    @abstractmethod
    async def upsert_chunks(self, link_url: str, chunks: list[ChunkNode]) -> None:
        """Create or update chunk nodes and attach them to their link."""

    @abstractmethod
    async def categorize_link(self, url: str, category: str) -> None:
        """Attach the link to a category, replacing any previous category."""

    @abstractmethod
    async def tag_link(self, url: str, tags: list[str]) -> None:
        """Attach tags to the link."""

    @abstractmethod
    async def link_to(self, from_url: str, to_url: str) -> None:
        """Record that *from_url* links to *to_url*."""

    @abstractmethod
    async def link_shared_by(self, url: str, user: str) -> None:
        """Record who shared the link."""

    @abstractmethod
    async def close(self) -> None:
        """Release driver resources."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier (e.g. ``"neo4j"``)."""
