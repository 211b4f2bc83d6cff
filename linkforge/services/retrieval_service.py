"""Hybrid retrieval and ranking over the link graph.

A hybrid search runs two independent reads against the graph store at the
same time:

* a **vector** query over the document-level embedding index, returning
  up to ``limit`` links with a similarity score (higher is closer);
* a **keyword** query matching the text against link titles and
  descriptions, returning up to ``limit`` links, each scored ``1.0``, with
  the link's category and tags.

Both must succeed; a failure of either fails the whole search with
:class:`~linkforge.utils.errors.RetrievalError`.  Results are merged by
URL (vector hits first, then keyword-only hits), blended with each link's
forge score, and sorted::

    merged = (vector_score + 1.0) / 2   if the URL came back from both
           = the single source score    otherwise
    final  = merged * 0.7 + forge_score * 0.3     (forge_score defaults to 0)

Sorting is stable, so equal final scores keep merge order.

The chunk path (:meth:`RetrievalService.chunk_search`) is vector-only and
returns passages instead of links; it does no blending.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Sequence
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ConfigDict, Field

from linkforge.models.graph import (
    EMBEDDING_DIMENSION,
    LINK_EMBEDDING_INDEX,
    ChunkHit,
    KeywordHit,
    LinkPassages,
    MatchType,
    SearchResult,
    VectorHit,
)
from linkforge.utils.errors import InvalidQueryError, LinkForgeError, RetrievalError

if TYPE_CHECKING:
    from linkforge.interfaces.embedding_provider import IEmbeddingProvider
    from linkforge.interfaces.graph_store import IGraphStore

logger = structlog.get_logger(logger_name=__name__)

KEYWORD_MATCH_SCORE = 1.0


class RankingWeights(BaseModel):
    """Blend of retrieval relevance and the learned forge score."""

    model_config = ConfigDict(frozen=True)

    relevance: float = Field(default=0.7, ge=0.0)
    forge: float = Field(default=0.3, ge=0.0)


# ---------------------------------------------------------------------------
# Pure merge / rank helpers
# ---------------------------------------------------------------------------

def merge_hits(
    vector_hits: Sequence[VectorHit], keyword_hits: Sequence[KeywordHit]
) -> list[SearchResult]:
    """Deduplicate both hit lists by URL, preserving first-seen order.

    A URL found by both queries keeps its vector entry, with the score set
    to the mean of the two scores.  Category and tags from the keyword hit
    fill only what the vector entry lacks.
    """
    merged: dict[str, SearchResult] = {}

    for hit in vector_hits:
        if hit.link.url in merged:
            continue
        merged[hit.link.url] = SearchResult(
            link=hit.link, score=hit.score, match_type=MatchType.VECTOR
        )

    keyword_seen: set[str] = set()
    for hit in keyword_hits:
        url = hit.link.url
        if url in keyword_seen:
            continue
        keyword_seen.add(url)

        existing = merged.get(url)
        if existing is None:
            merged[url] = SearchResult(
                link=hit.link,
                score=KEYWORD_MATCH_SCORE,
                match_type=MatchType.KEYWORD,
                category_name=hit.category_name,
                tags=list(hit.tags),
            )
            continue

        merged[url] = existing.model_copy(
            update={
                "score": (existing.score + KEYWORD_MATCH_SCORE) / 2,
                "category_name": existing.category_name or hit.category_name,
                "tags": existing.tags if existing.tags else list(hit.tags),
            }
        )

    return list(merged.values())


def rank_results(
    merged: Sequence[SearchResult], limit: int, weights: RankingWeights | None = None
) -> list[SearchResult]:
    """Blend merged scores with forge scores, sort descending and truncate."""
    weights = weights or RankingWeights()
    blended = [
        result.model_copy(
            update={
                "score": result.score * weights.relevance
                + (result.link.forge_score or 0.0) * weights.forge
            }
        )
        for result in merged
    ]
    # sorted() is stable with reverse=True: ties keep merge order.
    blended = sorted(blended, key=lambda r: r.score, reverse=True)
    return blended[:limit]


def group_passages(hits: Sequence[ChunkHit], per_link: int = 3) -> list[LinkPassages]:
    """Group chunk hits by parent link, keeping the best *per_link* passages each.

    Groups are ordered by their best passage score.
    """
    groups: dict[str, list[ChunkHit]] = {}
    for hit in sorted(hits, key=lambda h: h.score, reverse=True):
        bucket = groups.setdefault(hit.link_url, [])
        if len(bucket) < per_link:
            bucket.append(hit)

    grouped = [
        LinkPassages(
            url=url,
            title=passages[0].link_title,
            forge_score=passages[0].forge_score,
            content_type=passages[0].content_type,
            best_score=passages[0].score,
            passages=passages,
        )
        for url, passages in groups.items()
    ]
    return sorted(grouped, key=lambda g: g.best_score, reverse=True)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class RetrievalService:
    """Answers link and passage searches against the graph store.

    Parameters
    ----------
    graph_store:
        Read side of the graph.
    embedding_provider:
        Needed only by :meth:`search` and :meth:`search_passages`, which
        embed the query text themselves.
    weights:
        Relevance / forge-score blend.
    dimension:
        Expected query-vector length.
    """

    def __init__(
        self,
        graph_store: IGraphStore,
        embedding_provider: IEmbeddingProvider | None = None,
        weights: RankingWeights | None = None,
        dimension: int = EMBEDDING_DIMENSION,
        default_limit: int = 10,
        chunk_search_limit: int = 40,
    ) -> None:
        self._graph = graph_store
        self._embedder = embedding_provider
        self._weights = weights or RankingWeights()
        self._dimension = dimension
        self._default_limit = default_limit
        self._chunk_search_limit = chunk_search_limit

    # -- Validation -----------------------------------------------------------

    def _validate_limit(self, limit: int) -> None:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise InvalidQueryError(f"limit must be a positive integer, got {limit!r}")

    def _resolve_limit(self, limit: int | None) -> int:
        resolved = self._default_limit if limit is None else limit
        self._validate_limit(resolved)
        return resolved

    def _validate_embedding(self, embedding: Sequence[float]) -> None:
        if not embedding:
            raise InvalidQueryError("query embedding is empty")
        if len(embedding) != self._dimension:
            raise InvalidQueryError(
                f"query embedding has dimension {len(embedding)}, expected {self._dimension}"
            )
        if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in embedding):
            raise InvalidQueryError("query embedding contains non-finite or non-numeric values")

    # -- Link search ------------------------------------------------------------

    async def hybrid_search(
        self, query_text: str, query_embedding: Sequence[float], limit: int
    ) -> list[SearchResult]:
        """Run vector and keyword search concurrently and return ranked links.

        Raises
        ------
        InvalidQueryError
            For a blank query, a malformed embedding, or a non-positive
            limit.  Raised before any store query.
        RetrievalError
            If either sub-query fails.  No partial results are returned.
        """
        if not isinstance(query_text, str) or not query_text.strip():
            raise InvalidQueryError("query text is empty")
        self._validate_embedding(query_embedding)
        self._validate_limit(limit)
        text = query_text.strip()

        vector_task = asyncio.ensure_future(
            self._graph.vector_search(list(query_embedding), limit, LINK_EMBEDDING_INDEX)
        )
        keyword_task = asyncio.ensure_future(self._graph.keyword_search(text, limit))
        try:
            vector_hits, keyword_hits = await asyncio.gather(vector_task, keyword_task)
        except Exception as exc:
            for task in (vector_task, keyword_task):
                task.cancel()
            logger.error("hybrid_search_failed", query=text, error=str(exc))
            raise RetrievalError(
                message=f"Hybrid search failed: {exc}",
                provider_name=exc.provider_name if isinstance(exc, LinkForgeError) else None,
            ) from exc

        merged = merge_hits(vector_hits, keyword_hits)
        results = rank_results(merged, limit, self._weights)
        logger.info(
            "hybrid_search_complete",
            query=text,
            vector_hits=len(vector_hits),
            keyword_hits=len(keyword_hits),
            merged=len(merged),
            returned=len(results),
        )
        return results

    async def search(self, query_text: str, limit: int | None = None) -> list[SearchResult]:
        """Embed *query_text* and run :meth:`hybrid_search`.

        ``limit=None`` means the configured default; any other value must be
        a positive integer and is checked before the query is embedded.
        """
        link_limit = self._resolve_limit(limit)
        embedding = await self.embed_query(query_text)
        return await self.hybrid_search(query_text, embedding, link_limit)

    async def embed_query(self, query_text: str) -> list[float]:
        """Embed stripped *query_text*, refusing blank input before the model runs."""
        if not isinstance(query_text, str) or not query_text.strip():
            raise InvalidQueryError("query text is empty")
        return await self._require_embedder().embed(query_text.strip())

    # -- Passage search -----------------------------------------------------------

    async def chunk_search(
        self, query_embedding: Sequence[float], limit: int
    ) -> list[ChunkHit]:
        """Return the chunks closest to *query_embedding*, most similar first."""
        self._validate_embedding(query_embedding)
        self._validate_limit(limit)
        try:
            hits = await self._graph.chunk_vector_search(list(query_embedding), limit)
        except Exception as exc:
            logger.error("chunk_search_failed", error=str(exc))
            raise RetrievalError(
                message=f"Chunk search failed: {exc}",
                provider_name=exc.provider_name if isinstance(exc, LinkForgeError) else None,
            ) from exc
        return sorted(hits, key=lambda h: h.score, reverse=True)[:limit]

    async def search_passages(
        self, query_text: str, limit: int | None = None, per_link: int = 3
    ) -> list[LinkPassages]:
        """Embed *query_text*, search chunks and group the best passages per link."""
        if not isinstance(query_text, str) or not query_text.strip():
            raise InvalidQueryError("query text is empty")
        link_limit = self._resolve_limit(limit)
        embedding = await self.embed_query(query_text)
        hits = await self.chunk_search(embedding, self._chunk_search_limit)
        grouped = group_passages(hits, per_link=per_link)[:link_limit]
        logger.info(
            "passage_search_complete",
            query=query_text.strip(),
            chunk_hits=len(hits),
            links=len(grouped),
        )
        return grouped

    def _require_embedder(self) -> IEmbeddingProvider:
        if self._embedder is None:
            raise RetrievalError("No embedding provider configured for text queries")
        return self._embedder
