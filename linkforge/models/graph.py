"""Graph store models: links, chunks, raw hits and ranked search results.

The graph store converts database records into these models at its
boundary.  The retrieval service never touches raw driver records, so a
missing or mistyped property fails at mapping time instead of deep inside
the ranking code.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

EMBEDDING_DIMENSION = 384
LINK_EMBEDDING_INDEX = "link_embedding_idx"
CHUNK_EMBEDDING_INDEX = "chunk_embedding_idx"
DEFAULT_CONTENT_TYPE = "reference"


class MatchType(str, Enum):  # noqa: UP042
    """Which sub-query produced a search result."""

    VECTOR = "vector"
    KEYWORD = "keyword"


# ---------------------------------------------------------------------------
# Stored nodes
# ---------------------------------------------------------------------------
class LinkNode(BaseModel):
    """A saved link as stored in the graph."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(description="Canonical URL; the node's identity.")
    title: str = ""
    description: str = ""
    content: str = Field(default="", description="Extracted text, truncated for storage.")
    embedding: list[float] = Field(
        default_factory=list, description="Document-level embedding (empty when not loaded)."
    )
    domain: str = ""
    saved_at: datetime | None = None
    forge_score: float | None = Field(
        default=None, ge=0.0, le=1.0, description="Learned usefulness signal."
    )
    content_type: str | None = None
    purpose: str | None = None
    quality: str | None = None
    key_concepts: list[str] = Field(default_factory=list)


class ChunkNode(BaseModel):
    """A passage of a link's content with its own embedding."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="``<link url>#chunk-<index>``.")
    link_url: str
    index: int = Field(ge=0)
    text: str
    embedding: list[float] = Field(default_factory=list)

    @staticmethod
    def make_id(link_url: str, index: int) -> str:
        return f"{link_url}#chunk-{index}"


# ---------------------------------------------------------------------------
# Raw sub-query hits (graph store → retrieval service)
# ---------------------------------------------------------------------------
class VectorHit(BaseModel):
    """A link returned by an ANN query; higher score means more similar."""

    model_config = ConfigDict(frozen=True)

    link: LinkNode
    score: float


class KeywordHit(BaseModel):
    """A link whose title or description matched the query text."""

    model_config = ConfigDict(frozen=True)

    link: LinkNode
    category_name: str | None = None
    tags: list[str] = Field(default_factory=list)


class ChunkHit(BaseModel):
    """A chunk returned by the chunk-level vector index, joined to its link."""

    model_config = ConfigDict(frozen=True)

    chunk_text: str
    chunk_index: int
    score: float
    link_url: str
    link_title: str = ""
    forge_score: float = 0.0
    content_type: str = DEFAULT_CONTENT_TYPE


# ---------------------------------------------------------------------------
# Results handed to callers
# ---------------------------------------------------------------------------
class SearchResult(BaseModel):
    """A ranked hybrid-search result.  Never persisted."""

    model_config = ConfigDict(frozen=True)

    link: LinkNode
    score: float
    match_type: MatchType
    category_name: str | None = None
    tags: list[str] | None = None


class LinkPassages(BaseModel):
    """The best-matching passages of one link, for passage-level display."""

    model_config = ConfigDict(frozen=True)

    url: str
    title: str = ""
    forge_score: float = 0.0
    content_type: str = DEFAULT_CONTENT_TYPE
    best_score: float
    passages: list[ChunkHit] = Field(default_factory=list)


class LinkContext(BaseModel):
    """Descriptive properties and neighbours of one link, for answer prompts."""

    model_config = ConfigDict(frozen=True)

    url: str
    title: str = ""
    description: str = ""
    purpose: str | None = None
    forge_score: float | None = None
    content_type: str | None = None
    categories: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    shared_by: list[str] = Field(default_factory=list)
