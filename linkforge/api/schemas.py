"""Pydantic request/response schemas for the LinkForge API.

Request schemas end with ``Request``, response schemas with ``Response``.
Domain models are converted into these at the route boundary so the
public contract does not change when internal models do.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from linkforge.models.graph import LinkPassages, SearchResult
from linkforge.models.qa import QAAnswer
from linkforge.models.queue import QueueJob, QueueStats


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------


class QueueStatsResponse(BaseModel):
    """Number of jobs in each state."""

    queued: int
    processing: int
    completed: int
    failed: int
    dead_letter: int
    total: int

    @classmethod
    def from_stats(cls, stats: QueueStats) -> QueueStatsResponse:
        return cls(**stats.as_dict(), total=stats.total)


class EnqueueURLsRequest(BaseModel):
    """One or more links to ingest."""

    urls: list[str] = Field(..., min_length=1, max_length=100)
    parent_url: str | None = None
    comment: str | None = Field(default=None, max_length=2000)
    submitted_by: str | None = Field(default=None, max_length=200)


class EnqueuedURL(BaseModel):
    url: str
    job_id: int


class RejectedURL(BaseModel):
    url: str
    reason: str


class EnqueueURLsResponse(BaseModel):
    """Job ids for accepted links.  Links that are already queued return the existing id."""

    jobs: list[EnqueuedURL] = Field(default_factory=list)
    rejected: list[RejectedURL] = Field(default_factory=list)


class JobResponse(BaseModel):
    """A queue job as seen by operators."""

    id: int
    kind: str
    key: str
    ref: str
    file_name: str | None = None
    parent_url: str | None = None
    state: str
    attempts: int
    max_attempts: int
    lease_owner: str | None = None
    lease_expires_at: datetime | None = None
    last_error: str = ""
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_job(cls, job: QueueJob) -> JobResponse:
        return cls(
            id=job.id,
            kind=job.payload_kind.value,
            key=job.payload_key,
            ref=job.payload_ref,
            file_name=job.file_name,
            parent_url=job.parent_url,
            state=job.state.value,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            lease_owner=job.lease_owner,
            lease_expires_at=job.lease_expires_at,
            last_error=job.last_error,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class ReclaimResponse(BaseModel):
    reclaimed: int


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class SearchRequest(BaseModel):
    """A hybrid link search."""

    query: str = Field(..., min_length=1, max_length=500)
    limit: int | None = Field(default=None, ge=1, le=100)


class SearchResultItem(BaseModel):
    url: str
    title: str
    description: str
    domain: str
    score: float
    match_type: str
    category: str | None = None
    tags: list[str] | None = None
    forge_score: float | None = None
    content_type: str | None = None
    saved_at: datetime | None = None

    @classmethod
    def from_result(cls, result: SearchResult) -> SearchResultItem:
        link = result.link
        return cls(
            url=link.url,
            title=link.title,
            description=link.description,
            domain=link.domain,
            score=round(result.score, 6),
            match_type=result.match_type.value,
            category=result.category_name,
            tags=result.tags,
            forge_score=link.forge_score,
            content_type=link.content_type,
            saved_at=link.saved_at,
        )


class SearchResponse(BaseModel):
    query: str
    total: int
    results: list[SearchResultItem]


class PassageSearchRequest(BaseModel):
    """A chunk-level search, grouped by link."""

    query: str = Field(..., min_length=1, max_length=500)
    limit: int | None = Field(default=None, ge=1, le=100, description="Links to return.")
    per_link: int = Field(default=3, ge=1, le=10)


class PassageItem(BaseModel):
    text: str
    index: int
    score: float


class LinkPassagesItem(BaseModel):
    url: str
    title: str
    forge_score: float
    content_type: str
    best_score: float
    passages: list[PassageItem]

    @classmethod
    def from_group(cls, group: LinkPassages) -> LinkPassagesItem:
        return cls(
            url=group.url,
            title=group.title,
            forge_score=group.forge_score,
            content_type=group.content_type,
            best_score=round(group.best_score, 6),
            passages=[
                PassageItem(text=hit.chunk_text, index=hit.chunk_index, score=round(hit.score, 6))
                for hit in group.passages
            ],
        )


class PassageSearchResponse(BaseModel):
    query: str
    links: list[LinkPassagesItem]


class AskRequest(BaseModel):
    """A question answered from the saved links."""

    question: str = Field(..., min_length=1, max_length=2000)
    max_sources: int | None = Field(default=None, ge=1, le=50)


class AskSourceItem(BaseModel):
    url: str
    title: str
    forge_score: float
    relevance: float
    content_type: str
    category: str | None = None


class AskResponse(BaseModel):
    question: str
    answer: str
    sources: list[AskSourceItem]
    links_considered: int
    passages_used: int

    @classmethod
    def from_answer(cls, answer: QAAnswer) -> AskResponse:
        return cls(
            question=answer.question,
            answer=answer.answer,
            sources=[
                AskSourceItem(
                    url=source.url,
                    title=source.title,
                    forge_score=source.forge_score,
                    relevance=round(source.relevance, 6),
                    content_type=source.content_type,
                    category=source.category,
                )
                for source in answer.sources
            ],
            links_considered=answer.links_considered,
            passages_used=answer.passages_used,
        )
