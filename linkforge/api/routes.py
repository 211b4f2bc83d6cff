"""REST API routes for LinkForge.

Thin HTTP layer over the ingestion queue and the retrieval service.  Both
are created once in ``main.py``'s lifespan and stored on ``app.state``;
routes resolve them through ``Depends`` using the ``Annotated`` pattern.

Endpoint                            Method  Description
--------------------------------------------------------------------
/api/v1/health                      GET     Health check + provider status
/api/v1/queue/stats                 GET     Job counts per state
/api/v1/queue/urls                  POST    Enqueue one or more links
/api/v1/queue/jobs/{job_id}         GET     Inspect one job
/api/v1/queue/jobs/{job_id}/retry   POST    Re-queue a dead-lettered job
/api/v1/queue/reclaim               POST    Return expired leases to the queue
/api/v1/search                      POST    Hybrid vector + keyword link search
/api/v1/search/passages             POST    Chunk search grouped by link
/api/v1/ask                         POST    Answer a question from saved links

``LinkForgeError`` subclasses raised by the services are turned into JSON
errors by :class:`~linkforge.api.middleware.ErrorHandlingMiddleware`.
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from linkforge.api.schemas import (
    AskRequest,
    AskResponse,
    EnqueuedURL,
    EnqueueURLsRequest,
    EnqueueURLsResponse,
    ErrorResponse,
    HealthResponse,
    JobResponse,
    LinkPassagesItem,
    PassageSearchRequest,
    PassageSearchResponse,
    QueueStatsResponse,
    ReclaimResponse,
    RejectedURL,
    SearchRequest,
    SearchResponse,
    SearchResultItem,
)
from linkforge.interfaces.graph_store import IGraphStore
from linkforge.models.queue import QueuePayload
from linkforge.services.ingestion_queue import IngestionQueue
from linkforge.services.qa_service import QAService
from linkforge.services.retrieval_service import RetrievalService
from linkforge.utils.errors import (
    ConfigurationError,
    GraphStoreError,
    QueueError,
    UnsafeURLError,
)
from linkforge.utils.logging import get_logger
from linkforge.utils.url_tools import validate_url_for_ssrf

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_queue(request: Request) -> IngestionQueue:
    return request.app.state.ingestion_queue


def _get_retrieval(request: Request) -> RetrievalService:
    return request.app.state.retrieval_service


def _get_graph_store(request: Request) -> IGraphStore | None:
    return getattr(request.app.state, "graph_store", None)


def _get_qa_service(request: Request) -> QAService:
    qa_service = getattr(request.app.state, "qa_service", None)
    if qa_service is None:
        raise ConfigurationError("Question answering is disabled; set QA_ENABLED=true")
    return qa_service


QueueDep = Annotated[IngestionQueue, Depends(_get_queue)]
RetrievalDep = Annotated[RetrievalService, Depends(_get_retrieval)]
GraphStoreDep = Annotated[Any, Depends(_get_graph_store)]
QAServiceDep = Annotated[QAService, Depends(_get_qa_service)]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Application health check")
async def health_check(
    request: Request,
    queue: QueueDep,
    graph_store: GraphStoreDep,
) -> HealthResponse:
    """Report whether the queue database and the graph are reachable."""
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    try:
        providers["queue_jobs"] = (await queue.stats()).total
        providers["queue"] = True
    except QueueError as exc:
        _logger.warning("health_queue_unavailable", error=str(exc))
        providers["queue"] = False

    if graph_store is not None:
        try:
            providers["graph_links"] = await graph_store.count_links()
            providers["graph"] = True
        except GraphStoreError as exc:
            _logger.warning("health_graph_unavailable", error=str(exc))
            providers["graph"] = False
    else:
        providers["graph"] = False

    if providers["queue"] and providers["graph"]:
        status = "healthy"
    elif providers["queue"]:
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(status=status, version=_VERSION, providers=providers)


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------


@router.get("/queue/stats", response_model=QueueStatsResponse, summary="Job counts per state")
async def queue_stats(queue: QueueDep) -> QueueStatsResponse:
    return QueueStatsResponse.from_stats(await queue.stats())


@router.post(
    "/queue/urls",
    response_model=EnqueueURLsResponse,
    summary="Enqueue links for ingestion",
)
async def enqueue_urls(body: EnqueueURLsRequest, queue: QueueDep) -> EnqueueURLsResponse:
    """Enqueue each URL.  Malformed or blocked URLs are reported, not raised.

    Only the scheme and host are checked here; DNS-based SSRF checks run
    again at fetch time in the worker.
    """
    response = EnqueueURLsResponse()
    for url in body.urls:
        try:
            await validate_url_for_ssrf(url, resolve=False)
            payload = QueuePayload.for_url(
                url,
                parent_url=body.parent_url,
                comment=body.comment,
                submitted_by=body.submitted_by,
            )
        except (UnsafeURLError, ValueError) as exc:
            reason = exc.message if isinstance(exc, UnsafeURLError) else str(exc)
            response.rejected.append(RejectedURL(url=url, reason=reason))
            continue
        job_id = await queue.enqueue(payload)
        response.jobs.append(EnqueuedURL(url=payload.ref, job_id=job_id))

    _logger.info(
        "urls_enqueued_via_api",
        accepted=len(response.jobs),
        rejected=len(response.rejected),
    )
    return response


@router.get(
    "/queue/jobs/{job_id}",
    response_model=JobResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Inspect a queue job",
)
async def get_job(job_id: int, queue: QueueDep) -> JobResponse:
    return JobResponse.from_job(await queue.get_job(job_id))


@router.post(
    "/queue/jobs/{job_id}/retry",
    response_model=JobResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Re-queue a dead-lettered job",
)
async def retry_job(job_id: int, queue: QueueDep) -> JobResponse:
    """Give a dead-lettered job a fresh set of attempts.

    Returns 409 when the job is not dead-lettered or another active job
    already covers the same payload.
    """
    try:
        job = await queue.retry_dead_letter(job_id)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return JobResponse.from_job(job)


@router.post("/queue/reclaim", response_model=ReclaimResponse, summary="Reclaim expired leases")
async def reclaim_stale(queue: QueueDep) -> ReclaimResponse:
    return ReclaimResponse(reclaimed=await queue.reclaim_stale())


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


@router.post(
    "/search",
    response_model=SearchResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Hybrid link search",
)
async def search_links(body: SearchRequest, retrieval: RetrievalDep) -> SearchResponse:
    """Search saved links by meaning and keywords, boosted by forge score."""
    results = await retrieval.search(body.query, body.limit)
    items = [SearchResultItem.from_result(result) for result in results]
    return SearchResponse(query=body.query, total=len(items), results=items)


@router.post(
    "/search/passages",
    response_model=PassageSearchResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Passage search grouped by link",
)
async def search_passages(
    body: PassageSearchRequest,
    retrieval: RetrievalDep,
) -> PassageSearchResponse:
    groups = await retrieval.search_passages(body.query, body.limit, per_link=body.per_link)
    return PassageSearchResponse(
        query=body.query,
        links=[LinkPassagesItem.from_group(group) for group in groups],
    )


# ---------------------------------------------------------------------------
# Question answering
# ---------------------------------------------------------------------------


@router.post(
    "/ask",
    response_model=AskResponse,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    summary="Answer a question from saved links",
)
async def ask_question(body: AskRequest, qa_service: QAServiceDep) -> AskResponse:
    """Retrieve the most relevant links and passages and have the LLM answer from them.

    Returns 503 when question answering is not enabled.
    """
    answer = await qa_service.ask(body.question, max_sources=body.max_sources)
    return AskResponse.from_answer(answer)
