"""Ingestion worker: claims queue jobs and writes them into the graph.

One :class:`IngestionWorker` processes one job at a time::

    claim ─▶ extract + chunk ─▶ categorise (optional) ─▶ embed
          ─▶ upsert Link, Category, Tags, Chunks, LINKS_TO, SHARED_BY
          ─▶ discover outbound links (URL jobs) ─▶ mark_completed

Any exception between claim and completion is recorded with
``mark_failed``, which re-queues the job or dead-letters it once its
attempts are spent.  If the lease was lost in the meantime (the job was
reclaimed and perhaps claimed by another worker), the queue raises
:class:`StaleLeaseError`; the worker logs it and drops its result.

Links found in the text of a page on a discovery domain (x.com and
twitter.com by default) are linked to the page when already in the graph
and otherwise queued as child jobs.  A link that was ever queued before,
in any state, is not queued again.

:func:`run_worker_pool` runs several workers against the same queue plus
a reclaim loop that returns jobs abandoned by crashed workers.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import uuid4

import structlog

from linkforge.interfaces.embedding_provider import IEmbeddingProvider
from linkforge.interfaces.graph_store import IGraphStore
from linkforge.models.content import LinkCategorization, ProcessedContent
from linkforge.models.graph import ChunkNode, LinkNode
from linkforge.models.queue import PayloadKind, QueueJob, QueuePayload
from linkforge.services.categorizer import LinkCategorizer
from linkforge.services.content_processor import ContentProcessor
from linkforge.services.ingestion_queue import IngestionQueue, utc_now
from linkforge.utils.errors import LinkForgeError, StaleLeaseError, UnsafeURLError
from linkforge.utils.link_extractor import DEFAULT_DISCOVERY_DOMAINS, extract_urls
from linkforge.utils.url_tools import synthetic_file_url, url_domain, validate_url_for_ssrf

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_MAX_CONTENT_URL = 5000
DEFAULT_MAX_CONTENT_FILE = 10000
DEFAULT_MAX_DISCOVERED_LINKS = 25


def link_url_for(job: QueueJob) -> str:
    """Return the graph identity of the link a job produces.

    URL jobs use their canonical URL.  File jobs have no URL, so they get
    a stable synthetic one built from the content hash and file name.
    """
    if job.payload_kind is PayloadKind.FILE:
        return synthetic_file_url(job.payload_key, job.file_name or "document")
    return job.payload_ref


def embedding_text(
    content: ProcessedContent,
    categorization: LinkCategorization | None,
) -> str:
    """Build the document-level text that represents a link in vector space.

    Parts are joined with ``". "``; a part's own trailing periods are
    dropped first so summaries that end a sentence do not produce ``..``.
    """
    parts = [content.title, content.description]
    if categorization is not None:
        parts.append(categorization.summary)
        if categorization.key_concepts:
            parts.append("Key concepts: " + ", ".join(categorization.key_concepts))
    cleaned = (part.strip().rstrip(".").rstrip() for part in parts if part)
    return ". ".join(part for part in cleaned if part)


class IngestionWorker:
    """Processes queue jobs one at a time.

    Parameters
    ----------
    queue:
        The ingestion queue to claim from.
    processor:
        Extracts and chunks job content.
    embedder:
        Embeds the link text and its chunks.
    graph_store:
        Destination for links, categories, tags and chunks.
    categorizer:
        Optional LLM categoriser.  Without one, links are stored with no
        category, tags or forge score.
    worker_id:
        Lease owner name.  A random one is generated when omitted.
    poll_interval:
        Seconds :meth:`run` waits when the queue is empty.
    lease_duration:
        Lease requested on each claim; ``None`` uses the queue default.
    discover_links:
        Queue the outbound links found on ingested pages as child jobs.
    discovery_domains:
        Only pages on these domains are mined for links.  An empty set
        means every domain.
    max_discovered_links:
        Cap on child links taken from one page.
    """

    def __init__(
        self,
        queue: IngestionQueue,
        processor: ContentProcessor,
        embedder: IEmbeddingProvider,
        graph_store: IGraphStore,
        categorizer: LinkCategorizer | None = None,
        worker_id: str | None = None,
        poll_interval: float = 5.0,
        lease_duration: timedelta | None = None,
        max_content_url: int = DEFAULT_MAX_CONTENT_URL,
        max_content_file: int = DEFAULT_MAX_CONTENT_FILE,
        discover_links: bool = True,
        discovery_domains: frozenset[str] = DEFAULT_DISCOVERY_DOMAINS,
        max_discovered_links: int = DEFAULT_MAX_DISCOVERED_LINKS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._queue = queue
        self._processor = processor
        self._embedder = embedder
        self._graph = graph_store
        self._categorizer = categorizer
        self._worker_id = worker_id or f"worker-{uuid4().hex[:8]}"
        self._poll_interval = poll_interval
        self._lease_duration = lease_duration
        self._max_content = {
            PayloadKind.URL: max_content_url,
            PayloadKind.FILE: max_content_file,
        }
        self._discover_links = discover_links
        self._discovery_domains = frozenset(d.lower() for d in discovery_domains)
        self._max_discovered_links = max_discovered_links
        self._clock = clock
        self._log = logger.bind(worker_id=self._worker_id)

    @property
    def worker_id(self) -> str:
        return self._worker_id

    # ------------------------------------------------------------------
    # Job processing
    # ------------------------------------------------------------------

    async def process_one(self) -> bool:
        """Claim and process a single job.

        Returns ``False`` when the queue had nothing to claim, ``True``
        otherwise, whether the job succeeded or failed.
        """
        job = await self._queue.claim(self._worker_id, self._lease_duration)
        if job is None:
            return False

        log = self._log.bind(job_id=job.id, ref=job.payload_ref, attempt=job.attempts)
        log.info("job_processing_started")

        try:
            link_url = await self._ingest(job)
        except Exception as exc:  # noqa: BLE001 - every failure is recorded on the job
            log.error("job_processing_failed", error=str(exc), error_type=type(exc).__name__)
            await self._record_failure(job, exc)
            return True

        try:
            await self._queue.mark_completed(job.id, self._worker_id)
        except StaleLeaseError:
            log.warning("job_result_abandoned", reason="lease_lost", link_url=link_url)
            return True

        log.info("job_processing_completed", link_url=link_url)
        return True

    async def _ingest(self, job: QueueJob) -> str:
        payload = job.payload
        content = await self._processor.process(payload)

        categorization: LinkCategorization | None = None
        if self._categorizer is not None:
            categorization = await self._categorizer.categorize(
                title=content.title,
                description=content.description,
                text=content.text,
                url=payload.ref,
            )

        url = link_url_for(job)
        embedding = await self._embedder.embed(embedding_text(content, categorization))

        max_content = self._max_content[job.payload_kind]
        link = LinkNode(
            url=url,
            title=content.title,
            description=(categorization.summary if categorization and categorization.summary
                         else content.description),
            content=content.text[:max_content],
            embedding=embedding,
            domain=content.domain,
            saved_at=self._clock(),
            forge_score=categorization.forge_score if categorization else None,
            content_type=categorization.content_type if categorization else None,
            purpose=(categorization.purpose or None) if categorization else None,
            quality=(categorization.quality or None) if categorization else None,
            key_concepts=categorization.key_concepts if categorization else [],
        )
        await self._graph.upsert_link(link)

        if categorization is not None:
            await self._graph.categorize_link(url, categorization.category)
            if categorization.tags:
                await self._graph.tag_link(url, categorization.tags)

        if len(content.chunks) > 1:
            await self._store_chunks(url, content)
        else:
            # Single-chunk content is covered by the link embedding; drop old passages.
            await self._graph.upsert_chunks(url, [])

        if payload.parent_url and await self._graph.link_exists(payload.parent_url):
            await self._graph.link_to(payload.parent_url, url)

        if payload.submitted_by:
            await self._graph.link_shared_by(url, payload.submitted_by)

        if self._discover_links and job.payload_kind is PayloadKind.URL:
            await self._discover(url, content)

        return url

    async def _discover(self, url: str, content: ProcessedContent) -> int:
        """Link or queue the outbound URLs found on the page at *url*.

        Targets already in the graph get a ``LINKS_TO`` edge right away.
        The rest are queued as child jobs carrying *url* as their parent,
        so the edge is written when the child is ingested.  Returns the
        number of jobs queued.
        """
        if self._discovery_domains and url_domain(url) not in self._discovery_domains:
            return 0
        children = extract_urls(content.text, parent_url=url)[: self._max_discovered_links]
        if not children:
            return 0

        linked = queued = 0
        for child in children:
            if await self._graph.link_exists(child):
                await self._graph.link_to(url, child)
                linked += 1
                continue
            try:
                # Host-level check only; the child's own fetch resolves DNS.
                await validate_url_for_ssrf(child, resolve=False)
            except UnsafeURLError as exc:
                self._log.debug("discovered_link_rejected", url=child, reason=exc.message)
                continue
            payload = QueuePayload.for_url(
                child, parent_url=url, comment=f"Discovered in {url}"
            )
            if await self._queue.enqueue_discovered(payload) is not None:
                queued += 1

        self._log.info(
            "links_discovered", link_url=url, found=len(children), linked=linked, queued=queued
        )
        return queued

    async def _store_chunks(self, url: str, content: ProcessedContent) -> None:
        vectors = await self._embedder.embed_batch([chunk.text for chunk in content.chunks])
        nodes = [
            ChunkNode(
                id=ChunkNode.make_id(url, chunk.index),
                link_url=url,
                index=chunk.index,
                text=chunk.text,
                embedding=vector,
            )
            for chunk, vector in zip(content.chunks, vectors, strict=True)
        ]
        await self._graph.upsert_chunks(url, nodes)
        self._log.debug("chunks_stored", link_url=url, chunks=len(nodes))

    async def _record_failure(self, job: QueueJob, exc: Exception) -> None:
        error = str(exc) or type(exc).__name__
        try:
            await self._queue.mark_failed(job.id, self._worker_id, error)
        except StaleLeaseError:
            self._log.warning("job_failure_abandoned", job_id=job.id, reason="lease_lost")

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run(self, stop_event: asyncio.Event) -> None:
        """Process jobs until *stop_event* is set.

        Sleeps for the poll interval whenever the queue is empty, waking
        early if the stop event fires.  A queue error (for example a
        ``database is locked`` after the busy timeout) is logged and waited
        out the same way; the worker keeps running.
        """
        self._log.info("worker_started", poll_interval=self._poll_interval)
        while not stop_event.is_set():
            try:
                had_job = await self.process_one()
            except LinkForgeError as exc:
                self._log.error(
                    "worker_iteration_failed", error=str(exc), error_type=type(exc).__name__
                )
                had_job = False
            if had_job:
                continue
            await _wait_or_stop(stop_event, self._poll_interval)
        self._log.info("worker_stopped")


async def _wait_or_stop(stop_event: asyncio.Event, timeout: float) -> bool:
    """Wait up to *timeout* seconds; return ``True`` if *stop_event* fired."""
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout)
    except asyncio.TimeoutError:  # noqa: UP041
        return False
    return True


async def reclaim_loop(
    queue: IngestionQueue,
    stop_event: asyncio.Event,
    interval: float = 60.0,
) -> None:
    """Call ``reclaim_stale`` every *interval* seconds until stopped.

    A failed sweep is logged and retried on the next tick.
    """
    while not await _wait_or_stop(stop_event, interval):
        try:
            await queue.reclaim_stale()
        except LinkForgeError as exc:
            logger.error("reclaim_failed", error=str(exc), error_type=type(exc).__name__)


async def run_worker_pool(
    workers: list[IngestionWorker],
    queue: IngestionQueue,
    stop_event: asyncio.Event,
    reclaim_interval: float = 60.0,
) -> None:
    """Run *workers* concurrently with a reclaim loop until *stop_event* is set.

    The reclaim loop runs once immediately, so jobs orphaned by a previous
    crash are back in the queue before the workers start claiming.  Workers
    and the reclaim loop survive application errors on their own; anything
    else that escapes a task cancels the others and propagates.
    """
    logger.info("worker_pool_starting", workers=len(workers), reclaim_interval=reclaim_interval)
    await queue.reclaim_stale()

    tasks = [asyncio.ensure_future(worker.run(stop_event)) for worker in workers]
    tasks.append(
        asyncio.ensure_future(
            reclaim_loop(queue, stop_event, interval=reclaim_interval)
        )
    )
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    finally:
        logger.info("worker_pool_stopped")
