"""Durable ingestion work queue with lease-based claiming.

:class:`IngestionQueue` is the only way producers and workers touch queue
jobs.  It owns the queue policy (lease duration, retry ceiling, reclaim
behaviour), the clock, and the log events; the injected
:class:`~linkforge.interfaces.queue_store.IQueueStore` owns atomicity.

Job lifecycle::

    enqueue ─▶ queued ─claim─▶ processing ─mark_completed─▶ completed
                  ▲                 │
                  │                 ├─mark_failed, attempts < max─▶ queued
                  │                 └─mark_failed, attempts = max─▶ dead_letter
                  └──reclaim_stale───┘ (lease expired)

Crash recovery relies on lease expiry alone.  A worker that dies
mid-job leaves its lease to run out; the next :meth:`reclaim_stale` puts
the job back in the queue.  There are no heartbeats, so the lease must
outlast the slowest expected job.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, NoReturn

import structlog

from linkforge.models.queue import JobState, QueueConfig, QueueJob, QueuePayload, QueueStats
from linkforge.utils.errors import JobNotFoundError, StaleLeaseError

if TYPE_CHECKING:
    from linkforge.interfaces.queue_store import IQueueStore

logger = structlog.get_logger(logger_name=__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class IngestionQueue:
    """Producer and worker facade over a queue store.

    Parameters
    ----------
    store:
        Persistence backend; must already be initialised.
    config:
        Queue policy.  Defaults to ``QueueConfig()``.
    clock:
        Returns the current UTC time.  Tests inject a controllable clock.
    """

    def __init__(
        self,
        store: IQueueStore,
        config: QueueConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._config = config or QueueConfig()
        self._clock = clock

    @property
    def config(self) -> QueueConfig:
        return self._config

    async def initialize(self) -> None:
        """Create the backing tables.  Idempotent."""
        await self._store.initialize()

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def enqueue(self, payload: QueuePayload) -> int:
        """Add *payload* to the queue and return its job id.

        If a non-terminal job (queued, processing or failed) already has the
        same payload key, its id is returned and nothing is inserted.  Once
        the earlier job is completed or dead-lettered, the same payload can
        be enqueued again as a fresh job.
        """
        job_id, created = await self._store.insert_if_absent(
            payload, self._config.max_attempts, self._clock()
        )
        if created:
            logger.info(
                "job_enqueued",
                job_id=job_id,
                kind=payload.kind.value,
                key=payload.key,
            )
        else:
            logger.debug("job_enqueue_deduplicated", job_id=job_id, key=payload.key)
        return job_id

    async def enqueue_discovered(self, payload: QueuePayload) -> int | None:
        """Enqueue a link found inside another page, unless it was ever queued.

        Unlike :meth:`enqueue`, any earlier job for the key blocks the
        insert, including completed and dead-lettered ones, so a page that
        is re-ingested does not re-queue its whole outbound link set.
        Returns the new job id, or ``None`` when the link was skipped.
        """
        existing = await self._store.find_latest(payload.kind, payload.key)
        if existing is not None:
            logger.debug(
                "discovered_link_skipped",
                key=payload.key,
                job_id=existing.id,
                state=existing.state.value,
            )
            return None
        return await self.enqueue(payload)

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    async def claim(
        self, worker_id: str, lease_duration: timedelta | None = None
    ) -> QueueJob | None:
        """Claim the oldest queued job for *worker_id*.

        Returns ``None`` when the queue has nothing to hand out.  Concurrent
        callers never receive the same job.
        """
        if not worker_id:
            raise ValueError("worker_id must be a non-empty string")
        if lease_duration is None:
            duration = timedelta(seconds=self._config.lease_seconds)
        else:
            duration = lease_duration
        if duration <= timedelta(0):
            raise ValueError("lease_duration must be positive")

        now = self._clock()
        job = await self._store.claim_next(worker_id, now + duration, now)
        if job is not None:
            logger.info(
                "job_claimed",
                job_id=job.id,
                worker_id=worker_id,
                attempt=job.attempts,
                max_attempts=job.max_attempts,
                lease_expires_at=job.lease_expires_at.isoformat() if job.lease_expires_at else None,
            )
        return job

    async def mark_completed(self, job_id: int, worker_id: str) -> None:
        """Finish a job.  The caller must hold a live lease on it.

        Raises
        ------
        StaleLeaseError
            If the lease expired, was reclaimed, or belongs to another worker.
        JobNotFoundError
            If *job_id* does not exist.
        """
        if not await self._store.complete(job_id, worker_id, self._clock()):
            await self._raise_lease_conflict(job_id, worker_id, "mark_completed")
        logger.info("job_completed", job_id=job_id, worker_id=worker_id)

    async def mark_failed(self, job_id: int, worker_id: str, error: str) -> JobState:
        """Record a failed attempt and return the job's new state.

        The job is re-queued while attempts remain, otherwise dead-lettered.

        Raises
        ------
        StaleLeaseError
            If the caller no longer holds a live lease.
        JobNotFoundError
            If *job_id* does not exist.
        """
        message = (error or "unknown error")[: self._config.max_error_length]
        new_state = await self._store.fail(job_id, worker_id, message, self._clock())
        if new_state is None:
            await self._raise_lease_conflict(job_id, worker_id, "mark_failed")

        if new_state is JobState.DEAD_LETTER:
            logger.warning("job_dead_lettered", job_id=job_id, worker_id=worker_id, error=message)
        else:
            logger.info("job_requeued_after_failure", job_id=job_id, worker_id=worker_id, error=message)
        return new_state

    async def reclaim_stale(self, now: datetime | None = None) -> int:
        """Return jobs with expired leases to the queue.  Safe to call repeatedly.

        Live leases are never touched, so this cannot race a worker that is
        still entitled to report on its job.
        """
        reclaimed = await self._store.reclaim_expired(
            now or self._clock(), as_failure=self._config.reclaim_counts_as_failure
        )
        if reclaimed:
            logger.warning("stale_jobs_reclaimed", count=reclaimed)
        return reclaimed

    # ------------------------------------------------------------------
    # Operator side
    # ------------------------------------------------------------------

    async def stats(self) -> QueueStats:
        """Count jobs per state.  Every state is present, zero when empty."""
        counts = await self._store.count_by_state()
        return QueueStats(**{state.value: counts.get(state, 0) for state in JobState})

    async def get_job(self, job_id: int) -> QueueJob:
        job = await self._store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id, provider_name=self._store.get_provider_name())
        return job

    async def list_jobs(self, state: JobState | None = None, limit: int = 50) -> list[QueueJob]:
        return await self._store.list_jobs(state=state, limit=limit)

    async def retry_dead_letter(self, job_id: int) -> QueueJob:
        """Give a dead-lettered job a fresh set of attempts.

        Raises
        ------
        JobNotFoundError
            If *job_id* does not exist.
        ValueError
            If the job is not dead-lettered.
        DuplicateJobError
            If another active job already covers the same payload.
        """
        if not await self._store.requeue_dead_letter(job_id, self._clock()):
            job = await self.get_job(job_id)
            raise ValueError(f"Job {job_id} is {job.state.value}, not dead_letter")
        logger.info("dead_letter_job_requeued", job_id=job_id)
        return await self.get_job(job_id)

    # ------------------------------------------------------------------

    async def _raise_lease_conflict(self, job_id: int, worker_id: str, operation: str) -> NoReturn:
        job = await self._store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id, provider_name=self._store.get_provider_name())
        logger.warning(
            "stale_lease_rejected",
            operation=operation,
            job_id=job_id,
            worker_id=worker_id,
            state=job.state.value,
            lease_owner=job.lease_owner,
        )
        raise StaleLeaseError(
            job_id, worker_id, state=job.state.value, provider_name=self._store.get_provider_name()
        )
