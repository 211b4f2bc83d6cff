"""Abstract base class for ingestion queue persistence.

The store owns atomicity.  Every state change is a single conditional
write executed inside a store-level write transaction, so several workers
(tasks, threads or processes) can share one store without in-process
locks.  Methods report "nothing matched" through their return values; the
:class:`~linkforge.services.ingestion_queue.IngestionQueue` turns those
into domain errors and log events.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from linkforge.models.queue import JobState, PayloadKind, QueueJob, QueuePayload


class IQueueStore(ABC):
    """Contract for a durable, multi-writer job table."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""

    @abstractmethod
    async def insert_if_absent(
        self, payload: QueuePayload, max_attempts: int, now: datetime
    ) -> tuple[int, bool]:
        """Insert a ``queued`` job unless a non-terminal job has the same key.

        Returns
        -------
        tuple[int, bool]
            The job id (new or existing) and whether a row was inserted.
        """

    @abstractmethod
    async def claim_next(
        self, worker_id: str, lease_expires_at: datetime, now: datetime
    ) -> QueueJob | None:
        """Move the oldest ``queued`` job to ``processing`` under a lease.

        Selection is by ``created_at`` then insertion id.  The update is
        conditional on the row still being ``queued``; a lost race moves on
        to the next candidate.  ``attempts`` is incremented.

        Returns
        -------
        QueueJob or None
            The claimed job, or ``None`` when nothing is queued.
        """

    @abstractmethod
    async def complete(self, job_id: int, worker_id: str, now: datetime) -> bool:
        """Mark a job ``completed`` if *worker_id* holds a live lease on it.

        Returns
        -------
        bool
            ``False`` when the lease is missing, expired or held by another
            worker.  Nothing is changed in that case.
        """

    @abstractmethod
    async def fail(
        self, job_id: int, worker_id: str, error: str, now: datetime
    ) -> JobState | None:
        """Record a failed attempt under a live lease.

        The job goes back to ``queued`` while ``attempts < max_attempts``,
        otherwise to ``dead_letter``.  ``last_error`` is set either way.

        Returns
        -------
        JobState or None
            The resulting state, or ``None`` when the lease check failed.
        """

    @abstractmethod
    async def reclaim_expired(self, now: datetime, as_failure: bool = False) -> int:
        """Return every ``processing`` job with ``lease_expires_at < now`` to ``queued``.

        Parameters
        ----------
        now:
            Reference time for lease expiry.
        as_failure:
            Treat the expired lease as a failed attempt: jobs whose
            ``attempts`` already reached ``max_attempts`` are dead-lettered
            instead of re-queued, and ``last_error`` is set.  When false,
            ``attempts`` and ``last_error`` are left untouched.

        Returns
        -------
        int
            Number of jobs touched.
        """

    @abstractmethod
    async def count_by_state(self) -> dict[JobState, int]:
        """Return job counts for the states that have at least one job."""

    @abstractmethod
    async def get(self, job_id: int) -> QueueJob | None:
        """Fetch one job by id."""

    @abstractmethod
    async def find_latest(self, kind: PayloadKind, key: str) -> QueueJob | None:
        """Return the newest job for a payload key in any state, or ``None``."""

    @abstractmethod
    async def list_jobs(self, state: JobState | None = None, limit: int = 50) -> list[QueueJob]:
        """List jobs oldest first, optionally filtered by state."""

    @abstractmethod
    async def requeue_dead_letter(self, job_id: int, now: datetime) -> bool:
        """Move a ``dead_letter`` job back to ``queued`` with ``attempts = 0``.

        Returns ``False`` when the job is not dead-lettered.

        Raises
        ------
        DuplicateJobError
            If another non-terminal job already covers the same payload.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier for this store (e.g. ``"sqlite"``)."""
