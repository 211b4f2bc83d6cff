"""Ingestion queue models: job states, payloads, jobs, stats and config.

A job moves through a small state machine::

    queued ──claim──▶ processing ──mark_completed──▶ completed
      ▲                   │
      │                   ├──mark_failed (attempts < max)──▶ queued
      │                   └──mark_failed (attempts = max)──▶ dead_letter
      └───reclaim_stale (lease expired)───┘

``completed`` and ``dead_letter`` are terminal.  ``failed`` is a recognised
state that the store accepts and counts, but the transitions above never
write it: a failed attempt either goes back to ``queued`` or is
dead-lettered.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from linkforge.utils.url_tools import canonicalize_url, file_sha256


class JobState(str, Enum):  # noqa: UP042
    """Lifecycle state of a queue job."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD_LETTER = "dead_letter"


# A payload whose jobs are all in these states can be enqueued again.
TERMINAL_STATES: tuple[JobState, ...] = (JobState.COMPLETED, JobState.DEAD_LETTER)


class PayloadKind(str, Enum):  # noqa: UP042
    """What a job points at."""

    URL = "url"
    FILE = "file"


# ---------------------------------------------------------------------------
# QueuePayload -- what a producer hands to enqueue()
# ---------------------------------------------------------------------------
class QueuePayload(BaseModel):
    """A URL or uploaded-file reference plus its dedup key.

    Build instances with :meth:`for_url` or :meth:`for_file` so the key is
    always derived the same way: the canonical URL for links, the SHA-256
    of the content for files.
    """

    model_config = ConfigDict(frozen=True)

    kind: PayloadKind
    key: str = Field(min_length=1, description="Stable content key used for dedup.")
    ref: str = Field(min_length=1, description="Canonical URL, or the path of the uploaded file.")
    file_name: str | None = Field(default=None, description="Original file name for file payloads.")
    parent_url: str | None = Field(
        default=None, description="Page the link was discovered on, if any."
    )
    comment: str | None = Field(default=None, description="Free-text note from the submitter.")
    submitted_by: str | None = Field(default=None, description="Who shared the link.")

    @classmethod
    def for_url(
        cls,
        url: str,
        *,
        parent_url: str | None = None,
        comment: str | None = None,
        submitted_by: str | None = None,
    ) -> QueuePayload:
        canonical = canonicalize_url(url)
        return cls(
            kind=PayloadKind.URL,
            key=canonical,
            ref=canonical,
            parent_url=canonicalize_url(parent_url) if parent_url else None,
            comment=comment,
            submitted_by=submitted_by,
        )

    @classmethod
    def for_file(
        cls,
        path: str | Path,
        *,
        file_name: str | None = None,
        content_hash: str | None = None,
        comment: str | None = None,
        submitted_by: str | None = None,
    ) -> QueuePayload:
        """Build a file payload, hashing the file unless *content_hash* is given."""
        file_path = Path(path)
        return cls(
            kind=PayloadKind.FILE,
            key=content_hash or file_sha256(file_path),
            ref=str(file_path),
            file_name=file_name or file_path.name,
            comment=comment,
            submitted_by=submitted_by,
        )


# ---------------------------------------------------------------------------
# QueueJob -- one row of the queue table
# ---------------------------------------------------------------------------
class QueueJob(BaseModel):
    """A snapshot of a queue row.  Mutations go through the queue, never here."""

    model_config = ConfigDict(frozen=True)

    id: int
    payload_kind: PayloadKind
    payload_key: str
    payload_ref: str
    file_name: str | None = None
    parent_url: str | None = None
    comment: str | None = None
    submitted_by: str | None = None
    state: JobState
    attempts: int = Field(ge=0)
    max_attempts: int = Field(ge=1)
    lease_owner: str | None = None
    lease_expires_at: datetime | None = None
    last_error: str = ""
    created_at: datetime
    updated_at: datetime

    @property
    def payload(self) -> QueuePayload:
        return QueuePayload(
            kind=self.payload_kind,
            key=self.payload_key,
            ref=self.payload_ref,
            file_name=self.file_name,
            parent_url=self.parent_url,
            comment=self.comment,
            submitted_by=self.submitted_by,
        )


class QueueStats(BaseModel):
    """Number of jobs in each state."""

    model_config = ConfigDict(frozen=True)

    queued: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    dead_letter: int = 0

    @property
    def total(self) -> int:
        return self.queued + self.processing + self.completed + self.failed + self.dead_letter

    def as_dict(self) -> dict[str, int]:
        return {state.value: getattr(self, state.value) for state in JobState}


class QueueConfig(BaseModel):
    """Deployment-wide queue policy, passed explicitly to the IngestionQueue."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1, description="Attempts before dead-lettering.")
    lease_seconds: float = Field(default=300.0, gt=0, description="Default lease duration.")
    reclaim_counts_as_failure: bool = Field(
        default=False,
        description=(
            "Treat an expired lease as a failed attempt: reclaim dead-letters "
            "jobs that have reached max_attempts instead of re-queueing them."
        ),
    )
    max_error_length: int = Field(default=2000, ge=1)
