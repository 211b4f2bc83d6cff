"""SQLite-backed ingestion queue store.

Persists queue jobs to a local SQLite database (``data/queue.db`` by
default) using ``aiosqlite`` for async I/O.

Concurrency model:

* The database runs in WAL mode so readers never block the single writer.
* Every write opens its own connection in autocommit mode and wraps its
  statements in ``BEGIN IMMEDIATE``, which takes SQLite's write lock up
  front.  Competing writers wait up to the busy timeout.
* Each transition is a conditional ``UPDATE`` whose ``WHERE`` clause
  re-checks the expected state (and, for lease holders, owner and expiry),
  so a transition that lost a race touches zero rows and changes nothing.
* A partial unique index makes it impossible for two non-terminal jobs to
  share a payload key, even if a caller bypasses :meth:`insert_if_absent`.
* CHECK constraints keep lease columns populated exactly when a job is
  ``processing``.

Timestamps are stored as fixed-width ISO-8601 UTC strings, so string
comparison in SQL matches chronological order.
"""

from __future__ import annotations

import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from linkforge.interfaces.queue_store import IQueueStore
from linkforge.models.queue import (
    TERMINAL_STATES,
    JobState,
    PayloadKind,
    QueueJob,
    QueuePayload,
)
from linkforge.utils.errors import DuplicateJobError, QueueError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/queue.db")
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
_CLAIM_CANDIDATES = 8

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS queue_jobs (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    payload_kind      TEXT    NOT NULL CHECK (payload_kind IN ('url', 'file')),
    payload_key       TEXT    NOT NULL,
    payload_ref       TEXT    NOT NULL,
    file_name         TEXT,
    parent_url        TEXT,
    comment           TEXT,
    submitted_by      TEXT,
    state             TEXT    NOT NULL DEFAULT 'queued'
                      CHECK (state IN ('queued', 'processing', 'completed', 'failed', 'dead_letter')),
    attempts          INTEGER NOT NULL DEFAULT 0 CHECK (attempts >= 0),
    max_attempts      INTEGER NOT NULL CHECK (max_attempts >= 1),
    lease_owner       TEXT,
    lease_expires_at  TEXT,
    last_error        TEXT    NOT NULL DEFAULT '',
    created_at        TEXT    NOT NULL,
    updated_at        TEXT    NOT NULL,
    CHECK ((state = 'processing') = (lease_owner IS NOT NULL)),
    CHECK ((state = 'processing') = (lease_expires_at IS NOT NULL))
);
"""

# Terminal rows never block a new job for the same payload.
ACTIVE_STATE_FILTER = "state NOT IN ({})".format(
    ", ".join(f"'{state.value}'" for state in TERMINAL_STATES)
)

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_queue_jobs_claim ON queue_jobs(state, created_at, id);",
    "CREATE INDEX IF NOT EXISTS idx_queue_jobs_lease ON queue_jobs(state, lease_expires_at);",
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_queue_jobs_active_payload "
        "ON queue_jobs(payload_kind, payload_key) "
        f"WHERE {ACTIVE_STATE_FILTER};"
    ),
]

_JOB_COLUMNS = """\
id, payload_kind, payload_key, payload_ref, file_name, parent_url, comment,
submitted_by, state, attempts, max_attempts, lease_owner, lease_expires_at,
last_error, created_at, updated_at"""

_FIND_ACTIVE_SQL = f"""\
SELECT id FROM queue_jobs
WHERE payload_kind = ? AND payload_key = ?
  AND {ACTIVE_STATE_FILTER}
LIMIT 1;
"""

_FIND_LATEST_SQL = f"""\
SELECT {_JOB_COLUMNS} FROM queue_jobs
WHERE payload_kind = ? AND payload_key = ?
ORDER BY id DESC
LIMIT 1;
"""

_INSERT_SQL = """\
INSERT INTO queue_jobs (
    payload_kind, payload_key, payload_ref, file_name, parent_url, comment,
    submitted_by, state, attempts, max_attempts, last_error, created_at, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, 'queued', 0, ?, '', ?, ?);
"""

_SELECT_CANDIDATES_SQL = """\
SELECT id FROM queue_jobs
WHERE state = 'queued'
ORDER BY created_at ASC, id ASC
LIMIT ?;
"""

_CLAIM_SQL = """\
UPDATE queue_jobs
SET state = 'processing',
    lease_owner = ?,
    lease_expires_at = ?,
    attempts = attempts + 1,
    updated_at = ?
WHERE id = ? AND state = 'queued';
"""

_COMPLETE_SQL = """\
UPDATE queue_jobs
SET state = 'completed',
    lease_owner = NULL,
    lease_expires_at = NULL,
    updated_at = ?
WHERE id = ?
  AND state = 'processing'
  AND lease_owner = ?
  AND lease_expires_at >= ?;
"""

_FAIL_SQL = """\
UPDATE queue_jobs
SET state = CASE WHEN attempts < max_attempts THEN 'queued' ELSE 'dead_letter' END,
    lease_owner = NULL,
    lease_expires_at = NULL,
    last_error = ?,
    updated_at = ?
WHERE id = ?
  AND state = 'processing'
  AND lease_owner = ?
  AND lease_expires_at >= ?;
"""

_RECLAIM_SQL = """\
UPDATE queue_jobs
SET state = 'queued',
    lease_owner = NULL,
    lease_expires_at = NULL,
    updated_at = ?
WHERE state = 'processing' AND lease_expires_at < ?;
"""

_RECLAIM_AS_FAILURE_SQL = """\
UPDATE queue_jobs
SET state = CASE WHEN attempts < max_attempts THEN 'queued' ELSE 'dead_letter' END,
    last_error = 'lease expired (owner ' || lease_owner || ')',
    lease_owner = NULL,
    lease_expires_at = NULL,
    updated_at = ?
WHERE state = 'processing' AND lease_expires_at < ?;
"""

_COUNT_BY_STATE_SQL = "SELECT state, COUNT(*) AS n FROM queue_jobs GROUP BY state;"

_REQUEUE_DEAD_LETTER_SQL = """\
UPDATE queue_jobs
SET state = 'queued',
    attempts = 0,
    updated_at = ?
WHERE id = ? AND state = 'dead_letter';
"""


def format_timestamp(value: datetime) -> str:
    """Render *value* as a fixed-width UTC string.  Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)  # noqa: UP017
    return value.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)  # noqa: UP017


def _row_to_job(row: aiosqlite.Row) -> QueueJob:
    return QueueJob.model_validate(dict(row))


class SQLiteQueueStore(IQueueStore):
    """SQLite persistence for the ingestion queue."""

    def __init__(
        self,
        db_path: str | Path = _DEFAULT_DB_PATH,
        busy_timeout: float = 10.0,
    ) -> None:
        self._db_path = Path(db_path)
        self._busy_timeout = busy_timeout

    # -- Connection helpers --------------------------------------------------

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        # isolation_level=None: no implicit transactions; writes manage
        # their own BEGIN IMMEDIATE / COMMIT.
        try:
            async with aiosqlite.connect(
                str(self._db_path), timeout=self._busy_timeout, isolation_level=None
            ) as db:
                db.row_factory = aiosqlite.Row
                yield db
        except sqlite3.OperationalError as exc:
            raise QueueError(
                message=f"Queue database error: {exc}", provider_name=self.get_provider_name()
            ) from exc

    @asynccontextmanager
    async def _write_transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                yield db
            except BaseException:
                await db.execute("ROLLBACK")
                raise
            await db.execute("COMMIT")

    async def _fetch_job(self, db: aiosqlite.Connection, job_id: int) -> QueueJob | None:
        cursor = await db.execute(f"SELECT {_JOB_COLUMNS} FROM queue_jobs WHERE id = ?;", (job_id,))
        row = await cursor.fetchone()
        return _row_to_job(row) if row is not None else None

    # -- IQueueStore -----------------------------------------------------------

    async def initialize(self) -> None:
        """Create the queue table and indices, and switch the file to WAL mode."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
        logger.info("queue_db_initialized", path=str(self._db_path))

    async def insert_if_absent(
        self, payload: QueuePayload, max_attempts: int, now: datetime
    ) -> tuple[int, bool]:
        now_ts = format_timestamp(now)
        async with self._write_transaction() as db:
            cursor = await db.execute(_FIND_ACTIVE_SQL, (payload.kind.value, payload.key))
            existing = await cursor.fetchone()
            if existing is not None:
                return int(existing["id"]), False

            cursor = await db.execute(
                _INSERT_SQL,
                (
                    payload.kind.value,
                    payload.key,
                    payload.ref,
                    payload.file_name,
                    payload.parent_url,
                    payload.comment,
                    payload.submitted_by,
                    max_attempts,
                    now_ts,
                    now_ts,
                ),
            )
            job_id = cursor.lastrowid
        if job_id is None:
            raise RuntimeError("SQLite did not report an insertion id")
        return int(job_id), True

    async def claim_next(
        self, worker_id: str, lease_expires_at: datetime, now: datetime
    ) -> QueueJob | None:
        lease_ts = format_timestamp(lease_expires_at)
        now_ts = format_timestamp(now)
        async with self._write_transaction() as db:
            cursor = await db.execute(_SELECT_CANDIDATES_SQL, (_CLAIM_CANDIDATES,))
            candidates = [int(row["id"]) for row in await cursor.fetchall()]
            for job_id in candidates:
                cursor = await db.execute(_CLAIM_SQL, (worker_id, lease_ts, now_ts, job_id))
                if cursor.rowcount == 1:
                    return await self._fetch_job(db, job_id)
        return None

    async def complete(self, job_id: int, worker_id: str, now: datetime) -> bool:
        now_ts = format_timestamp(now)
        async with self._write_transaction() as db:
            cursor = await db.execute(_COMPLETE_SQL, (now_ts, job_id, worker_id, now_ts))
            return cursor.rowcount == 1

    async def fail(
        self, job_id: int, worker_id: str, error: str, now: datetime
    ) -> JobState | None:
        now_ts = format_timestamp(now)
        async with self._write_transaction() as db:
            cursor = await db.execute(_FAIL_SQL, (error, now_ts, job_id, worker_id, now_ts))
            if cursor.rowcount != 1:
                return None
            cursor = await db.execute("SELECT state FROM queue_jobs WHERE id = ?;", (job_id,))
            row = await cursor.fetchone()
        return JobState(row["state"])

    async def reclaim_expired(self, now: datetime, as_failure: bool = False) -> int:
        now_ts = format_timestamp(now)
        sql = _RECLAIM_AS_FAILURE_SQL if as_failure else _RECLAIM_SQL
        async with self._write_transaction() as db:
            cursor = await db.execute(sql, (now_ts, now_ts))
            return max(cursor.rowcount, 0)

    async def count_by_state(self) -> dict[JobState, int]:
        async with self._connect() as db:
            cursor = await db.execute(_COUNT_BY_STATE_SQL)
            rows = await cursor.fetchall()
        return {JobState(row["state"]): int(row["n"]) for row in rows}

    async def get(self, job_id: int) -> QueueJob | None:
        async with self._connect() as db:
            return await self._fetch_job(db, job_id)

    async def find_latest(self, kind: PayloadKind, key: str) -> QueueJob | None:
        async with self._connect() as db:
            cursor = await db.execute(_FIND_LATEST_SQL, (kind.value, key))
            row = await cursor.fetchone()
        return _row_to_job(row) if row is not None else None

    async def list_jobs(self, state: JobState | None = None, limit: int = 50) -> list[QueueJob]:
        sql = f"SELECT {_JOB_COLUMNS} FROM queue_jobs"
        params: list[Any] = []
        if state is not None:
            sql += " WHERE state = ?"
            params.append(state.value)
        sql += " ORDER BY created_at ASC, id ASC LIMIT ?;"
        params.append(limit)

        async with self._connect() as db:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        return [_row_to_job(row) for row in rows]

    async def requeue_dead_letter(self, job_id: int, now: datetime) -> bool:
        try:
            async with self._write_transaction() as db:
                cursor = await db.execute(
                    _REQUEUE_DEAD_LETTER_SQL, (format_timestamp(now), job_id)
                )
                return cursor.rowcount == 1
        except sqlite3.IntegrityError as exc:
            raise DuplicateJobError(
                message=f"Job {job_id} cannot be re-queued: an active job covers the same payload",
                provider_name=self.get_provider_name(),
            ) from exc

    def get_provider_name(self) -> str:
        return "sqlite"
