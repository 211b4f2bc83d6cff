# =============================================================================
# linkforge/cli/ingest.py -- Ingestion Queue CLI
# =============================================================================
#
# Operator tool for the link ingestion queue and the workers that drain it.
#
# Supported subcommands:
#
#   url           -- Enqueue a web link
#   file          -- Copy a document into the upload directory and enqueue it
#   stats         -- Show job counts per state
#   jobs          -- List jobs, optionally filtered by state
#   reclaim       -- Return jobs with expired leases to the queue
#   retry         -- Give a dead-lettered job a fresh set of attempts
#   work          -- Run the worker pool until interrupted (or until empty)
#   setup-schema  -- Create Neo4j constraints and vector indexes
#
# Queue-only commands build just the SQLite store.  `work` and
# `setup-schema` build the full component graph from linkforge.main, so
# they use the same embedding model and Neo4j settings as the API.
#
# Usage examples:
#   python -m linkforge.cli.ingest url https://example.com/post --by alice
#   python -m linkforge.cli.ingest file ~/papers/attention.pdf
#   python -m linkforge.cli.ingest jobs --state dead_letter
#   python -m linkforge.cli.ingest work --workers 2
# =============================================================================

"""Standalone CLI for the LinkForge ingestion queue.

Usage::

    python -m linkforge.cli.ingest url https://example.com/article
    python -m linkforge.cli.ingest stats
    python -m linkforge.cli.ingest work --once
"""

from __future__ import annotations

import argparse
import asyncio
import shutil
import signal
import sys
from pathlib import Path

from linkforge.config.settings import Settings
from linkforge.models.queue import JobState, QueuePayload
from linkforge.providers.content.file_extractor import SUPPORTED_EXTENSIONS, is_supported_file
from linkforge.services.ingestion_queue import IngestionQueue
from linkforge.utils.errors import LinkForgeError
from linkforge.utils.logging import configure_logging
from linkforge.utils.url_tools import file_sha256


async def _build_queue(app_settings: Settings) -> IngestionQueue:
    """Build and initialise the queue without touching Neo4j or the embedder."""
    from linkforge.main import build_queue

    queue = build_queue(app_settings)
    await queue.initialize()
    return queue


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_url(args: argparse.Namespace, app_settings: Settings) -> int:
    """Enqueue a single URL."""
    try:
        payload = QueuePayload.for_url(
            args.url,
            parent_url=args.parent,
            comment=args.comment,
            submitted_by=args.by,
        )
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    queue = await _build_queue(app_settings)
    job_id = await queue.enqueue(payload)
    print(f"Queued {payload.ref} as job {job_id}")
    return 0


async def _handle_file(args: argparse.Namespace, app_settings: Settings) -> int:
    """Copy a document into the upload directory and enqueue it.

    The stored copy is named after its SHA-256, so re-adding the same
    document is deduplicated by the queue.
    """
    source = Path(args.path).expanduser()
    if not source.is_file():
        print(f"Error: {source} is not a file", file=sys.stderr)
        return 1
    if not is_supported_file(source.name):
        supported = ", ".join(sorted(SUPPORTED_EXTENSIONS))
        print(f"Error: unsupported file type {source.suffix!r} (supported: {supported})",
              file=sys.stderr)
        return 1

    content_hash = file_sha256(source)
    upload_dir = Path(app_settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    stored = upload_dir / f"{content_hash}{source.suffix.lower()}"
    if not stored.exists():
        shutil.copyfile(source, stored)

    payload = QueuePayload.for_file(
        stored,
        file_name=source.name,
        content_hash=content_hash,
        comment=args.comment,
        submitted_by=args.by,
    )
    queue = await _build_queue(app_settings)
    job_id = await queue.enqueue(payload)
    print(f"Queued {source.name} ({content_hash[:12]}) as job {job_id}")
    return 0


async def _handle_stats(app_settings: Settings) -> int:
    """Display job counts per state."""
    queue = await _build_queue(app_settings)
    stats = await queue.stats()

    print("Queue Statistics")
    print("=" * 40)
    for state, count in stats.as_dict().items():
        print(f"  {state:<15} {count}")
    print(f"  {'total':<15} {stats.total}")
    return 0


async def _handle_jobs(args: argparse.Namespace, app_settings: Settings) -> int:
    queue = await _build_queue(app_settings)
    state = JobState(args.state) if args.state else None
    jobs = await queue.list_jobs(state=state, limit=args.limit)
    if not jobs:
        print("No jobs.")
        return 0

    for job in jobs:
        line = f"  #{job.id:<6} {job.state.value:<12} {job.attempts}/{job.max_attempts}  {job.payload_ref}"
        print(line)
        if job.last_error:
            print(f"          last error: {job.last_error[:160]}")
    return 0


async def _handle_reclaim(app_settings: Settings) -> int:
    queue = await _build_queue(app_settings)
    reclaimed = await queue.reclaim_stale()
    print(f"Reclaimed {reclaimed} job(s) with expired leases")
    return 0


async def _handle_retry(args: argparse.Namespace, app_settings: Settings) -> int:
    queue = await _build_queue(app_settings)
    try:
        job = await queue.retry_dead_letter(args.job_id)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"Job {job.id} re-queued ({job.payload_ref})")
    return 0


async def _drain(workers: list, queue: IngestionQueue) -> int:  # noqa: ANN001
    """Process jobs until the queue has nothing left to claim."""
    await queue.reclaim_stale()
    processed = 0
    while True:
        results = await asyncio.gather(*(worker.process_one() for worker in workers))
        claimed = sum(1 for had_job in results if had_job)
        if claimed == 0:
            return processed
        processed += claimed


async def _handle_work(args: argparse.Namespace, app_settings: Settings) -> int:
    """Run the worker pool until SIGINT/SIGTERM, or drain once with --once."""
    from linkforge.main import (
        build_components,
        build_workers,
        close_components,
        initialize_components,
    )
    from linkforge.services.worker import run_worker_pool

    if args.workers:
        app_settings = app_settings.model_copy(update={"worker_count": args.workers})

    components = build_components(app_settings)
    try:
        await initialize_components(components, app_settings)
        queue: IngestionQueue = components["ingestion_queue"]
        workers = build_workers(components, app_settings)
        print(f"Starting {len(workers)} worker(s)")

        if args.once:
            processed = await _drain(workers, queue)
            print(f"Queue drained: {processed} job(s) processed")
            stats = await queue.stats()
            print(f"  completed={stats.completed} dead_letter={stats.dead_letter}")
            return 0

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)
        await run_worker_pool(
            workers,
            queue,
            stop_event,
            reclaim_interval=app_settings.queue_reclaim_interval_seconds,
        )
        return 0
    finally:
        await close_components(components)


async def _handle_setup_schema(app_settings: Settings) -> int:
    from linkforge.providers.graph.neo4j_graph_store import Neo4jGraphStore

    graph_store = Neo4jGraphStore.from_credentials(
        uri=app_settings.neo4j_uri,
        user=app_settings.neo4j_user,
        password=app_settings.neo4j_password,
        database=app_settings.neo4j_database,
        dimension=app_settings.embedding_dimension,
    )
    try:
        await graph_store.ensure_schema(app_settings.embedding_dimension)
        print(f"Schema ready ({app_settings.embedding_dimension}-d vector indexes)")
    finally:
        await graph_store.close()
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ingestion CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m linkforge.cli.ingest",
        description="Manage the LinkForge ingestion queue.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Queue commands")

    # -- url --
    url_parser = subparsers.add_parser("url", help="Enqueue a web link")
    url_parser.add_argument("url", help="Link to ingest")
    url_parser.add_argument("--parent", default=None, help="Page the link was found on")
    url_parser.add_argument("--comment", default=None, help="Note stored with the job")
    url_parser.add_argument("--by", default=None, help="Who shared the link")

    # -- file --
    file_parser = subparsers.add_parser("file", help="Enqueue a local document")
    file_parser.add_argument("path", help="Path to a .pdf, .epub, .html, .md or .txt file")
    file_parser.add_argument("--comment", default=None, help="Note stored with the job")
    file_parser.add_argument("--by", default=None, help="Who shared the document")

    # -- stats --
    subparsers.add_parser("stats", help="Show job counts per state")

    # -- jobs --
    jobs_parser = subparsers.add_parser("jobs", help="List queue jobs")
    jobs_parser.add_argument(
        "--state",
        choices=[state.value for state in JobState],
        default=None,
        help="Only show jobs in this state",
    )
    jobs_parser.add_argument("--limit", type=int, default=50, help="Maximum jobs to list")

    # -- reclaim --
    subparsers.add_parser("reclaim", help="Return expired leases to the queue")

    # -- retry --
    retry_parser = subparsers.add_parser("retry", help="Re-queue a dead-lettered job")
    retry_parser.add_argument("job_id", type=int, help="Job id")

    # -- work --
    work_parser = subparsers.add_parser("work", help="Run ingestion workers")
    work_parser.add_argument("--workers", type=int, default=None, help="Override WORKER_COUNT")
    work_parser.add_argument(
        "--once",
        action="store_true",
        help="Exit once the queue has no claimable jobs",
    )

    # -- setup-schema --
    subparsers.add_parser("setup-schema", help="Create Neo4j constraints and indexes")

    return parser


async def _dispatch(args: argparse.Namespace, app_settings: Settings) -> int:
    if args.command == "url":
        return await _handle_url(args, app_settings)
    if args.command == "file":
        return await _handle_file(args, app_settings)
    if args.command == "stats":
        return await _handle_stats(app_settings)
    if args.command == "jobs":
        return await _handle_jobs(args, app_settings)
    if args.command == "reclaim":
        return await _handle_reclaim(app_settings)
    if args.command == "retry":
        return await _handle_retry(args, app_settings)
    if args.command == "work":
        return await _handle_work(args, app_settings)
    if args.command == "setup-schema":
        return await _handle_setup_schema(app_settings)
    return 1


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the queue tool."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    configure_logging(log_level=app_settings.log_level)

    try:
        exit_code = asyncio.run(_dispatch(args, app_settings))
    except LinkForgeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
