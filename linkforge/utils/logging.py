"""Structured logging setup using structlog.

One shared processor chain (context vars, log level, timestamps, stack
info) feeds either a coloured ConsoleRenderer for local work or a
JSONRenderer for production.  ``APP_ENV=production`` or the
``json_output`` flag selects JSON.

Worker processes and the API server both call :func:`configure_logging`
once at startup.  Standard-library ``logging`` (aiosqlite, httpx, neo4j,
uvicorn) is routed through the same formatter.
"""

import logging
import os
import sys

import structlog


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog with environment-appropriate rendering.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output.  When False, JSON is still used if
                     ``APP_ENV`` is ``"production"``.

    Returns:
        A configured structlog BoundLogger.
    """
    # Renderer selection: APP_ENV=production means machine-readable JSON,
    # anything else the human-readable console format.
    app_env = os.environ.get("APP_ENV", "development")
    use_json = json_output or app_env == "production"

    # Shared chain, run for both renderers.  Context vars come first so
    # bindings such as worker_id or job_id can be overridden per call.
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,  # request- or job-scoped bindings
        structlog.processors.add_log_level,  # "level" key
        structlog.processors.StackInfoRenderer(),  # stack_info=True, if passed
        structlog.dev.set_exc_info,  # exc_info on .exception()
        structlog.processors.TimeStamper(fmt="iso", utc=True),  # UTC, matching queue timestamps
    ]

    # The renderer is the only processor that differs between environments.
    # Colours are dropped when stdout is a pipe or a file.
    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        # Messages below log_level are dropped before the processor chain
        # runs, so debug calls in the worker loop cost almost nothing.
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,  # tests that reconfigure must reset structlog
    )

    # Route stdlib logging through the same chain so third-party output
    # has the same shape as ours.
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()  # configure_logging may run more than once
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    # The neo4j driver logs every routing table refresh at INFO.
    logging.getLogger("neo4j").setLevel(max(logging.WARNING, root_logger.level))

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a named structlog logger, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)
