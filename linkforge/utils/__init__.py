"""Utility modules for LinkForge.

- **errors** -- Exception hierarchy rooted at LinkForgeError.
- **logging** -- structlog setup with console output in development and
  JSON in production.
- **url_tools** -- URL canonicalisation (queue dedup keys), SSRF checks and
  file hashing.
"""

from linkforge.utils.errors import (
    CategorizationError,
    ConfigurationError,
    DuplicateJobError,
    EmbeddingError,
    ExtractionError,
    GraphStoreError,
    InvalidQueryError,
    JobNotFoundError,
    LLMError,
    LinkForgeError,
    ProcessingError,
    QueueError,
    RetrievalError,
    StaleLeaseError,
    UnsafeURLError,
)
from linkforge.utils.logging import configure_logging, get_logger

__all__ = [
    "CategorizationError",
    "ConfigurationError",
    "DuplicateJobError",
    "EmbeddingError",
    "ExtractionError",
    "GraphStoreError",
    "InvalidQueryError",
    "JobNotFoundError",
    "LLMError",
    "LinkForgeError",
    "ProcessingError",
    "QueueError",
    "RetrievalError",
    "StaleLeaseError",
    "UnsafeURLError",
    "configure_logging",
    "get_logger",
]
