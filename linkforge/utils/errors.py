"""Custom exception hierarchy for LinkForge.

All application exceptions inherit from :class:`LinkForgeError`, which
carries an optional ``provider_name`` so handlers can tell which backend
(e.g. "sqlite", "neo4j", "anthropic", "web_scraper") raised it.

    LinkForgeError  (base)
    +-- ConfigurationError        (startup / missing config)
    +-- QueueError                (ingestion queue store)
    |   +-- JobNotFoundError      (unknown job id)
    |   +-- StaleLeaseError       (caller no longer holds the lease)
    |   +-- DuplicateJobError     (an active job already covers the payload)
    +-- ProcessingError           (a job failed; recorded via mark_failed)
    |   +-- ExtractionError       (scraping / file parsing)
    |   |   +-- UnsafeURLError    (SSRF guard refused the URL)
    |   +-- EmbeddingError        (embedding model failure)
    |   +-- CategorizationError   (unusable categoriser output)
    |   +-- LLMError              (LLM API call failure)
    +-- GraphStoreError           (graph database failure)
    +-- RetrievalError            (a search sub-query failed)
    +-- InvalidQueryError         (malformed search input; also a ValueError)

The worker treats every ``ProcessingError`` and ``GraphStoreError`` as a
job failure.  ``StaleLeaseError`` means another worker owns the job now and
the in-flight result must be dropped.
"""


class LinkForgeError(Exception):
    """Base exception for all LinkForge errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name``.  ``__str__`` prefixes the provider in brackets,
    e.g. ``[neo4j] Vector query failed``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


class ConfigurationError(LinkForgeError):
    """Raised when required configuration is missing or invalid."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Queue errors
# ---------------------------------------------------------------------------

class QueueError(LinkForgeError):
    """Raised when the ingestion queue store fails."""

    def __init__(
        self,
        message: str = "Queue operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class JobNotFoundError(QueueError):
    """Raised when a job id does not exist in the queue."""

    def __init__(self, job_id: int, provider_name: str | None = None) -> None:
        self.job_id = job_id
        super().__init__(message=f"Job {job_id} not found", provider_name=provider_name)


class StaleLeaseError(QueueError):
    """Raised when a worker reports on a job it no longer holds a live lease for.

    The job may have been reclaimed and handed to another worker, or it is
    no longer in the ``processing`` state at all.  Nothing was changed.
    """

    def __init__(
        self,
        job_id: int,
        worker_id: str,
        state: str | None = None,
        provider_name: str | None = None,
    ) -> None:
        self.job_id = job_id
        self.worker_id = worker_id
        self.state = state
        detail = f" (state={state})" if state else ""
        super().__init__(
            message=f"Worker {worker_id!r} does not hold a live lease on job {job_id}{detail}",
            provider_name=provider_name,
        )


class DuplicateJobError(QueueError):
    """Raised when an operation would create a second active job for one payload."""

    def __init__(
        self,
        message: str = "An active job already exists for this payload",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Processing errors (job failures)
# ---------------------------------------------------------------------------

class ProcessingError(LinkForgeError):
    """Raised when a claimed job cannot be processed."""

    def __init__(
        self,
        message: str = "Job processing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionError(ProcessingError):
    """Raised when content cannot be fetched or parsed from a URL or file."""

    def __init__(
        self,
        message: str = "Content extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnsafeURLError(ExtractionError):
    """Raised when a URL targets a private, loopback or otherwise blocked host."""

    def __init__(
        self,
        message: str = "URL is not allowed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(ProcessingError):
    """Raised when the embedding model fails or returns a malformed vector."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class CategorizationError(ProcessingError):
    """Raised when the LLM categoriser fails or returns unparseable output."""

    def __init__(
        self,
        message: str = "Link categorization failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(ProcessingError):
    """Raised when an LLM API call fails or returns no usable text."""

    def __init__(
        self,
        message: str = "LLM call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Graph and retrieval errors
# ---------------------------------------------------------------------------

class GraphStoreError(LinkForgeError):
    """Raised when a graph database read or write fails."""

    def __init__(
        self,
        message: str = "Graph store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RetrievalError(LinkForgeError):
    """Raised when a search cannot be answered because a sub-query failed."""

    def __init__(
        self,
        message: str = "Retrieval failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidQueryError(LinkForgeError, ValueError):
    """Raised for malformed search input, before any store is queried."""

    def __init__(
        self,
        message: str = "Invalid query",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
