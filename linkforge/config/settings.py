"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from two sources, highest priority first:
#
#   1. Environment variables, e.g. NEO4J_PASSWORD=secret
#   2. A .env file in the working directory (local development)
#
# Field ``queue_lease_seconds`` maps to env var ``QUEUE_LEASE_SECONDS``.
# Defaults apply when neither source sets a value.
#
# Services never read this object directly.  The composition root in
# ``linkforge/main.py`` (and the CLI builders) turn the relevant fields
# into explicit values such as ``QueueConfig`` and ``RankingWeights`` and
# pass them to constructors.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """LinkForge settings.

    Environment variables override defaults.  Loaded from .env when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Ingestion Queue ===
    queue_db_path: str = "data/queue.db"
    queue_max_attempts: int = Field(default=3, ge=1)
    queue_lease_seconds: float = Field(default=300.0, gt=0)
    queue_reclaim_interval_seconds: float = Field(default=60.0, gt=0)
    # When True, a reclaimed job counts as a failed attempt and is
    # dead-lettered once it has used up max_attempts.
    queue_reclaim_counts_as_failure: bool = False
    queue_busy_timeout_seconds: float = 10.0

    # === Graph Store (Neo4j) ===
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = "link_forge_dev"
    neo4j_database: str = "neo4j"
    neo4j_setup_schema_on_start: bool = True

    # === Embeddings ===
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimension: int = 384

    # === Retrieval ===
    search_default_limit: int = Field(default=10, ge=1)
    search_relevance_weight: float = 0.7
    search_forge_weight: float = 0.3
    chunk_search_limit: int = Field(default=40, ge=1)

    # === Processing ===
    worker_count: int = Field(default=1, ge=1)
    worker_poll_interval_seconds: float = 5.0
    scrape_timeout_seconds: float = 15.0
    chunk_size: int = 500
    chunk_overlap: int = 50
    max_stored_content_url: int = 5000
    max_stored_content_file: int = 10000
    upload_dir: str = "data/uploads"
    # Outbound links found on pages from these domains are queued as
    # children.  Comma-separated; empty follows links from every domain.
    link_discovery_enabled: bool = True
    link_discovery_domains: str = "x.com,twitter.com"
    max_discovered_links: int = Field(default=25, ge=0)

    # === Categorisation (LLM) ===
    # Empty keys mean "not configured"; the builder skips that provider.
    categorization_enabled: bool = False
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5"
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.1"

    # === Question Answering (LLM) ===
    # Uses the same provider as categorisation.
    qa_enabled: bool = False
    qa_max_links: int = Field(default=15, ge=1)
    qa_max_sources: int = Field(default=10, ge=1)

    # === Application ===
    app_host: str = "0.0.0.0"  # noqa: S104
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
