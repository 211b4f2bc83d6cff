"""LinkForge FastAPI application entry point and composition root.

Wires providers and services together via constructor injection.  The
builders here are shared with the CLI tools, which need the same queue,
graph store and embedding model as the web app (the embedding dimension
must match the vector indexes already in Neo4j).

Run the API with ``python -m linkforge.main`` or
``uvicorn linkforge.main:app``.
"""

from __future__ import annotations

import os
import socket
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from linkforge.api.middleware import ErrorHandlingMiddleware, RequestLoggingMiddleware
from linkforge.api.routes import router as api_router
from linkforge.config import settings
from linkforge.config.settings import Settings
from linkforge.interfaces.llm_provider import ILLMProvider
from linkforge.models.queue import QueueConfig
from linkforge.providers.content.file_extractor import FileExtractor
from linkforge.providers.content.web_scraper_extractor import WebScraperExtractor
from linkforge.providers.embedding.sentence_transformer_embedding_provider import (
    SentenceTransformerEmbeddingProvider,
)
from linkforge.providers.graph.neo4j_graph_store import Neo4jGraphStore
from linkforge.providers.llm.anthropic_provider import AnthropicLLMProvider
from linkforge.providers.llm.ollama_provider import OllamaLLMProvider
from linkforge.providers.queue.sqlite_queue_store import SQLiteQueueStore
from linkforge.services.categorizer import LinkCategorizer
from linkforge.services.chunker import TextChunker
from linkforge.services.content_processor import ContentProcessor
from linkforge.services.ingestion_queue import IngestionQueue
from linkforge.services.qa_service import QAService
from linkforge.services.retrieval_service import RankingWeights, RetrievalService
from linkforge.services.worker import IngestionWorker
from linkforge.utils.errors import ConfigurationError, GraphStoreError
from linkforge.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def build_llm_provider(app_settings: Settings) -> ILLMProvider | None:
    """Select the LLM shared by categorisation and question answering.

    Returns ``None`` when neither feature is enabled.  Priority: Anthropic
    (if an API key is set) -> local Ollama.
    """
    if not (app_settings.categorization_enabled or app_settings.qa_enabled):
        return None
    if app_settings.anthropic_api_key:
        return AnthropicLLMProvider(
            api_key=app_settings.anthropic_api_key,
            model=app_settings.anthropic_model,
        )
    return OllamaLLMProvider(
        base_url=app_settings.ollama_base_url,
        model=app_settings.ollama_model,
    )


def build_queue(app_settings: Settings) -> IngestionQueue:
    """Build the ingestion queue.  The store still needs ``initialize()``."""
    store = SQLiteQueueStore(
        db_path=app_settings.queue_db_path,
        busy_timeout=app_settings.queue_busy_timeout_seconds,
    )
    config = QueueConfig(
        max_attempts=app_settings.queue_max_attempts,
        lease_seconds=app_settings.queue_lease_seconds,
        reclaim_counts_as_failure=app_settings.queue_reclaim_counts_as_failure,
    )
    return IngestionQueue(store, config)


def build_components(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components, stored on ``app.state`` by
    the lifespan and used directly by the CLI.
    """
    embedder = SentenceTransformerEmbeddingProvider(
        model_name=app_settings.embedding_model,
        dimension=app_settings.embedding_dimension,
    )
    if embedder.get_dimension() != app_settings.embedding_dimension:
        raise ConfigurationError(
            message=(
                f"Embedding model {app_settings.embedding_model!r} produces "
                f"{embedder.get_dimension()}-d vectors, but EMBEDDING_DIMENSION is "
                f"{app_settings.embedding_dimension}"
            ),
            provider_name=embedder.get_provider_name(),
        )

    graph_store = Neo4jGraphStore.from_credentials(
        uri=app_settings.neo4j_uri,
        user=app_settings.neo4j_user,
        password=app_settings.neo4j_password,
        database=app_settings.neo4j_database,
        dimension=app_settings.embedding_dimension,
    )
    queue = build_queue(app_settings)

    retrieval = RetrievalService(
        graph_store,
        embedding_provider=embedder,
        weights=RankingWeights(
            relevance=app_settings.search_relevance_weight,
            forge=app_settings.search_forge_weight,
        ),
        dimension=app_settings.embedding_dimension,
        default_limit=app_settings.search_default_limit,
        chunk_search_limit=app_settings.chunk_search_limit,
    )

    processor = ContentProcessor(
        extractors=[
            WebScraperExtractor(timeout=app_settings.scrape_timeout_seconds),
            FileExtractor(),
        ],
        chunker=TextChunker(
            chunk_size=app_settings.chunk_size,
            overlap=app_settings.chunk_overlap,
        ),
    )

    llm = build_llm_provider(app_settings)
    categorizer = (
        LinkCategorizer(llm)
        if llm is not None and app_settings.categorization_enabled
        else None
    )
    qa_service = (
        QAService(
            retrieval,
            graph_store,
            llm,
            chunk_hits=app_settings.chunk_search_limit,
            max_links=app_settings.qa_max_links,
            max_sources=app_settings.qa_max_sources,
        )
        if llm is not None and app_settings.qa_enabled
        else None
    )

    provider_registry: dict[str, Any] = {
        "queue": queue.config.model_dump(),
        "embedding": embedder.get_provider_name(),
        "graph": graph_store.get_provider_name(),
        "llm": llm.get_provider_name() if llm is not None else None,
    }

    return {
        "embedding_provider": embedder,
        "graph_store": graph_store,
        "ingestion_queue": queue,
        "retrieval_service": retrieval,
        "content_processor": processor,
        "categorizer": categorizer,
        "qa_service": qa_service,
        "provider_registry": provider_registry,
    }


def discovery_domains(app_settings: Settings) -> frozenset[str]:
    """Parse ``LINK_DISCOVERY_DOMAINS``; an empty value means every domain."""
    return frozenset(
        domain.strip().lower()
        for domain in app_settings.link_discovery_domains.split(",")
        if domain.strip()
    )


def build_workers(components: dict[str, Any], app_settings: Settings) -> list[IngestionWorker]:
    """Create ``worker_count`` workers sharing the components' queue and stores."""
    return [
        IngestionWorker(
            queue=components["ingestion_queue"],
            processor=components["content_processor"],
            embedder=components["embedding_provider"],
            graph_store=components["graph_store"],
            categorizer=components["categorizer"],
            worker_id=f"{socket.gethostname()}-{os.getpid()}-{index}",
            poll_interval=app_settings.worker_poll_interval_seconds,
            lease_duration=timedelta(seconds=app_settings.queue_lease_seconds),
            max_content_url=app_settings.max_stored_content_url,
            max_content_file=app_settings.max_stored_content_file,
            discover_links=app_settings.link_discovery_enabled,
            discovery_domains=discovery_domains(app_settings),
            max_discovered_links=app_settings.max_discovered_links,
        )
        for index in range(app_settings.worker_count)
    ]


async def initialize_components(components: dict[str, Any], app_settings: Settings) -> None:
    """Create the queue table and, if configured, the Neo4j schema.

    A graph that is down at startup is logged, not fatal: the queue keeps
    accepting links and the health check reports the graph as unavailable.
    """
    await components["ingestion_queue"].initialize()
    if app_settings.neo4j_setup_schema_on_start:
        try:
            await components["graph_store"].ensure_schema(app_settings.embedding_dimension)
        except GraphStoreError as exc:
            _logger.warning("graph_schema_setup_failed", error=str(exc))


async def close_components(components: dict[str, Any]) -> None:
    await components["content_processor"].close()
    await components["graph_store"].close()


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = build_components(settings)
    for key, value in components.items():
        setattr(application.state, key, value)

    await initialize_components(components, settings)
    _logger.info(
        "app_startup",
        version=_VERSION,
        environment=settings.app_env,
        llm=components["provider_registry"]["llm"],
    )

    yield

    await close_components(components)
    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    configure_logging(
        log_level=settings.log_level,
        json_output=(settings.app_env == "production"),
    )
    application = FastAPI(
        title="LinkForge API",
        version=_VERSION,
        description=(
            "Queue links and documents for ingestion into a Neo4j knowledge "
            "graph, then search them with hybrid vector and keyword retrieval."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)

    application.include_router(api_router)
    return application


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "linkforge.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
