"""Shared pytest fixtures for the LinkForge test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from linkforge.interfaces.embedding_provider import IEmbeddingProvider
from linkforge.interfaces.graph_store import IGraphStore
from linkforge.interfaces.llm_provider import ILLMProvider
from linkforge.models.graph import EMBEDDING_DIMENSION
from linkforge.models.queue import QueueConfig
from linkforge.providers.queue.sqlite_queue_store import SQLiteQueueStore
from linkforge.services.ingestion_queue import IngestionQueue

# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """A controllable UTC clock.  Call it to read, ``advance`` to move it."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------


@pytest.fixture
def queue_db_path(tmp_path: Path) -> Path:
    return tmp_path / "queue.db"


@pytest.fixture
async def queue_store(queue_db_path: Path) -> SQLiteQueueStore:
    """A SQLiteQueueStore on a fresh temporary database."""
    store = SQLiteQueueStore(db_path=queue_db_path)
    await store.initialize()
    return store


@pytest.fixture
def queue_config() -> QueueConfig:
    return QueueConfig(max_attempts=3, lease_seconds=60)


@pytest.fixture
def ingestion_queue(
    queue_store: SQLiteQueueStore, queue_config: QueueConfig, clock: FakeClock
) -> IngestionQueue:
    return IngestionQueue(queue_store, queue_config, clock=clock)


# ---------------------------------------------------------------------------
# Provider mocks
# ---------------------------------------------------------------------------


def unit_vector(position: int = 0, dimension: int = EMBEDDING_DIMENSION) -> list[float]:
    vector = [0.0] * dimension
    vector[position % dimension] = 1.0
    return vector


@pytest.fixture
def mock_embedder() -> MagicMock:
    """An embedding provider returning fixed 384-d vectors."""
    embedder = MagicMock(spec=IEmbeddingProvider)
    embedder.embed = AsyncMock(return_value=unit_vector(0))
    embedder.embed_batch = AsyncMock(
        side_effect=lambda texts: [unit_vector(i + 1) for i in range(len(texts))]
    )
    embedder.get_dimension.return_value = EMBEDDING_DIMENSION
    embedder.get_provider_name.return_value = "fake_embedder"
    embedder.is_available.return_value = True
    return embedder


@pytest.fixture
def mock_graph_store() -> MagicMock:
    """A graph store whose async methods all succeed and return nothing."""
    store = MagicMock(spec=IGraphStore)
    store.vector_search = AsyncMock(return_value=[])
    store.keyword_search = AsyncMock(return_value=[])
    store.chunk_vector_search = AsyncMock(return_value=[])
    store.link_exists = AsyncMock(return_value=False)
    store.link_context = AsyncMock(return_value={})
    store.count_links = AsyncMock(return_value=0)
    store.ensure_schema = AsyncMock()
    store.upsert_link = AsyncMock()
    store.upsert_chunks = AsyncMock()
    store.categorize_link = AsyncMock()
    store.tag_link = AsyncMock()
    store.link_to = AsyncMock()
    store.link_shared_by = AsyncMock()
    store.close = AsyncMock()
    store.get_provider_name.return_value = "fake_graph"
    return store


@pytest.fixture
def mock_llm() -> MagicMock:
    llm = MagicMock(spec=ILLMProvider)
    llm.complete = AsyncMock(return_value="{}")
    llm.get_provider_name.return_value = "fake_llm"
    llm.is_available.return_value = True
    return llm
