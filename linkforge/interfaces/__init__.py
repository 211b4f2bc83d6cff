"""Public interface definitions for LinkForge's external services.

Business logic talks to storage, models and the web only through these
abstract base classes.  Concrete adapters live in ``linkforge/providers/``
and are wired together in ``linkforge/main.py`` (and the CLI builders).
Tests inject fakes or mocks in their place.

    Interface            →  Concrete implementation
    ─────────────────────────────────────────────────────────────
    IQueueStore          →  SQLiteQueueStore
    IGraphStore          →  Neo4jGraphStore
    IEmbeddingProvider   →  SentenceTransformerEmbeddingProvider
    IContentExtractor    →  WebScraperExtractor, FileExtractor
    ILLMProvider         →  AnthropicLLMProvider, OllamaLLMProvider
"""

from linkforge.interfaces.content_extractor import IContentExtractor
from linkforge.interfaces.embedding_provider import IEmbeddingProvider
from linkforge.interfaces.graph_store import IGraphStore
from linkforge.interfaces.llm_provider import ILLMProvider
from linkforge.interfaces.queue_store import IQueueStore

__all__ = [
    "IContentExtractor",
    "IEmbeddingProvider",
    "IGraphStore",
    "ILLMProvider",
    "IQueueStore",
]
