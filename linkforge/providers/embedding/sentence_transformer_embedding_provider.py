"""Local sentence-transformers embedding provider.

Default model: ``sentence-transformers/all-MiniLM-L6-v2`` (384 dimensions),
the model both Neo4j vector indexes are built for.  Runs on CPU with no
API key.  Encoding is CPU-bound, so it runs in a worker thread to keep the
event loop (and other ingestion workers) responsive.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from linkforge.interfaces.embedding_provider import IEmbeddingProvider
from linkforge.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

_MODEL_DIMENSIONS: dict[str, int] = {
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "all-MiniLM-L6-v2": 384,
    "sentence-transformers/all-MiniLM-L12-v2": 384,
    "BAAI/bge-small-en-v1.5": 384,
}

_DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
_BATCH_LIMIT = 64
# MiniLM truncates at 256 word pieces; longer input only costs tokenizer time.
_MAX_INPUT_CHARS = 2000


class SentenceTransformerEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by a local sentence-transformers model.

    The model is loaded on first use.  Pass *model* to inject a preloaded
    (or fake) encoder exposing ``encode(texts, normalize_embeddings=...,
    show_progress_bar=...)``.
    """

    def __init__(
        self,
        model_name: str | None = None,
        dimension: int | None = None,
        model: Any | None = None,
    ) -> None:
        self._model_name = model_name or _DEFAULT_MODEL
        # Known models report their own size; *dimension* covers the rest.
        self._dimension = _MODEL_DIMENSIONS.get(self._model_name, dimension or 384)
        self._model = model

    def _load_model(self) -> Any:
        if self._model is not None:
            return self._model
        try:
            from sentence_transformers import SentenceTransformer

            logger.info("loading_sentence_transformer", model=self._model_name)
            self._model = SentenceTransformer(self._model_name)
            logger.info(
                "sentence_transformer_loaded",
                model=self._model_name,
                dimension=self._dimension,
            )
        except Exception as exc:
            raise EmbeddingError(
                message=f"Failed to load sentence-transformers model '{self._model_name}': {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return self._model

    def _encode(self, texts: list[str]) -> list[list[float]]:
        model = self._load_model()
        vectors: list[list[float]] = []
        for start in range(0, len(texts), _BATCH_LIMIT):
            batch = [t[:_MAX_INPUT_CHARS] for t in texts[start : start + _BATCH_LIMIT]]
            encoded = model.encode(batch, normalize_embeddings=True, show_progress_bar=False)
            vectors.extend([float(x) for x in row] for row in encoded)
        return vectors

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in order, in batches of at most 64."""
        if not texts:
            return []
        try:
            vectors = await asyncio.to_thread(self._encode, list(texts))
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(
                message=f"Sentence-transformers embedding error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if len(vectors) != len(texts):
            raise EmbeddingError(
                message=f"Model returned {len(vectors)} vectors for {len(texts)} texts",
                provider_name=self.get_provider_name(),
            )
        for vector in vectors:
            if len(vector) != self._dimension:
                raise EmbeddingError(
                    message=f"Model returned dimension {len(vector)}, expected {self._dimension}",
                    provider_name=self.get_provider_name(),
                )
        logger.debug("embedding_batch_complete", model=self._model_name, count=len(vectors))
        return vectors

    async def embed(self, text: str) -> list[float]:
        result = await self.embed_batch([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return f"sentence_transformer_{self._model_name.split('/')[-1]}"

    def is_available(self) -> bool:
        """Return ``True`` if sentence-transformers is installed."""
        if self._model is not None:
            return True
        try:
            import sentence_transformers  # noqa: F401
        except ImportError:
            return False
        return True
