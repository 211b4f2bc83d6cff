"""Unit tests for SentenceTransformerEmbeddingProvider with an injected fake model."""

from __future__ import annotations

import pytest

from linkforge.providers.embedding.sentence_transformer_embedding_provider import (
    SentenceTransformerEmbeddingProvider,
)
from linkforge.utils.errors import EmbeddingError


class _FakeModel:
    """Mimics ``SentenceTransformer.encode``: one row per input text."""

    def __init__(self, dimension: int = 384, rows_delta: int = 0) -> None:
        self.dimension = dimension
        self.rows_delta = rows_delta
        self.batches: list[list[str]] = []
        self.kwargs: list[dict] = []

    def encode(self, texts, **kwargs):
        self.batches.append(list(texts))
        self.kwargs.append(kwargs)
        rows = [[float(len(t) % 7)] * self.dimension for t in texts]
        if self.rows_delta < 0:
            rows = rows[: self.rows_delta]
        return rows


class _BrokenModel:
    def encode(self, texts, **kwargs):
        raise RuntimeError("CUDA out of memory")


class TestEmbed:
    @pytest.mark.asyncio
    async def test_embed_single_text(self) -> None:
        model = _FakeModel()
        provider = SentenceTransformerEmbeddingProvider(model=model)

        vector = await provider.embed("hello")

        assert len(vector) == 384
        assert all(isinstance(v, float) for v in vector)
        assert model.kwargs[0] == {"normalize_embeddings": True, "show_progress_bar": False}

    @pytest.mark.asyncio
    async def test_batches_of_at_most_64(self) -> None:
        model = _FakeModel()
        provider = SentenceTransformerEmbeddingProvider(model=model)

        vectors = await provider.embed_batch([f"text {i}" for i in range(150)])

        assert len(vectors) == 150
        assert [len(batch) for batch in model.batches] == [64, 64, 22]

    @pytest.mark.asyncio
    async def test_long_inputs_are_trimmed(self) -> None:
        model = _FakeModel()
        await SentenceTransformerEmbeddingProvider(model=model).embed("x" * 10_000)
        assert len(model.batches[0][0]) == 2000

    @pytest.mark.asyncio
    async def test_empty_batch_skips_model(self) -> None:
        model = _FakeModel()
        assert await SentenceTransformerEmbeddingProvider(model=model).embed_batch([]) == []
        assert model.batches == []


class TestErrors:
    @pytest.mark.asyncio
    async def test_wrong_dimension(self) -> None:
        provider = SentenceTransformerEmbeddingProvider(model=_FakeModel(dimension=768))
        with pytest.raises(EmbeddingError, match="dimension 768"):
            await provider.embed("hello")

    @pytest.mark.asyncio
    async def test_wrong_row_count(self) -> None:
        provider = SentenceTransformerEmbeddingProvider(model=_FakeModel(rows_delta=-1))
        with pytest.raises(EmbeddingError, match="vectors for"):
            await provider.embed_batch(["a", "b"])

    @pytest.mark.asyncio
    async def test_model_failure_is_wrapped(self) -> None:
        provider = SentenceTransformerEmbeddingProvider(model=_BrokenModel())
        with pytest.raises(EmbeddingError, match="CUDA out of memory"):
            await provider.embed("hello")


class TestMetadata:
    def test_default_model(self) -> None:
        provider = SentenceTransformerEmbeddingProvider(model=_FakeModel())
        assert provider.get_dimension() == 384
        assert provider.get_provider_name() == "sentence_transformer_all-MiniLM-L6-v2"
        assert provider.is_available() is True

    def test_explicit_dimension(self) -> None:
        provider = SentenceTransformerEmbeddingProvider(model_name="custom/model", dimension=512)
        assert provider.get_dimension() == 512
        assert provider.get_provider_name() == "sentence_transformer_model"
