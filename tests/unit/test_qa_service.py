"""Unit tests for question answering over the saved links."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from linkforge.models.graph import LINK_EMBEDDING_INDEX, ChunkHit, LinkContext, LinkNode, VectorHit
from linkforge.services.qa_service import QAService
from linkforge.services.retrieval_service import RetrievalService
from linkforge.utils.errors import GraphStoreError, InvalidQueryError, LLMError, RetrievalError

_A = "https://a.dev/guide"
_B = "https://b.dev/tool"
_C = "https://c.dev/post"


def _chunk(url: str, index: int, score: float, text: str | None = None) -> ChunkHit:
    return ChunkHit(
        chunk_text=text or f"passage {index} of {url}",
        chunk_index=index,
        score=score,
        link_url=url,
        link_title=f"title {url.rsplit('/', 1)[-1]}",
        forge_score=0.7,
        content_type="tutorial",
    )


def _vector_hit(url: str, score: float, forge_score: float | None = None) -> VectorHit:
    return VectorHit(link=LinkNode(url=url, title=f"doc {url}", forge_score=forge_score), score=score)


@pytest.fixture
def qa_service(mock_graph_store: MagicMock, mock_embedder: MagicMock, mock_llm: MagicMock) -> QAService:
    mock_llm.complete.return_value = "  Start with the guide at https://a.dev/guide.  "
    retrieval = RetrievalService(mock_graph_store, embedding_provider=mock_embedder)
    return QAService(retrieval, mock_graph_store, mock_llm)


def _user_prompt(mock_llm: MagicMock) -> str:
    return mock_llm.complete.await_args.kwargs["user_prompt"]


# ─── Answer assembly ──────────────────────────────────────────────────


class TestAsk:
    @pytest.mark.asyncio
    async def test_answer_is_grounded_in_merged_links(
        self, qa_service: QAService, mock_graph_store: MagicMock, mock_llm: MagicMock
    ) -> None:
        mock_graph_store.chunk_vector_search.return_value = [
            _chunk(_A, 0, 0.9),
            _chunk(_B, 2, 0.6),
            _chunk(_A, 3, 0.8),
        ]
        mock_graph_store.vector_search.return_value = [
            _vector_hit(_C, 0.55, forge_score=0.4),
            _vector_hit(_B, 0.7),
        ]
        mock_graph_store.link_context.return_value = {
            _A: LinkContext(
                url=_A,
                description="A step-by-step agent guide",
                purpose="Shows how to build agents",
                categories=["Tutorials"],
                tags=["agents"],
                shared_by=["ada"],
            ),
        }

        answer = await qa_service.ask("  how do I build an agent?  ")

        assert answer.question == "how do I build an agent?"
        assert answer.answer == "Start with the guide at https://a.dev/guide."
        assert [s.url for s in answer.sources] == [_A, _B, _C]
        assert answer.links_considered == 3
        assert answer.passages_used == 3
        assert answer.sources[0].category == "Tutorials"
        assert answer.sources[0].relevance == pytest.approx(0.9)
        assert answer.sources[2].forge_score == pytest.approx(0.4)
        assert answer.sources[2].category is None

        mock_graph_store.vector_search.assert_awaited_once()
        assert mock_graph_store.vector_search.await_args.args[1:] == (20, LINK_EMBEDDING_INDEX)
        mock_graph_store.link_context.assert_awaited_once_with([_A, _B, _C])

        kwargs = mock_llm.complete.await_args.kwargs
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 2000
        assert "cite the link URL" in kwargs["system_prompt"]

    @pytest.mark.asyncio
    async def test_prompt_lists_links_passages_and_question(
        self, qa_service: QAService, mock_graph_store: MagicMock, mock_llm: MagicMock
    ) -> None:
        mock_graph_store.chunk_vector_search.return_value = [_chunk(_A, 0, 0.9)]
        mock_graph_store.link_context.return_value = {
            _A: LinkContext(url=_A, description="Agent guide", categories=["Tutorials"], shared_by=["ada"]),
        }

        await qa_service.ask("agents?")

        prompt = _user_prompt(mock_llm)
        assert prompt.startswith("## Most Relevant Links (by semantic similarity to question)")
        assert "### title guide" in prompt
        assert f"URL: {_A}" in prompt
        assert "Forge Score: 0.70 | Type: tutorial | Relevance: 90%" in prompt
        assert "Summary: Agent guide" in prompt
        assert "Categories: Tutorials" in prompt
        assert "Shared by: ada" in prompt
        assert f'> "passage 0 of {_A}" (relevance: 90%)' in prompt
        assert prompt.endswith("## Question\nagents?")

    @pytest.mark.asyncio
    async def test_long_passages_are_trimmed(
        self, qa_service: QAService, mock_graph_store: MagicMock, mock_llm: MagicMock
    ) -> None:
        mock_graph_store.chunk_vector_search.return_value = [_chunk(_A, 0, 0.9, text="x" * 500)]

        await qa_service.ask("agents?")

        assert f'> "{"x" * 300}..." (relevance: 90%)' in _user_prompt(mock_llm)

    @pytest.mark.asyncio
    async def test_links_and_sources_are_capped(
        self, mock_graph_store: MagicMock, mock_embedder: MagicMock, mock_llm: MagicMock
    ) -> None:
        mock_graph_store.vector_search.return_value = [
            _vector_hit(f"https://d{i}.dev/", 0.9 - i / 100) for i in range(6)
        ]
        service = QAService(
            RetrievalService(mock_graph_store, embedding_provider=mock_embedder),
            mock_graph_store,
            mock_llm,
            max_links=4,
            max_sources=2,
        )

        answer = await service.ask("anything")
        narrower = await service.ask("anything", max_sources=1)

        assert answer.links_considered == 4
        assert [s.url for s in answer.sources] == ["https://d0.dev/", "https://d1.dev/"]
        assert len(narrower.sources) == 1
        assert "https://d4.dev/" not in _user_prompt(mock_llm)

    @pytest.mark.asyncio
    async def test_no_matches_still_asks_the_model(
        self, qa_service: QAService, mock_graph_store: MagicMock, mock_llm: MagicMock
    ) -> None:
        answer = await qa_service.ask("anything at all?")

        assert answer.sources == []
        assert answer.links_considered == 0
        assert "No saved links matched this question." in _user_prompt(mock_llm)
        mock_graph_store.link_context.assert_not_awaited()


# ─── Failures ─────────────────────────────────────────────────────────


class TestAskFailures:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("question", ["", "   ", None])
    async def test_blank_question_is_rejected_before_embedding(
        self, qa_service: QAService, mock_embedder: MagicMock, question
    ) -> None:
        with pytest.raises(InvalidQueryError):
            await qa_service.ask(question)
        mock_embedder.embed.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_sources", [0, -1])
    async def test_non_positive_source_limit_is_rejected(
        self, qa_service: QAService, mock_embedder: MagicMock, max_sources: int
    ) -> None:
        with pytest.raises(InvalidQueryError, match="max_sources"):
            await qa_service.ask("agents?", max_sources=max_sources)
        mock_embedder.embed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_chunk_index_falls_back_to_links(
        self, qa_service: QAService, mock_graph_store: MagicMock
    ) -> None:
        mock_graph_store.chunk_vector_search.side_effect = GraphStoreError("no such index", "neo4j")
        mock_graph_store.vector_search.return_value = [_vector_hit(_B, 0.7)]

        answer = await qa_service.ask("agents?")

        assert [s.url for s in answer.sources] == [_B]
        assert answer.passages_used == 0

    @pytest.mark.asyncio
    async def test_link_search_failure_is_a_retrieval_error(
        self, qa_service: QAService, mock_graph_store: MagicMock, mock_llm: MagicMock
    ) -> None:
        mock_graph_store.vector_search.side_effect = GraphStoreError("down", "neo4j")

        with pytest.raises(RetrievalError) as excinfo:
            await qa_service.ask("agents?")

        assert excinfo.value.provider_name == "neo4j"
        mock_llm.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_context_read_failure_is_a_retrieval_error(
        self, qa_service: QAService, mock_graph_store: MagicMock
    ) -> None:
        mock_graph_store.vector_search.return_value = [_vector_hit(_B, 0.7)]
        mock_graph_store.link_context.side_effect = GraphStoreError("timeout", "neo4j")

        with pytest.raises(RetrievalError, match="Link context"):
            await qa_service.ask("agents?")

    @pytest.mark.asyncio
    async def test_llm_errors_propagate(self, qa_service: QAService, mock_llm: MagicMock) -> None:
        mock_llm.complete.side_effect = LLMError("overloaded", "anthropic")

        with pytest.raises(LLMError):
            await qa_service.ask("agents?")
