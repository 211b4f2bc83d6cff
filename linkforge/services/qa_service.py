"""Question answering over the saved links (retrieval-augmented generation).

Takes a natural-language question, finds the saved links and passages
most relevant to it, and asks the LLM to answer from that material only,
citing the links it used.

Design decisions
----------------
- Injects *interfaces* and the retrieval service rather than concrete
  stores, like every other service in the package.
- Chunk search is optional: a graph without the chunk index (or a chunk
  query that fails) degrades to document-level links only, with a
  warning.  The document-level query is required.
- LLM failures propagate as :class:`~linkforge.utils.errors.LLMError`;
  there is no LLM-free fallback answer.

Architecture overview
---------------------
  1. EMBED         -- The question is validated and embedded once.
  2. CHUNK SEARCH  -- The 40 closest chunks are grouped by parent link,
                      keeping the best 3 passages per link.
  3. LINK SEARCH   -- The 20 closest links by document embedding.
  4. MERGE         -- Links with passage evidence first (best passage
                      first), then document-only links, capped at 15.
  5. ENRICH        -- Categories, tags and sharers for the merged links
                      are read from the graph in one query.
  6. SYNTHESIS     -- The context block and the question go to the LLM.
  7. SOURCES       -- The top links are returned beside the answer so a
                      caller can show them even if the model cites none.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from linkforge.interfaces.graph_store import IGraphStore
from linkforge.interfaces.llm_provider import ILLMProvider
from linkforge.models.graph import (
    DEFAULT_CONTENT_TYPE,
    LINK_EMBEDDING_INDEX,
    ChunkHit,
    LinkContext,
)
from linkforge.models.qa import QAAnswer, QASource
from linkforge.services.retrieval_service import RetrievalService, group_passages
from linkforge.utils.errors import (
    InvalidQueryError,
    LinkForgeError,
    RetrievalError,
)
from linkforge.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

_PASSAGE_PREVIEW_CHARS = 300


@dataclass
class _CandidateLink:
    """One link under consideration while the context is assembled."""

    url: str
    title: str
    forge_score: float
    content_type: str
    relevance: float
    passages: list[ChunkHit] = field(default_factory=list)


def _percent(value: float) -> str:
    return f"{value * 100:.0f}%"


def _preview(text: str) -> str:
    if len(text) <= _PASSAGE_PREVIEW_CHARS:
        return text
    return text[:_PASSAGE_PREVIEW_CHARS] + "..."


class QAService:
    """Answers questions from the link graph with an LLM.

    Parameters
    ----------
    retrieval:
        Embeds the question and runs the chunk search.
    graph_store:
        Document-level vector search and link context.
    llm:
        Provider used for the final answer.
    chunk_hits:
        Chunks requested from the chunk index.
    per_link:
        Passages kept per link.
    doc_hits:
        Links requested from the document index.
    max_links:
        Links placed in the prompt.
    max_sources:
        Links returned as sources when the caller does not say.
    """

    _SYSTEM_PROMPT = (
        "You are an advisor for a community of builders, developers and AI "
        "enthusiasts. You have access to the links they have saved and the "
        "passages extracted from them.\n\n"
        "Use the context below to answer the question. Ground your answer in "
        "the actual data and reference specific tools, links and people from it.\n\n"
        "Guidelines:\n"
        "- Be concise, actionable and specific\n"
        "- When recommending tools or approaches, cite the link URL and who shared it\n"
        "- If the data supports a strong answer, be confident. If it is speculative, say so.\n"
        "- If none of the links are relevant, say that plainly instead of guessing\n"
        "- Synthesize and connect the sources rather than listing them"
    )

    def __init__(
        self,
        retrieval: RetrievalService,
        graph_store: IGraphStore,
        llm: ILLMProvider,
        chunk_hits: int = 40,
        per_link: int = 3,
        doc_hits: int = 20,
        max_links: int = 15,
        max_sources: int = 10,
    ) -> None:
        self._retrieval = retrieval
        self._graph = graph_store
        self._llm = llm
        self._chunk_hits = chunk_hits
        self._per_link = per_link
        self._doc_hits = doc_hits
        self._max_links = max_links
        self._max_sources = max_sources

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ask(self, question: str, max_sources: int | None = None) -> QAAnswer:
        """Answer *question* from the saved links.

        Raises
        ------
        InvalidQueryError
            For a blank question or a non-positive *max_sources*.
        RetrievalError
            If the document-level search or the context read fails.
        LLMError
            If the model call fails.
        """
        if not isinstance(question, str) or not question.strip():
            raise InvalidQueryError("question is empty")
        source_limit = self._max_sources if max_sources is None else max_sources
        if isinstance(source_limit, bool) or not isinstance(source_limit, int) or source_limit <= 0:
            raise InvalidQueryError(
                f"max_sources must be a positive integer, got {source_limit!r}"
            )
        text = question.strip()

        embedding = await self._retrieval.embed_query(text)
        chunk_links = await self._chunk_candidates(embedding)
        doc_links = await self._doc_candidates(embedding)
        candidates = self._merge(chunk_links, doc_links)
        contexts = await self._link_context([c.url for c in candidates])

        prompt = self._build_prompt(text, candidates, contexts)
        logger.info(
            "qa_context_built",
            chunk_links=len(chunk_links),
            doc_links=len(doc_links),
            links=len(candidates),
            provider=self._llm.get_provider_name(),
        )
        answer = await self._llm.complete(
            system_prompt=self._SYSTEM_PROMPT,
            user_prompt=prompt,
            temperature=0.3,
            max_tokens=2000,
        )

        sources = [
            self._source(candidate, contexts.get(candidate.url))
            for candidate in candidates[:source_limit]
        ]
        passages_used = sum(len(c.passages) for c in candidates)
        logger.info(
            "qa_answered",
            question=text,
            sources=len(sources),
            passages=passages_used,
            answer_length=len(answer),
        )
        return QAAnswer(
            question=text,
            answer=answer.strip(),
            sources=sources,
            links_considered=len(candidates),
            passages_used=passages_used,
        )

    # ------------------------------------------------------------------
    # Retrieval steps
    # ------------------------------------------------------------------

    async def _chunk_candidates(self, embedding: list[float]) -> list[_CandidateLink]:
        try:
            hits = await self._retrieval.chunk_search(embedding, self._chunk_hits)
        except RetrievalError as exc:
            # Graphs built before chunking have no chunk index.
            logger.warning("qa_chunk_search_unavailable", error=exc.message)
            return []
        return [
            _CandidateLink(
                url=group.url,
                title=group.title,
                forge_score=group.forge_score,
                content_type=group.content_type,
                relevance=group.best_score,
                passages=list(group.passages),
            )
            for group in group_passages(hits, per_link=self._per_link)
        ]

    async def _doc_candidates(self, embedding: list[float]) -> list[_CandidateLink]:
        try:
            hits = await self._graph.vector_search(
                embedding, self._doc_hits, LINK_EMBEDDING_INDEX
            )
        except LinkForgeError as exc:
            logger.error("qa_link_search_failed", error=exc.message)
            raise RetrievalError(
                message=f"Link search failed: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc
        return [
            _CandidateLink(
                url=hit.link.url,
                title=hit.link.title,
                forge_score=hit.link.forge_score or 0.0,
                content_type=hit.link.content_type or DEFAULT_CONTENT_TYPE,
                relevance=hit.score,
            )
            for hit in sorted(hits, key=lambda h: h.score, reverse=True)
        ]

    def _merge(
        self, chunk_links: list[_CandidateLink], doc_links: list[_CandidateLink]
    ) -> list[_CandidateLink]:
        merged: dict[str, _CandidateLink] = {}
        for candidate in [*chunk_links, *doc_links]:
            merged.setdefault(candidate.url, candidate)
        return list(merged.values())[: self._max_links]

    async def _link_context(self, urls: list[str]) -> dict[str, LinkContext]:
        if not urls:
            return {}
        try:
            return await self._graph.link_context(urls)
        except LinkForgeError as exc:
            logger.error("qa_link_context_failed", error=exc.message)
            raise RetrievalError(
                message=f"Link context read failed: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc

    # ------------------------------------------------------------------
    # Prompt and result assembly
    # ------------------------------------------------------------------

    def _build_prompt(
        self,
        question: str,
        candidates: list[_CandidateLink],
        contexts: dict[str, LinkContext],
    ) -> str:
        lines = ["## Most Relevant Links (by semantic similarity to question)"]
        if not candidates:
            lines.append("\nNo saved links matched this question.")
        for candidate in candidates:
            context = contexts.get(candidate.url)
            title = candidate.title or (context.title if context else "") or candidate.url
            lines.append(f"\n### {title}")
            lines.append(f"URL: {candidate.url}")
            lines.append(
                f"Forge Score: {candidate.forge_score:.2f} | Type: {candidate.content_type} "
                f"| Relevance: {_percent(candidate.relevance)}"
            )
            if context is not None:
                if context.description:
                    lines.append(f"Summary: {context.description}")
                if context.purpose:
                    lines.append(f"Purpose: {context.purpose}")
                if context.categories:
                    lines.append(f"Categories: {', '.join(context.categories)}")
                if context.tags:
                    lines.append(f"Tags: {', '.join(context.tags)}")
                if context.shared_by:
                    lines.append(f"Shared by: {', '.join(context.shared_by)}")
            if candidate.passages:
                lines.append("**Key Passages:**")
                for passage in candidate.passages:
                    lines.append(
                        f'> "{_preview(passage.chunk_text)}" '
                        f"(relevance: {_percent(passage.score)})"
                    )
        lines.append(f"\n## Question\n{question}")
        return "\n".join(lines)

    @staticmethod
    def _source(candidate: _CandidateLink, context: LinkContext | None) -> QASource:
        category = context.categories[0] if context and context.categories else None
        return QASource(
            url=candidate.url,
            title=candidate.title or (context.title if context else ""),
            forge_score=candidate.forge_score,
            relevance=candidate.relevance,
            content_type=candidate.content_type,
            category=category,
        )
