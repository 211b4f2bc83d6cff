"""LinkForge domain models, re-exported for convenience.

    - queue.py    -- Job lifecycle states, payloads, jobs, stats, queue policy
    - graph.py    -- Link and chunk nodes, raw sub-query hits, search results
    - content.py  -- Extracted and chunked content, LLM categorisation
    - qa.py       -- Answers to questions and the links they cite
"""

from __future__ import annotations

from linkforge.models.content import (
    ExtractedContent,
    LinkCategorization,
    ProcessedContent,
    TextChunk,
)
from linkforge.models.graph import (
    ChunkHit,
    ChunkNode,
    KeywordHit,
    LinkContext,
    LinkNode,
    LinkPassages,
    MatchType,
    SearchResult,
    VectorHit,
)
from linkforge.models.qa import QAAnswer, QASource
from linkforge.models.queue import (
    JobState,
    PayloadKind,
    QueueConfig,
    QueueJob,
    QueuePayload,
    QueueStats,
)

__all__ = [
    "ChunkHit",
    "ChunkNode",
    "ExtractedContent",
    "JobState",
    "KeywordHit",
    "LinkContext",
    "LinkCategorization",
    "LinkNode",
    "LinkPassages",
    "MatchType",
    "PayloadKind",
    "ProcessedContent",
    "QAAnswer",
    "QASource",
    "QueueConfig",
    "QueueJob",
    "QueuePayload",
    "QueueStats",
    "SearchResult",
    "TextChunk",
    "VectorHit",
]
