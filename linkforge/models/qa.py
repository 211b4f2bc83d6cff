"""Question-answering models: the sources behind an answer and the answer itself."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from linkforge.models.graph import DEFAULT_CONTENT_TYPE


class QASource(BaseModel):
    """A saved link the answer was allowed to draw on."""

    model_config = ConfigDict(frozen=True)

    url: str
    title: str = ""
    forge_score: float = 0.0
    relevance: float = Field(description="Best similarity of the link or its passages.")
    content_type: str = DEFAULT_CONTENT_TYPE
    category: str | None = None


class QAAnswer(BaseModel):
    """An LLM answer grounded in retrieved links."""

    model_config = ConfigDict(frozen=True)

    question: str
    answer: str
    sources: list[QASource] = Field(default_factory=list)
    links_considered: int = Field(default=0, ge=0)
    passages_used: int = Field(default=0, ge=0)
