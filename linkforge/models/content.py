"""Models produced by content extraction, chunking and categorisation."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class TextChunk(BaseModel):
    """One chunk of extracted text, in document order."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    text: str


class ExtractedContent(BaseModel):
    """Raw output of a content extractor, before chunking."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    description: str = ""
    text: str
    domain: str = ""
    author: str | None = None


class ProcessedContent(BaseModel):
    """Extracted content plus its chunks, ready for embedding."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    description: str = ""
    text: str
    domain: str = ""
    chunks: list[TextChunk] = Field(default_factory=list)


class LinkCategorization(BaseModel):
    """Structured judgement about a link, produced by the LLM categoriser."""

    model_config = ConfigDict(frozen=True)

    category: str = Field(min_length=1, description="Single best-fitting category name.")
    tags: list[str] = Field(default_factory=list)
    forge_score: float = Field(
        ge=0.0, le=1.0, description="How useful the link is to builders, 0-1."
    )
    content_type: str = "reference"
    purpose: str = ""
    quality: str = ""
    summary: str = ""
    key_concepts: list[str] = Field(default_factory=list)
