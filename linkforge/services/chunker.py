"""Text chunking with overlapping windows and paragraph boundary preservation.

Splits extracted page or document text into :class:`TextChunk` objects
sized for the MiniLM embedding model (about 500 characters each, with 50
characters of overlap).

1. **Paragraph-preserving** -- chunk boundaries fall on paragraph breaks
   (double newlines) where possible, so passages read as whole thoughts.
2. **Overlapping windows** -- consecutive chunks share a short tail of
   context so a phrase spanning a boundary is retrievable from either side.

A paragraph longer than one chunk is split at sentence boundaries with an
abbreviation-aware splitter ("e.g.", "Dr.", "vs." do not end a sentence).
A sentence longer than one chunk is split between words.  A trailing
fragment shorter than ``min_chunk_size`` is folded into the chunk before it.
"""

from __future__ import annotations

import re

import structlog

from linkforge.models.content import TextChunk

logger = structlog.get_logger(logger_name=__name__)

_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "No",
        "Vol",
        "vs",
        "etc",
        "approx",
        "e.g",
        "i.e",
        "Inc",
        "Ltd",
        "Co",
        "Fig",
        "al",
    }
)

_ABBREVIATION_RE = re.compile(
    r"\b(" + "|".join(re.escape(a) for a in sorted(_ABBREVIATIONS, key=len, reverse=True)) + r")\."
)

_PARAGRAPH_BREAK = "\n\n"
_SENTENCE_BREAK = " "


class TextChunker:
    """Splits text into overlapping chunks preserving paragraph boundaries.

    Parameters
    ----------
    chunk_size:
        Target maximum characters per chunk (default 500).
    overlap:
        Characters of trailing context carried into the next chunk
        (default 50).
    min_chunk_size:
        A final chunk shorter than this is appended to the previous chunk
        (default 100).
    """

    def __init__(self, chunk_size: int = 500, overlap: int = 50, min_chunk_size: int = 100) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= overlap < chunk_size:
            raise ValueError("overlap must be between 0 and chunk_size")
        self._chunk_size = chunk_size
        self._overlap = overlap
        self._min_chunk_size = min_chunk_size

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str) -> list[TextChunk]:
        """Split *text* into ordered, overlapping chunks.

        Empty input returns an empty list; text no longer than one chunk
        returns exactly one chunk.
        """
        if not text or not text.strip():
            return []

        stripped = text.strip()
        if len(stripped) <= self._chunk_size:
            return [TextChunk(index=0, text=stripped)]

        raw_chunks = self._accumulate_chunks(self._split_paragraphs(stripped))
        raw_chunks = self._fold_short_tail(raw_chunks)

        chunks = [TextChunk(index=i, text=t) for i, t in enumerate(raw_chunks)]
        logger.debug(
            "chunking_complete",
            num_chunks=len(chunks),
            avg_chars=sum(len(c.text) for c in chunks) // len(chunks),
        )
        return chunks

    # ------------------------------------------------------------------
    # Paragraph / sentence splitting
    # ------------------------------------------------------------------

    @staticmethod
    def _split_paragraphs(text: str) -> list[str]:
        parts = re.split(r"\n\s*\n", text)
        return [p.strip() for p in parts if p.strip()]

    @staticmethod
    def _split_sentences(text: str) -> list[str]:
        """Split *text* at ``.``, ``!`` or ``?`` followed by whitespace.

        Periods after known abbreviations are masked first (replaced with
        a same-length placeholder) so indices stay aligned with *text*.
        """
        masked = _ABBREVIATION_RE.sub(lambda m: f"{m.group(1)}\x00", text)

        sentences: list[str] = []
        last = 0
        for match in re.finditer(r"[.!?](?:\s|$)", masked):
            end = match.end()
            sentence = text[last:end].strip()
            if sentence:
                sentences.append(sentence)
            last = end

        remainder = text[last:].strip()
        if remainder:
            sentences.append(remainder)
        return sentences or [text]

    def _split_words(self, text: str) -> list[str]:
        """Break an over-long sentence into pieces of at most *chunk_size*."""
        pieces: list[str] = []
        current = ""
        for word in text.split():
            while len(word) > self._chunk_size:
                if current:
                    pieces.append(current)
                    current = ""
                pieces.append(word[: self._chunk_size])
                word = word[self._chunk_size :]
            if not word:
                continue
            candidate = f"{current} {word}" if current else word
            if len(candidate) > self._chunk_size:
                pieces.append(current)
                current = word
            else:
                current = candidate
        if current:
            pieces.append(current)
        return pieces

    # ------------------------------------------------------------------
    # Chunk accumulation
    # ------------------------------------------------------------------

    def _accumulate_chunks(self, paragraphs: list[str]) -> list[str]:
        """Greedily pack paragraphs into chunks, flushing with overlap."""
        chunks: list[str] = []
        current: list[str] = []

        for para in paragraphs:
            if len(para) > self._chunk_size:
                if current:
                    chunks.append(_PARAGRAPH_BREAK.join(current))
                    current = []
                chunks.extend(self._chunk_long_paragraph(para))
                continue

            if current and self._joined_length(current, para, _PARAGRAPH_BREAK) > self._chunk_size:
                chunks.append(_PARAGRAPH_BREAK.join(current))
                current = self._build_overlap(current, _PARAGRAPH_BREAK)
                if current and self._joined_length(current, para, _PARAGRAPH_BREAK) > self._chunk_size:
                    current = []
            current.append(para)

        if current:
            chunks.append(_PARAGRAPH_BREAK.join(current))
        return chunks

    def _chunk_long_paragraph(self, paragraph: str) -> list[str]:
        units: list[str] = []
        for sentence in self._split_sentences(paragraph):
            if len(sentence) > self._chunk_size:
                units.extend(self._split_words(sentence))
            else:
                units.append(sentence)

        chunks: list[str] = []
        current: list[str] = []
        for unit in units:
            if current and self._joined_length(current, unit, _SENTENCE_BREAK) > self._chunk_size:
                chunks.append(_SENTENCE_BREAK.join(current))
                current = self._build_overlap(current, _SENTENCE_BREAK)
                if current and self._joined_length(current, unit, _SENTENCE_BREAK) > self._chunk_size:
                    current = []
            current.append(unit)

        if current:
            chunks.append(_SENTENCE_BREAK.join(current))
        return chunks

    def _build_overlap(self, parts: list[str], separator: str) -> list[str]:
        """Return the tail of *parts* to seed the next chunk.

        Whole trailing units are kept while they fit in *overlap*; if even
        the last unit is too long, its final words (up to *overlap*
        characters) are used instead.
        """
        if self._overlap == 0:
            return []

        tail: list[str] = []
        size = 0
        for part in reversed(parts):
            added = len(part) + (len(separator) if tail else 0)
            if size + added > self._overlap:
                break
            tail.insert(0, part)
            size += added
        if tail:
            return tail

        fragment = parts[-1][-self._overlap :]
        if " " in fragment:
            fragment = fragment.split(" ", 1)[1]
        fragment = fragment.strip()
        return [fragment] if fragment else []

    @staticmethod
    def _joined_length(parts: list[str], extra: str, separator: str) -> int:
        return sum(len(p) for p in parts) + len(separator) * len(parts) + len(extra)

    def _fold_short_tail(self, chunks: list[str]) -> list[str]:
        if len(chunks) > 1 and len(chunks[-1]) < self._min_chunk_size:
            tail = chunks.pop()
            chunks[-1] = f"{chunks[-1]}{_SENTENCE_BREAK}{tail}"
        return chunks
