"""Routes a queue payload to its extractor and chunks the result."""

from __future__ import annotations

import structlog

from linkforge.interfaces.content_extractor import IContentExtractor
from linkforge.models.content import ProcessedContent
from linkforge.models.queue import QueuePayload
from linkforge.services.chunker import TextChunker
from linkforge.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)


class ContentProcessor:
    """Extracts and chunks the content behind a payload.

    Extractors are tried in order; the first whose ``supports()`` accepts
    the payload handles it.
    """

    def __init__(
        self,
        extractors: list[IContentExtractor],
        chunker: TextChunker | None = None,
    ) -> None:
        self._extractors = list(extractors)
        self._chunker = chunker or TextChunker()

    def extractor_for(self, payload: QueuePayload) -> IContentExtractor:
        for extractor in self._extractors:
            if extractor.supports(payload):
                return extractor
        raise ExtractionError(
            message=f"No extractor supports {payload.kind.value} payload {payload.ref!r}",
        )

    async def process(self, payload: QueuePayload) -> ProcessedContent:
        """Extract the payload's text and split it into chunks.

        Raises
        ------
        ExtractionError
            If no extractor accepts the payload, extraction fails or the
            extracted text is empty.
        """
        extractor = self.extractor_for(payload)
        extracted = await extractor.extract(payload)

        text = extracted.text.strip()
        if not text:
            raise ExtractionError(
                message=f"Empty content for {payload.ref!r}",
                provider_name=extractor.get_provider_name(),
            )

        chunks = self._chunker.chunk(text)
        logger.debug(
            "content_processed",
            ref=payload.ref,
            extractor=extractor.get_provider_name(),
            text_length=len(text),
            chunks=len(chunks),
        )
        return ProcessedContent(
            title=extracted.title,
            description=extracted.description,
            text=text,
            domain=extracted.domain,
            chunks=chunks,
        )

    async def close(self) -> None:
        """Release extractor resources such as shared HTTP clients."""
        for extractor in self._extractors:
            close = getattr(extractor, "close", None)
            if close is not None:
                await close()
