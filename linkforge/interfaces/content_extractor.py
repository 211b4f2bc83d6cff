"""Abstract base class for content extractors.

An extractor turns one kind of queue payload (a web URL, an uploaded
file) into plain text plus metadata.  The
:class:`~linkforge.services.content_processor.ContentProcessor` picks the
extractor whose :meth:`supports` accepts the payload and chunks the result.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from linkforge.models.content import ExtractedContent
from linkforge.models.queue import QueuePayload


# Concrete implementations: WebScraperExtractor, FileExtractor
# Located in: linkforge/providers/content/
class IContentExtractor(ABC):
    """Contract for turning a payload into readable text."""

    @abstractmethod
    def supports(self, payload: QueuePayload) -> bool:
        """Return ``True`` if this extractor can handle *payload*."""

    @abstractmethod
    async def extract(self, payload: QueuePayload) -> ExtractedContent:
        """Fetch or read the payload and return its text and metadata.

        Raises
        ------
        ExtractionError
            If the content cannot be retrieved or yields no text.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"web_scraper"``."""
