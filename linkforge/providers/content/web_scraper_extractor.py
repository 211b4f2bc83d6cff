"""Web page extractor using httpx and trafilatura.

Fetches HTML with httpx and pulls the main article text and metadata out
with trafilatura.  Every URL, including each redirect hop, passes the SSRF
guard in :mod:`linkforge.utils.url_tools` before it is requested.
"""

from __future__ import annotations

import json

import httpx
import structlog
import trafilatura

from linkforge.interfaces.content_extractor import IContentExtractor
from linkforge.models.content import ExtractedContent
from linkforge.models.queue import PayloadKind, QueuePayload
from linkforge.utils.errors import ExtractionError
from linkforge.utils.url_tools import url_domain, validate_url_for_ssrf

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 15.0
_MAX_REDIRECTS = 5
_DESCRIPTION_FALLBACK_CHARS = 300
_DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; LinkForge/0.1; link ingestion bot)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


class WebScraperExtractor(IContentExtractor):
    """Extracts readable text from http(s) URLs.

    Parameters
    ----------
    http_client:
        Shared client.  When omitted, one is created and closed by
        :meth:`close`.  Redirects are followed manually so each hop can be
        validated, so a supplied client should not follow redirects itself.
    timeout:
        Request timeout in seconds for the owned client.
    resolve_dns:
        Resolve hostnames during the SSRF check.  Tests disable it.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        resolve_dns: bool = True,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers=_DEFAULT_HEADERS,
            follow_redirects=False,
        )
        self._resolve_dns = resolve_dns

    def supports(self, payload: QueuePayload) -> bool:
        return payload.kind is PayloadKind.URL

    async def _fetch(self, url: str) -> httpx.Response:
        current = url
        for _ in range(_MAX_REDIRECTS + 1):
            await validate_url_for_ssrf(current, resolve=self._resolve_dns)
            try:
                response = await self._client.get(current)
            except httpx.TimeoutException as exc:
                raise ExtractionError(
                    message=f"Timeout fetching {current}: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc
            except httpx.HTTPError as exc:
                raise ExtractionError(
                    message=f"HTTP error fetching {current}: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc

            if response.is_redirect and "location" in response.headers:
                current = str(response.url.join(response.headers["location"]))
                continue

            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise ExtractionError(
                    message=f"HTTP {exc.response.status_code} for {current}",
                    provider_name=self.get_provider_name(),
                ) from exc
            return response

        raise ExtractionError(
            message=f"Too many redirects fetching {url}",
            provider_name=self.get_provider_name(),
        )

    async def extract(self, payload: QueuePayload) -> ExtractedContent:
        url = payload.ref
        response = await self._fetch(url)
        html = response.text

        text = trafilatura.extract(html, include_comments=False, include_tables=True)
        if not text or not text.strip():
            logger.warning("trafilatura_extraction_empty", url=url)
            raise ExtractionError(
                message=f"No readable content at {url}",
                provider_name=self.get_provider_name(),
            )

        title = ""
        description = ""
        author: str | None = None
        metadata = trafilatura.extract(
            html,
            include_comments=False,
            output_format="json",
            with_metadata=True,
        )
        if metadata:
            try:
                meta_dict = json.loads(metadata)
                title = meta_dict.get("title") or ""
                description = meta_dict.get("description") or ""
                author = meta_dict.get("author") or None
            except (json.JSONDecodeError, AttributeError):
                logger.debug("metadata_parse_failed", url=url)

        domain = url_domain(url)
        content = ExtractedContent(
            title=title or domain,
            description=description or text[:_DESCRIPTION_FALLBACK_CHARS].strip(),
            text=text.strip(),
            domain=domain,
            author=author,
        )
        logger.info("page_extracted", url=url, title=content.title, text_length=len(content.text))
        return content

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def get_provider_name(self) -> str:
        return "web_scraper"
