"""Unit tests for the web scraper, the file extractor and ContentProcessor.

HTTP is served by ``httpx.MockTransport`` and DNS resolution is switched
off, so nothing leaves the process.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import fitz
import httpx
import pytest
from ebooklib import epub

from linkforge.interfaces.content_extractor import IContentExtractor
from linkforge.models.content import ExtractedContent
from linkforge.models.queue import QueuePayload
from linkforge.providers.content.file_extractor import (
    LOCAL_FILE_DOMAIN,
    FileExtractor,
    is_supported_file,
    title_from_filename,
)
from linkforge.providers.content.web_scraper_extractor import WebScraperExtractor
from linkforge.services.chunker import TextChunker
from linkforge.services.content_processor import ContentProcessor
from linkforge.utils.errors import ExtractionError, UnsafeURLError

_TRAFILATURA = "linkforge.providers.content.web_scraper_extractor.trafilatura.extract"

_ARTICLE_HTML = """<html>
<head>
  <title>Vector Search in Practice</title>
  <meta name="description" content="How to combine ANN and keyword search.">
</head>
<body>
  <nav>Home | Blog | About</nav>
  <article>
    <h1>Vector Search in Practice</h1>
    <p>Approximate nearest neighbour indexes make semantic search fast enough for
    interactive use, but they miss exact identifiers and rare product names that a
    plain keyword match finds immediately.</p>
    <p>A hybrid retriever runs both queries side by side, merges the results by
    document identity and then blends the relevance score with signals such as
    freshness or a learned usefulness score before sorting.</p>
    <p>This article walks through a small implementation on top of a graph
    database with a native vector index, including schema setup, ingestion and the
    ranking step that decides what the user sees first.</p>
  </article>
  <footer>Copyright 2026</footer>
</body>
</html>"""


def _scraper(handler) -> WebScraperExtractor:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=False)
    return WebScraperExtractor(http_client=client, resolve_dns=False)


def _url_payload(url: str = "https://blog.example.com/vector-search") -> QueuePayload:
    return QueuePayload.for_url(url)


# ─── Web scraper ──────────────────────────────────────────────────────


class TestWebScraper:
    @pytest.mark.asyncio
    async def test_extracts_article_text(self) -> None:
        scraper = _scraper(lambda request: httpx.Response(200, html=_ARTICLE_HTML))

        content = await scraper.extract(_url_payload())

        assert "hybrid retriever" in content.text
        assert content.title == "Vector Search in Practice"
        assert content.domain == "blog.example.com"

    @pytest.mark.asyncio
    async def test_title_and_description_fallbacks(self) -> None:
        scraper = _scraper(lambda request: httpx.Response(200, html="<html></html>"))
        body = "Plain extracted body. " * 30

        with patch(_TRAFILATURA, side_effect=[body, None]):
            content = await scraper.extract(_url_payload("https://www.example.com/a"))

        assert content.title == "example.com"
        assert content.domain == "example.com"
        assert content.description == body[:300].strip()

    @pytest.mark.asyncio
    async def test_metadata_json_is_used(self) -> None:
        scraper = _scraper(lambda request: httpx.Response(200, html="<html></html>"))
        metadata = '{"title": "T", "description": "D", "author": "Ada"}'

        with patch(_TRAFILATURA, side_effect=["Body", metadata]):
            content = await scraper.extract(_url_payload())

        assert (content.title, content.description, content.author) == ("T", "D", "Ada")

    @pytest.mark.asyncio
    async def test_empty_extraction_fails(self) -> None:
        scraper = _scraper(lambda request: httpx.Response(200, html="<html></html>"))
        with patch(_TRAFILATURA, return_value=None):
            with pytest.raises(ExtractionError, match="No readable content"):
                await scraper.extract(_url_payload())

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        scraper = _scraper(lambda request: httpx.Response(404))
        with pytest.raises(ExtractionError, match="HTTP 404"):
            await scraper.extract(_url_payload())

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ExtractionError, match="HTTP error"):
            await _scraper(handler).extract(_url_payload())

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ExtractionError, match="Timeout"):
            await _scraper(handler).extract(_url_payload())

    @pytest.mark.asyncio
    async def test_follows_safe_redirects(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            if request.url.path == "/old":
                return httpx.Response(301, headers={"location": "/new"})
            return httpx.Response(200, html="<html></html>")

        with patch(_TRAFILATURA, side_effect=["Moved body", None]):
            content = await _scraper(handler).extract(_url_payload("https://example.com/old"))

        assert seen == ["https://example.com/old", "https://example.com/new"]
        assert content.text == "Moved body"

    @pytest.mark.asyncio
    async def test_redirect_to_private_address_is_blocked(self) -> None:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(302, headers={"location": "http://169.254.169.254/latest/"})

        with pytest.raises(UnsafeURLError):
            await _scraper(handler).extract(_url_payload("https://example.com/x"))
        assert requested == ["https://example.com/x"]

    @pytest.mark.asyncio
    async def test_redirect_loop_is_bounded(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"location": "/again"})

        with pytest.raises(ExtractionError, match="Too many redirects"):
            await _scraper(handler).extract(_url_payload("https://example.com/start"))

    @pytest.mark.asyncio
    async def test_private_url_never_fetched(self) -> None:
        handler = MagicMock()
        with pytest.raises(UnsafeURLError):
            await _scraper(handler).extract(QueuePayload.for_url("http://localhost:8080/admin"))
        handler.assert_not_called()

    def test_supports_only_url_payloads(self, tmp_path: Path) -> None:
        path = tmp_path / "a.txt"
        path.write_text("x", encoding="utf-8")
        scraper = _scraper(lambda request: httpx.Response(200))

        assert scraper.supports(_url_payload())
        assert not scraper.supports(QueuePayload.for_file(path))

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        await WebScraperExtractor(http_client=client).close()
        assert not client.is_closed
        await client.aclose()


# ─── File extractor ───────────────────────────────────────────────────


class TestFileExtractor:
    def test_title_from_filename(self) -> None:
        assert title_from_filename("deep-learning_notes.pdf") == "deep learning notes"
        assert title_from_filename("README.md") == "README"

    def test_supported_files(self) -> None:
        assert is_supported_file("paper.PDF")
        assert is_supported_file("book.epub")
        assert not is_supported_file("photo.jpg")

    @pytest.mark.asyncio
    async def test_plain_text(self, tmp_path: Path) -> None:
        path = tmp_path / "stored.txt"
        path.write_text("Line one about graphs.\n\nLine two about vectors.", encoding="utf-8")

        content = await FileExtractor().extract(
            QueuePayload.for_file(path, file_name="graph-notes.txt")
        )

        assert content.title == "graph notes"
        assert content.domain == LOCAL_FILE_DOMAIN
        assert content.text.startswith("Line one")
        assert content.description == content.text[:300]

    @pytest.mark.asyncio
    async def test_markdown(self, tmp_path: Path) -> None:
        path = tmp_path / "notes.md"
        path.write_text("# Heading\n\nSome **markdown** body.", encoding="utf-8")

        content = await FileExtractor().extract(QueuePayload.for_file(path))

        assert "Some **markdown** body." in content.text

    @pytest.mark.asyncio
    async def test_html_file(self, tmp_path: Path) -> None:
        path = tmp_path / "page.html"
        path.write_text(_ARTICLE_HTML, encoding="utf-8")

        content = await FileExtractor().extract(QueuePayload.for_file(path))

        assert content.title == "Vector Search in Practice"
        assert "hybrid retriever" in content.text

    @pytest.mark.asyncio
    async def test_pdf_file(self, tmp_path: Path) -> None:
        path = tmp_path / "paper.pdf"
        doc = fitz.open()
        page = doc.new_page()
        page.insert_text((72, 72), "Retrieval augmented generation with graphs.")
        doc.set_metadata({"title": "Graph RAG"})
        doc.save(str(path))
        doc.close()

        content = await FileExtractor().extract(QueuePayload.for_file(path))

        assert content.title == "Graph RAG"
        assert "Retrieval augmented generation" in content.text

    @pytest.mark.asyncio
    async def test_epub_file(self, tmp_path: Path) -> None:
        path = tmp_path / "book.epub"
        book = epub.EpubBook()
        book.set_identifier("linkforge-test-book")
        book.set_title("Graph Notes")
        book.set_language("en")
        chapter = epub.EpubHtml(title="Intro", file_name="intro.xhtml", lang="en")
        chapter.content = "<html><body><h1>Intro</h1><p>Graphs connect ideas.</p></body></html>"
        book.add_item(chapter)
        book.toc = (epub.Link("intro.xhtml", "Intro", "intro"),)
        book.add_item(epub.EpubNcx())
        book.add_item(epub.EpubNav())
        book.spine = ["nav", chapter]
        epub.write_epub(str(path), book)

        content = await FileExtractor().extract(QueuePayload.for_file(path))

        assert content.title == "Graph Notes"
        assert "Graphs connect ideas." in content.text

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path) -> None:
        payload = QueuePayload(kind="file", key="abc", ref=str(tmp_path / "gone.txt"))
        with pytest.raises(ExtractionError, match="File not found"):
            await FileExtractor().extract(payload)

    @pytest.mark.asyncio
    async def test_unsupported_extension(self, tmp_path: Path) -> None:
        path = tmp_path / "photo.jpg"
        path.write_bytes(b"\xff\xd8")
        with pytest.raises(ExtractionError, match="Unsupported"):
            await FileExtractor().extract(QueuePayload.for_file(path))

    @pytest.mark.asyncio
    async def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.txt"
        path.write_text("   \n", encoding="utf-8")
        with pytest.raises(ExtractionError, match="No text"):
            await FileExtractor().extract(QueuePayload.for_file(path))

    @pytest.mark.asyncio
    async def test_corrupt_pdf(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"this is not a pdf")
        with pytest.raises(ExtractionError):
            await FileExtractor().extract(QueuePayload.for_file(path))


# ─── ContentProcessor ─────────────────────────────────────────────────


def _extractor(name: str, accepts: bool, text: str = "extracted text") -> MagicMock:
    extractor = MagicMock(spec=IContentExtractor)
    extractor.supports.return_value = accepts
    extractor.extract = AsyncMock(
        return_value=ExtractedContent(title="T", description="D", text=text, domain="d.dev")
    )
    extractor.get_provider_name.return_value = name
    return extractor


class TestContentProcessor:
    @pytest.mark.asyncio
    async def test_first_supporting_extractor_wins(self) -> None:
        skip = _extractor("skip", accepts=False)
        first = _extractor("first", accepts=True, text="first text")
        second = _extractor("second", accepts=True)
        processor = ContentProcessor([skip, first, second])

        content = await processor.process(_url_payload())

        assert content.text == "first text"
        assert [c.text for c in content.chunks] == ["first text"]
        skip.extract.assert_not_awaited()
        second.extract.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_extractor(self) -> None:
        processor = ContentProcessor([_extractor("skip", accepts=False)])
        with pytest.raises(ExtractionError, match="No extractor supports"):
            await processor.process(_url_payload())

    @pytest.mark.asyncio
    async def test_blank_text_fails(self) -> None:
        processor = ContentProcessor([_extractor("blank", accepts=True, text="  \n ")])
        with pytest.raises(ExtractionError, match="Empty content"):
            await processor.process(_url_payload())

    @pytest.mark.asyncio
    async def test_long_text_is_chunked(self) -> None:
        text = "\n\n".join(f"Paragraph {n} " + "filler " * 20 for n in range(10))
        processor = ContentProcessor(
            [_extractor("long", accepts=True, text=text)],
            chunker=TextChunker(chunk_size=300, overlap=30),
        )

        content = await processor.process(_url_payload())

        assert len(content.chunks) > 1
        assert content.title == "T"
        assert content.domain == "d.dev"

    @pytest.mark.asyncio
    async def test_close_closes_extractors_that_can(self) -> None:
        closable = WebScraperExtractor(resolve_dns=False)
        plain = _extractor("plain", accepts=False)

        await ContentProcessor([closable, plain]).close()

        assert closable._client.is_closed
