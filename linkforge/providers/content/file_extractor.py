"""Uploaded-file extractor for PDF, EPUB, HTML and plain-text documents.

PDF pages are read with PyMuPDF (``fitz``), EPUB documents with ebooklib
and BeautifulSoup, HTML with trafilatura (falling back to BeautifulSoup's
plain text), and ``.txt`` / ``.md`` files as UTF-8.  Parsing is blocking,
so it runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import re
import zipfile
from pathlib import Path

import ebooklib
import fitz  # PyMuPDF
import structlog
import trafilatura
from bs4 import BeautifulSoup
from ebooklib import epub

from linkforge.interfaces.content_extractor import IContentExtractor
from linkforge.models.content import ExtractedContent
from linkforge.models.queue import PayloadKind, QueuePayload
from linkforge.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

SUPPORTED_EXTENSIONS = frozenset({".pdf", ".epub", ".html", ".htm", ".txt", ".md"})
LOCAL_FILE_DOMAIN = "local-file"

_DESCRIPTION_CHARS = 300
_MULTI_NEWLINE = re.compile(r"\n{3,}")
_MULTI_SPACE = re.compile(r"[ \t]{2,}")
_SEPARATORS = re.compile(r"[-_]+")


def is_supported_file(file_name: str) -> bool:
    return Path(file_name).suffix.lower() in SUPPORTED_EXTENSIONS


def title_from_filename(file_name: str) -> str:
    """``deep-learning_notes.pdf`` -> ``deep learning notes``."""
    stem = Path(file_name).stem
    return " ".join(_SEPARATORS.sub(" ", stem).split())


def _normalise(text: str) -> str:
    text = _MULTI_SPACE.sub(" ", text)
    return _MULTI_NEWLINE.sub("\n\n", text).strip()


def _read_pdf(path: Path) -> tuple[str, str]:
    with fitz.open(str(path)) as doc:
        title = (doc.metadata or {}).get("title") or ""
        pages = [doc[i].get_text("text").strip() for i in range(len(doc))]
    return title, "\n\n".join(p for p in pages if p)


def _read_epub(path: Path) -> tuple[str, str]:
    book = epub.read_epub(str(path), options={"ignore_ncx": True})
    titles = book.get_metadata("DC", "title")
    title = titles[0][0] if titles else ""

    chapters: list[str] = []
    for item in book.get_items_of_type(ebooklib.ITEM_DOCUMENT):
        html_content = item.get_content().decode("utf-8", errors="replace")
        soup = BeautifulSoup(html_content, "html.parser")
        text = _normalise(soup.get_text(separator="\n"))
        if text:
            chapters.append(text)
    return title, "\n\n".join(chapters)


def _read_html(path: Path) -> tuple[str, str]:
    raw = path.read_text(encoding="utf-8", errors="replace")
    soup = BeautifulSoup(raw, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else ""
    text = trafilatura.extract(raw, include_comments=False, include_tables=True)
    if not text:
        body = soup.body or soup
        text = _normalise(body.get_text(separator="\n"))
    return title, text


def _read_text(path: Path) -> tuple[str, str]:
    return "", path.read_text(encoding="utf-8", errors="replace")


_READERS = {
    ".pdf": _read_pdf,
    ".epub": _read_epub,
    ".html": _read_html,
    ".htm": _read_html,
    ".txt": _read_text,
    ".md": _read_text,
}


class FileExtractor(IContentExtractor):
    """Extracts text from uploaded files referenced by file payloads."""

    def supports(self, payload: QueuePayload) -> bool:
        if payload.kind is not PayloadKind.FILE:
            return False
        return is_supported_file(payload.file_name or payload.ref)

    async def extract(self, payload: QueuePayload) -> ExtractedContent:
        path = Path(payload.ref)
        file_name = payload.file_name or path.name
        suffix = Path(file_name).suffix.lower() or path.suffix.lower()
        reader = _READERS.get(suffix)
        if reader is None:
            raise ExtractionError(
                message=f"Unsupported file extension: {suffix or '(none)'}",
                provider_name=self.get_provider_name(),
            )
        if not path.is_file():
            raise ExtractionError(
                message=f"File not found: {path}",
                provider_name=self.get_provider_name(),
            )

        try:
            doc_title, text = await asyncio.to_thread(reader, path)
        except (OSError, ValueError, RuntimeError, zipfile.BadZipFile, epub.EpubException) as exc:
            raise ExtractionError(
                message=f"Could not read {file_name}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        text = (text or "").strip()
        if not text:
            raise ExtractionError(
                message=f"No text extracted from {file_name}",
                provider_name=self.get_provider_name(),
            )

        content = ExtractedContent(
            title=doc_title or title_from_filename(file_name),
            description=text[:_DESCRIPTION_CHARS].strip(),
            text=text,
            domain=LOCAL_FILE_DOMAIN,
        )
        logger.info("file_extracted", file_name=file_name, text_length=len(text))
        return content

    def get_provider_name(self) -> str:
        return "file"
