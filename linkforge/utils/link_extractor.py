"""Outbound link discovery for scraped pages.

Posts on social sites are mostly pointers to something else: a repo, a
paper, a blog post.  :func:`extract_urls` pulls those targets out of the
extracted text so the worker can queue them as children of the page.

Skipped:

* the page's own URL;
* hosts that are the social site itself or a media CDN (``SKIP_HOSTS``);
* direct links to images and video (``SKIP_EXTENSIONS``);
* hosts without a dot, or ending in ``.md``/``.txt`` (file names that
  the regex picked up as URLs);
* anything :func:`canonicalize_url` refuses.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit, urlunsplit

from linkforge.utils.url_tools import canonicalize_url

URL_PATTERN = re.compile(r"https?://[^\s<>)\],]+", re.IGNORECASE)
_TRAILING_PUNCTUATION = ".,;:!?)"

SKIP_HOSTS = frozenset(
    {
        "twitter.com",
        "www.twitter.com",
        "x.com",
        "www.x.com",
        "t.co",
        "pbs.twimg.com",
        "video.twimg.com",
        "abs.twimg.com",
        "i.imgur.com",
        "cdn.discordapp.com",
        "media.discordapp.net",
        "tenor.com",
        "giphy.com",
    }
)

SKIP_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".mp4", ".webm", ".mov")

# Hosts served over HTTPS only; plain-http links to them are rewritten.
_HTTPS_ONLY_HOSTS = frozenset({"github.com", "www.github.com"})

# Pages whose outbound links are followed by default.
DEFAULT_DISCOVERY_DOMAINS = frozenset({"x.com", "twitter.com"})


def _should_skip(url: str) -> bool:
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    if not host or "." not in host or host.endswith((".md", ".txt")):
        return True
    if host in SKIP_HOSTS:
        return True
    return parts.path.lower().endswith(SKIP_EXTENSIONS)


def _force_https(url: str) -> str:
    parts = urlsplit(url)
    if parts.scheme == "http" and (parts.hostname or "") in _HTTPS_ONLY_HOSTS:
        return urlunsplit(("https", parts.netloc, parts.path, parts.query, parts.fragment))
    return url


def extract_urls(text: str, parent_url: str | None = None) -> list[str]:
    """Return the canonical outbound URLs in *text*, first occurrence first.

    Parameters
    ----------
    text:
        Extracted page text.
    parent_url:
        URL of the page itself; links back to it are dropped.
    """
    parent_key: str | None = None
    if parent_url:
        try:
            parent_key = _force_https(canonicalize_url(parent_url))
        except ValueError:
            parent_key = None

    found: list[str] = []
    seen: set[str] = set()
    for match in URL_PATTERN.finditer(text or ""):
        raw = match.group(0).rstrip(_TRAILING_PUNCTUATION)
        try:
            url = _force_https(canonicalize_url(raw))
        except ValueError:
            continue
        if url == parent_key or url in seen or _should_skip(url):
            continue
        seen.add(url)
        found.append(url)
    return found
