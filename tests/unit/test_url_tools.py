"""Unit tests for URL canonicalisation, SSRF validation and file identities."""

from __future__ import annotations

import asyncio
import hashlib
import socket
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from linkforge.utils.errors import UnsafeURLError
from linkforge.utils.url_tools import (
    canonicalize_url,
    file_sha256,
    synthetic_file_url,
    url_domain,
    validate_url_for_ssrf,
)


class TestCanonicalizeUrl:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("https://Example.COM/Path", "https://example.com/Path"),
            ("HTTPS://example.com/a#section", "https://example.com/a"),
            ("https://example.com:443/a", "https://example.com/a"),
            ("http://example.com:80/a", "http://example.com/a"),
            ("http://example.com:8080/a", "http://example.com:8080/a"),
            ("  https://example.com/a?b=1&c=2  ", "https://example.com/a?b=1&c=2"),
            ("https://example.com/a/", "https://example.com/a/"),
            ("https://[::1]:8443/x", "https://[::1]:8443/x"),
        ],
    )
    def test_canonical_form(self, raw: str, expected: str) -> None:
        assert canonicalize_url(raw) == expected

    @pytest.mark.parametrize("raw", ["", "example.com/a", "/relative/path", "https://"])
    def test_rejects_non_absolute(self, raw: str) -> None:
        with pytest.raises(ValueError):
            canonicalize_url(raw)


class TestUrlDomain:
    def test_strips_www(self) -> None:
        assert url_domain("https://www.Example.com/a") == "example.com"

    def test_keeps_other_subdomains(self) -> None:
        assert url_domain("https://docs.example.com/a") == "docs.example.com"


class TestValidateUrlForSsrf:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "url",
        [
            "ftp://example.com/file",
            "file:///etc/passwd",
            "http://localhost/admin",
            "http://printer.local/",
            "http://metadata.google.internal/computeMetadata/v1/",
            "http://127.0.0.1:8080/",
            "http://10.0.0.5/",
            "http://192.168.1.1/",
            "http://169.254.169.254/latest/meta-data/",
            "http://[::1]/",
            "http://[::ffff:127.0.0.1]/",
            "http://0.0.0.0/",
            "http:///no-host",
        ],
    )
    async def test_blocked(self, url: str) -> None:
        with pytest.raises(UnsafeURLError):
            await validate_url_for_ssrf(url, resolve=False)

    @pytest.mark.asyncio
    async def test_public_ip_allowed(self) -> None:
        await validate_url_for_ssrf("https://93.184.216.34/", resolve=True)

    @pytest.mark.asyncio
    async def test_hostname_resolving_to_private_ip_blocked(self) -> None:
        infos = [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("10.1.2.3", 0))]
        with patch.object(asyncio.get_running_loop(), "getaddrinfo", new=AsyncMock(return_value=infos)):
            with pytest.raises(UnsafeURLError, match="resolves to private IP"):
                await validate_url_for_ssrf("https://internal.example.com/", resolve=True)

    @pytest.mark.asyncio
    async def test_hostname_resolving_to_public_ip_allowed(self) -> None:
        infos = [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("93.184.216.34", 0))]
        with patch.object(asyncio.get_running_loop(), "getaddrinfo", new=AsyncMock(return_value=infos)):
            await validate_url_for_ssrf("https://example.com/", resolve=True)

    @pytest.mark.asyncio
    async def test_dns_failure_is_not_unsafe(self) -> None:
        failing = AsyncMock(side_effect=socket.gaierror("no such host"))
        with patch.object(asyncio.get_running_loop(), "getaddrinfo", new=failing):
            await validate_url_for_ssrf("https://does-not-exist.example/", resolve=True)

    @pytest.mark.asyncio
    async def test_no_resolution_when_disabled(self) -> None:
        lookup = AsyncMock()
        with patch.object(asyncio.get_running_loop(), "getaddrinfo", new=lookup):
            await validate_url_for_ssrf("https://example.com/", resolve=False)
        lookup.assert_not_awaited()


class TestFileIdentity:
    def test_file_sha256(self, tmp_path: Path) -> None:
        path = tmp_path / "doc.txt"
        path.write_bytes(b"hello linkforge")
        assert file_sha256(path) == hashlib.sha256(b"hello linkforge").hexdigest()

    def test_synthetic_file_url(self) -> None:
        assert synthetic_file_url("abc123", "paper.pdf") == "file:///abc123/paper.pdf"
