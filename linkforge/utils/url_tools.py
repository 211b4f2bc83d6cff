"""URL helpers: canonical queue keys, SSRF validation and file identities.

A URL job is deduplicated on :func:`canonicalize_url`, so
``HTTPS://Example.com/a#top`` and ``https://example.com/a`` collapse into
one job.  Path, query and trailing slashes are left alone because many
sites treat them as significant.
"""

from __future__ import annotations

import asyncio
import hashlib
import ipaddress
import socket
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from linkforge.utils.errors import UnsafeURLError

_ALLOWED_SCHEMES = frozenset({"http", "https"})
_BLOCKED_HOSTNAMES = frozenset({"localhost", "localhost.localdomain", "metadata.google.internal"})
_BLOCKED_SUFFIXES = (".local", ".internal", ".onion", ".localhost")
_HASH_BLOCK_SIZE = 1 << 16


def canonicalize_url(url: str) -> str:
    """Return the dedup key for *url*.

    Lower-cases scheme and host, drops the fragment and any default port,
    and strips surrounding whitespace.

    Raises
    ------
    ValueError
        If *url* has no scheme or host.
    """
    parts = urlsplit(url.strip())
    if not parts.scheme or not parts.hostname:
        raise ValueError(f"Not an absolute URL: {url[:100]!r}")

    scheme = parts.scheme.lower()
    host = parts.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    port = parts.port
    if port is not None and not (
        (scheme == "http" and port == 80) or (scheme == "https" and port == 443)
    ):
        host = f"{host}:{port}"
    if parts.username:
        userinfo = parts.username
        if parts.password:
            userinfo = f"{userinfo}:{parts.password}"
        host = f"{userinfo}@{host}"

    return urlunsplit((scheme, host, parts.path, parts.query, ""))


def url_domain(url: str) -> str:
    """Return the bare host of *url* without a leading ``www.``."""
    host = (urlsplit(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def _is_private_address(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


def _is_blocked_hostname(host: str) -> bool:
    return host in _BLOCKED_HOSTNAMES or host.endswith(_BLOCKED_SUFFIXES)


async def validate_url_for_ssrf(url: str, resolve: bool = True) -> None:
    """Refuse URLs that could reach internal services.

    Only ``http``/``https`` are accepted.  Literal private, loopback,
    link-local and reserved addresses are blocked, as are ``localhost``
    and ``.local``/``.internal``/``.onion`` names.  When *resolve* is set,
    the hostname is resolved and every returned address is checked too.
    A DNS failure is not treated as unsafe; the fetch will fail on its own.

    Raises
    ------
    UnsafeURLError
        If the URL is malformed or targets a blocked host.
    """
    parts = urlsplit(url)
    if parts.scheme.lower() not in _ALLOWED_SCHEMES:
        raise UnsafeURLError(f"Blocked scheme {parts.scheme!r}", provider_name="url_validator")

    host = (parts.hostname or "").lower()
    if not host:
        raise UnsafeURLError(f"Invalid URL: {url[:100]}", provider_name="url_validator")

    if _is_blocked_hostname(host):
        raise UnsafeURLError(f"Blocked private hostname: {host}", provider_name="url_validator")

    if _is_private_address(host):
        raise UnsafeURLError(f"Blocked private IP: {host}", provider_name="url_validator")

    try:
        ipaddress.ip_address(host)
    except ValueError:
        pass
    else:
        return

    if not resolve:
        return

    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    except OSError:
        return

    for info in infos:
        address = str(info[4][0])
        if _is_private_address(address):
            raise UnsafeURLError(
                f"Hostname {host} resolves to private IP {address}",
                provider_name="url_validator",
            )


def file_sha256(path: str | Path) -> str:
    """Return the hex SHA-256 digest of a file's content."""
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for block in iter(lambda: handle.read(_HASH_BLOCK_SIZE), b""):
            digest.update(block)
    return digest.hexdigest()


def synthetic_file_url(content_hash: str, file_name: str) -> str:
    """Graph identity for an ingested file: ``file:///<sha256>/<name>``."""
    return f"file:///{content_hash}/{file_name}"
