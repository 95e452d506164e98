"""URL normalization, classification and archive path mapping."""

from __future__ import annotations

import itertools
import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
from urllib.parse import urldefrag, urljoin, urlsplit, urlunsplit

import tldextract

LOGGER = logging.getLogger(__name__)

# Hosts whose assets are mirrored even though they are not the page's own host.
ALLOWED_EXTERNAL_HOSTS = (
    "fonts.googleapis.com",
    "fonts.gstatic.com",
    "cdnjs.cloudflare.com",
    "cdn.jsdelivr.net",
    "unpkg.com",
    "use.fontawesome.com",
    "maxcdn.bootstrapcdn.com",
    "stackpath.bootstrapcdn.com",
)

_REJECTED_SCHEMES = ("file://", "ftp://", "javascript:")
_PRIVATE_PREFIXES = ("127.", "192.168.", "10.")
_SKIPPED_PREFIXES = ("data:", "#", "javascript:", "mailto:", "tel:")

INDEX_FILE = "index.html"

_FALLBACK_COUNTER = itertools.count(1)

# Offline suffix list: never fetch the PSL over the network mid-crawl.
_TLD_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())


class InvalidSeedError(ValueError):
    """Raised when the seed URL is rejected before any network activity."""


@dataclass(slots=True)
class SeedValidation:
    """Outcome of validating a user-supplied seed URL."""

    is_valid: bool
    url: str = ""
    hostname: str = ""
    error: Optional[str] = None


def normalize_seed(value: Optional[str]) -> SeedValidation:
    """Validate and normalize a seed URL.

    Missing schemes default to ``https://``. Local and private-network hosts
    are refused with a coarse prefix check (not a full CIDR test).
    """
    if not value or not isinstance(value, str) or not value.strip():
        return SeedValidation(False, error="Please enter a valid website URL")

    url = value.strip()
    lowered = url.lower()
    if lowered.startswith(_REJECTED_SCHEMES):
        return SeedValidation(
            False,
            error="Invalid URL protocol. Please use HTTP or HTTPS URLs only.",
        )
    if not lowered.startswith(("http://", "https://")):
        url = "https://" + url

    try:
        parts = urlsplit(url)
        hostname = parts.hostname or ""
        parts.port  # noqa: B018 - raises on malformed ports
    except ValueError:
        return SeedValidation(
            False,
            error=(
                "Invalid URL format. Please enter a valid website URL "
                "(e.g., https://example.com)"
            ),
        )

    if not hostname:
        return SeedValidation(
            False, error="Invalid domain name. Please enter a valid website URL."
        )

    if (
        hostname == "localhost"
        or hostname.startswith(_PRIVATE_PREFIXES)
        or "0.0.0.0" in hostname
    ):
        return SeedValidation(
            False, error="Cannot download from local or internal network addresses."
        )

    normalized = urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), parts.path or "/", parts.query, "")
    )
    return SeedValidation(True, url=normalized, hostname=hostname)


def local_path(url: str) -> str:
    """Map a URL to its archive-relative path.

    The root maps to ``index.html``; a last segment without a dot is treated as
    a directory and gets ``index.html`` appended. Never raises: unparseable
    input yields a unique ``assets/file_<token>`` path.
    """
    try:
        pathname = urlsplit(url).path
    except (TypeError, ValueError, AttributeError):
        return _fallback_path()

    if pathname in ("", "/"):
        return INDEX_FILE

    parts = [part for part in pathname.split("/") if part and part not in (".", "..")]
    if not parts:
        return INDEX_FILE

    if "." not in parts[-1]:
        return "/".join(parts + [INDEX_FILE])
    return "/".join(parts)


def file_name(url: str) -> str:
    """Archive name for a crawled page (same mapping as :func:`local_path`)."""
    return local_path(url)


def _fallback_path() -> str:
    return f"assets/file_{time.time_ns()}_{next(_FALLBACK_COUNTER)}"


def normalize_host(host: Optional[str]) -> str:
    """Normalize hostname by removing port and lowercasing."""
    if not host:
        return ""
    return host.split(":")[0].lower()


def hostname_of(url: str) -> str:
    try:
        return normalize_host(urlsplit(url).hostname)
    except ValueError:
        return ""


@lru_cache(maxsize=256)
def registrable_domain(host: str) -> Optional[str]:
    """Extract the registrable domain from a hostname."""
    if not host:
        return None
    extracted = _TLD_EXTRACT(host)
    if not extracted.domain or not extracted.suffix:
        return host
    return f"{extracted.domain}.{extracted.suffix}"


def same_domain(url: str, domain: str, *, include_subdomains: bool = False) -> bool:
    """Return True when *url* is hosted on *domain*.

    With ``include_subdomains`` any host sharing the registrable domain counts.
    """
    host = hostname_of(url)
    target = normalize_host(domain)
    if not host or not target:
        return False
    if host == target:
        return True
    if include_subdomains:
        return registrable_domain(host) == registrable_domain(target)
    return False


def is_allowed_external_host(hostname: Optional[str]) -> bool:
    """Return True for font/CDN hosts whose assets are worth mirroring."""
    host = normalize_host(hostname)
    if not host:
        return False
    return any(
        host == allowed or host.endswith("." + allowed)
        for allowed in ALLOWED_EXTERNAL_HOSTS
    )


def is_skippable_reference(value: Optional[str]) -> bool:
    """True for empty, inline-data, fragment, script, mail and phone references."""
    if not value or not value.strip():
        return True
    return value.strip().lower().startswith(_SKIPPED_PREFIXES)


def resolve_reference(
    value: Optional[str], base_url: str, *, drop_fragment: bool = False
) -> Optional[str]:
    """Resolve *value* against *base_url*, returning an absolute http(s) URL.

    Returns None for references that cannot or should not be fetched.
    """
    if is_skippable_reference(value):
        return None
    try:
        absolute = urljoin(base_url, value.strip())
        parts = urlsplit(absolute)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            return None
    except ValueError:
        LOGGER.debug("Skipping malformed reference %r on %s", value, base_url)
        return None
    if not parts.path:
        # Same document as the seed's canonical "/" form.
        absolute = urlunsplit(parts._replace(path="/"))
    if drop_fragment:
        absolute = urldefrag(absolute).url
    return absolute
