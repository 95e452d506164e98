"""Discover sub-resources and same-domain links in a page."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterator, List, Optional, Tuple

from bs4 import BeautifulSoup

from .context import CrawlContext
from .document import ResourceRef
from .urls import hostname_of, is_allowed_external_host, local_path, resolve_reference

LOGGER = logging.getLogger(__name__)

CSS_URL_RE = re.compile(r"url\(['\"]?([^'\")\s]+)['\"]?\)")
SRCSET_SPLIT_RE = re.compile(r"\s*,\s*")
WS_RE = re.compile(r"\s+")
DOWNLOAD_RE = re.compile(
    r"\.(pdf|zip|rar|doc|docx|xls|xlsx|ppt|pptx|mp3|mp4|avi|mov|jpg|png|gif|svg)$",
    re.IGNORECASE,
)

LAZY_IMAGE_ATTRS = ("src", "data-src", "data-lazy-src", "data-original")
SOCIAL_META = ("og:image", "twitter:image", "og:video")


def parse_html(html: str) -> BeautifulSoup:
    """Lenient parse; attribute values stay plain strings."""
    return BeautifulSoup(html or "", "html.parser", multi_valued_attributes=None)


def parse_srcset(value: Optional[str]) -> List[str]:
    urls: List[str] = []
    if not value:
        return urls
    for candidate in SRCSET_SPLIT_RE.split(value.strip()):
        if not candidate:
            continue
        parts = WS_RE.split(candidate.strip())
        if parts and parts[0]:
            urls.append(parts[0])
    return urls


def parse_css_urls(text: Optional[str]) -> List[str]:
    if not text or "url(" not in text:
        return []
    return [match.group(1) for match in CSS_URL_RE.finditer(text)]


def _iter_candidates(soup: BeautifulSoup) -> Iterator[Tuple[Optional[str], str]]:
    """Yield ``(raw reference, resource type)`` pairs in document order per category."""
    for link in soup.select(
        'link[rel="stylesheet"], link[type="text/css"], link[href*=".css"]'
    ):
        yield link.get("href"), "css"

    for script in soup.select("script[src]"):
        yield script.get("src"), "js"

    for img in soup.select("img"):
        src = next((img.get(attr) for attr in LAZY_IMAGE_ATTRS if img.get(attr)), None)
        yield src, "image"
        for url in parse_srcset(img.get("srcset") or img.get("data-srcset")):
            yield url, "image"

    for source in soup.select("source[src], source[srcset]"):
        yield source.get("src"), "image"
        for url in parse_srcset(source.get("srcset")):
            yield url, "image"

    for element in soup.select("[style]"):
        for url in parse_css_urls(element.get("style")):
            yield url, "image"

    for style in soup.find_all("style"):
        for url in parse_css_urls(style.get_text()):
            yield url, "image"

    for icon in soup.select('link[rel*="icon"]'):
        yield icon.get("href"), "icon"

    for font in soup.select(
        'link[rel="preload"][as="font"], link[href*=".woff"], link[href*=".ttf"], '
        'link[href*=".otf"], link[href*=".eot"]'
    ):
        yield font.get("href"), "font"

    for media in soup.select(
        "video[src], video source[src], audio[src], audio source[src], video[poster]"
    ):
        yield media.get("src"), "media"
        yield media.get("poster"), "image"

    for element in soup.select("embed[src], object[data], iframe[src]"):
        yield element.get("src") or element.get("data"), "resource"

    for anchor in soup.select("a[href]"):
        href = (anchor.get("href") or "").strip()
        if DOWNLOAD_RE.search(href):
            yield href, "download"

    for meta in soup.select("meta[content]"):
        prop = meta.get("property") or meta.get("name")
        if prop in SOCIAL_META:
            yield meta.get("content"), "meta"

    for manifest in soup.select('link[rel="manifest"]'):
        yield manifest.get("href"), "manifest"

    for preload in soup.select('link[rel="preload"]'):
        yield preload.get("href"), preload.get("as") or "resource"


def extract_resources(html: str, page_url: str) -> List[ResourceRef]:
    """Return the page's mirrorable sub-resources.

    Only resources on the page's own host or an allow-listed CDN/font host are
    kept. Duplicates (same url, type and path) collapse; the first discovery
    order is preserved.
    """
    soup = parse_html(html)
    page_host = hostname_of(page_url)
    found: Dict[ResourceRef, None] = {}

    for raw, kind in _iter_candidates(soup):
        absolute = resolve_reference(raw, page_url, drop_fragment=True)
        if absolute is None:
            continue
        host = hostname_of(absolute)
        if host != page_host and not is_allowed_external_host(host):
            continue
        found.setdefault(
            ResourceRef(url=absolute, type=kind, local_path=local_path(absolute)), None
        )

    LOGGER.debug("Found %d resources on %s", len(found), page_url)
    return list(found)


def extract_links(html: str, page_url: str, context: CrawlContext) -> List[str]:
    """Return unvisited in-scope hyperlinks of the page, fragments removed."""
    soup = parse_html(html)
    links: Dict[str, None] = {}

    for anchor in soup.select("a[href]"):
        absolute = resolve_reference(anchor.get("href"), page_url, drop_fragment=True)
        if absolute is None:
            continue
        if context.in_scope(absolute) and absolute not in context.visited:
            links.setdefault(absolute, None)

    return list(links)
