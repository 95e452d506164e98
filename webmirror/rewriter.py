"""Rewrite a page's references before it is stored in the archive."""

from __future__ import annotations

import logging
import posixpath
from typing import Callable, List, Optional, Tuple
from urllib.parse import urldefrag

from bs4 import Doctype

from .extractor import CSS_URL_RE, parse_html, parse_srcset
from .urls import is_skippable_reference, local_path, resolve_reference

LOGGER = logging.getLogger(__name__)

# (selector, attribute) pairs whose values are rewritten.
REWRITE_TARGETS: List[Tuple[str, str]] = [
    ("link[href]", "href"),
    ("script[src]", "src"),
    ("img[src]", "src"),
    ("img[data-src]", "data-src"),
    ("img[srcset]", "srcset"),
    ("source[src]", "src"),
    ("source[srcset]", "srcset"),
    ("video[src]", "src"),
    ("video[poster]", "poster"),
    ("audio[src]", "src"),
    ("embed[src]", "src"),
    ("object[data]", "data"),
    ("iframe[src]", "src"),
    ("a[href]", "href"),
]

# Maps an absolute URL to an archive path, or None to keep the URL.
Localizer = Callable[[str], Optional[str]]


def relative_link(from_path: str, to_path: str) -> str:
    """Relative reference from archive file *from_path* to *to_path*."""
    start = posixpath.dirname(from_path) or "."
    return posixpath.relpath(to_path, start=start)


class _ReferenceRewriter:
    def __init__(
        self, page_url: str, localizer: Optional[Localizer], page_path: Optional[str]
    ):
        self.page_url = page_url
        self.page_path = page_path or local_path(page_url)
        self.localizer = localizer

    def rewrite(self, value: str) -> str:
        if is_skippable_reference(value):
            return value
        stripped = value.strip()
        if self.localizer is None and stripped.lower().startswith("http"):
            return value
        absolute = resolve_reference(stripped, self.page_url)
        if absolute is None:
            LOGGER.debug("Invalid URL left untouched: %r", value)
            return value
        if self.localizer is not None:
            document, fragment = urldefrag(absolute)
            target = self.localizer(document)
            if target:
                link = relative_link(self.page_path, target)
                return f"{link}#{fragment}" if fragment else link
        return absolute

    def rewrite_srcset(self, value: str) -> str:
        candidates = []
        for candidate in value.split(","):
            parts = candidate.strip().split(None, 1)
            if not parts:
                continue
            descriptor = f" {parts[1]}" if len(parts) > 1 else ""
            candidates.append(self.rewrite(parts[0]) + descriptor)
        return ", ".join(candidates)

    def rewrite_css(self, css: str) -> str:
        def _replace(match):
            url = match.group(1)
            if url.startswith("data:"):
                return match.group(0)
            rewritten = self.rewrite(url)
            if rewritten == url:
                return match.group(0)
            return f"url('{rewritten}')"

        return CSS_URL_RE.sub(_replace, css)


def rewrite_html(
    html: str,
    page_url: str,
    *,
    localizer: Optional[Localizer] = None,
    page_path: Optional[str] = None,
) -> str:
    """Make every resource/link reference in *html* absolute.

    With a *localizer*, references it knows are instead pointed at their
    archive copies, relative to the page's archive path (*page_path*, by
    default the page URL's :func:`~webmirror.urls.local_path`). Inline ``style``
    attributes and ``<style>`` blocks have their ``url(...)`` values rewritten
    the same way.
    """
    soup = parse_html(html)
    rewriter = _ReferenceRewriter(page_url, localizer, page_path)

    for selector, attr in REWRITE_TARGETS:
        for element in soup.select(selector):
            value = element.get(attr)
            if not value:
                continue
            if attr == "srcset":
                element[attr] = rewriter.rewrite_srcset(value)
            else:
                element[attr] = rewriter.rewrite(value)

    for element in soup.select("[style]"):
        style = element.get("style")
        if style and "url(" in style:
            element["style"] = rewriter.rewrite_css(style)

    for style_tag in soup.find_all("style"):
        css = style_tag.get_text()
        if css and "url(" in css:
            style_tag.string = rewriter.rewrite_css(css)

    for item in list(soup.contents):
        if isinstance(item, Doctype):
            item.extract()

    return "<!DOCTYPE html>\n" + str(soup).lstrip()
