"""Site mirroring: recursive same-domain crawl with batched resource downloads."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Dict, List, Optional, Tuple

import httpx

from .batching import settle_all
from .cancel import CancelToken, MirrorCancelled
from .collector import (
    FileCollector,
    binary_mime_type,
    is_binary_resource,
    mime_type_for,
)
from .config import MirrorOptions
from .context import CrawlContext
from .document import CollectedFile, MirrorResult, ResourceRef
from .extractor import extract_links, extract_resources
from .fetcher import ContentFetcher, FetchError, ProtectedContentError
from .progress import LoggingProgress, ProgressReporter, Severity, crawl_percentage
from .rewriter import rewrite_html
from .urls import InvalidSeedError, file_name, normalize_seed

LOGGER = logging.getLogger(__name__)

# Resource types stored as raw bytes regardless of their path's extension.
BINARY_RESOURCE_TYPES = frozenset({"image", "icon", "font", "media", "download", "meta"})


class FailureKind(str, Enum):
    """Human-facing classification of a run-level failure."""

    timeout = "timeout"
    network = "network"
    not_found = "not_found"
    forbidden = "forbidden"
    server_error = "server_error"
    protected = "protected"
    cancelled = "cancelled"
    generic = "generic"


FAILURE_MESSAGES: Dict[FailureKind, str] = {
    FailureKind.timeout: "Connection timed out. The website may be slow or unreachable.",
    FailureKind.network: "Network error. Check your internet connection.",
    FailureKind.not_found: "Website not found. Please verify the URL is correct.",
    FailureKind.forbidden: "Access denied by the website.",
    FailureKind.server_error: "Website server error. Try again later.",
    FailureKind.protected: "Website is protected and cannot be downloaded.",
    FailureKind.cancelled: "Download was cancelled.",
    FailureKind.generic: (
        "Failed to download website. Please try a different URL or try again later."
    ),
}

_FAILURE_PATTERNS = (
    (FailureKind.timeout, ("timeout", "timed out")),
    (FailureKind.network, ("failed to fetch", "network")),
    (FailureKind.not_found, ("404", "not found")),
    (FailureKind.forbidden, ("403", "forbidden")),
    (FailureKind.server_error, ("500",)),
    (FailureKind.protected, ("bypass", "heavily protected")),
    (FailureKind.cancelled, ("cancelled",)),
)


def classify_failure(error: BaseException) -> FailureKind:
    """Classify a run-level error by type, then by known substrings."""
    if isinstance(error, MirrorCancelled):
        return FailureKind.cancelled
    if isinstance(error, ProtectedContentError):
        return FailureKind.protected

    # The last attempt's text avoids matching words inside the URL itself.
    if isinstance(error, FetchError) and error.attempts:
        text = error.attempts[-1].lower()
    else:
        text = str(error).lower()

    for kind, needles in _FAILURE_PATTERNS:
        if any(needle in text for needle in needles):
            return kind
    return FailureKind.generic


class SiteMirror:
    """Crawl scheduler for one run.

    Pages are fetched through the fetcher, rewritten and handed to the
    collector; their resources are downloaded in settle-all batches and their
    links are followed up to ``context.max_depth``.
    """

    def __init__(
        self,
        fetcher: ContentFetcher,
        context: CrawlContext,
        *,
        token: CancelToken,
        collector: Optional[FileCollector] = None,
        reporter: Optional[ProgressReporter] = None,
        options: Optional[MirrorOptions] = None,
    ):
        self.fetcher = fetcher
        self.context = context
        self.token = token
        self.collector = collector if collector is not None else FileCollector()
        self.reporter = reporter or LoggingProgress()
        self.options = options or fetcher.options
        self.placeholders = 0
        self._localizable: List[Tuple[str, str, str]] = []

    async def crawl(self, url: str, depth: int = 0) -> None:
        """Mirror *url* and recurse into its links.

        Failures below the seed only abandon that page. A seed that cannot
        be fetched raises, as does cancellation at any depth.
        """
        if depth > self.context.max_depth or not self.context.claim(url):
            return
        self.token.raise_if_cancelled()

        pages = len(self.context.crawled_pages)
        self.reporter.progress(crawl_percentage(pages), f"Crawling page {pages + 1}...")

        try:
            content = await self.fetcher.fetch_text(url, self.token)
        except FetchError as exc:
            if depth == 0:
                raise
            LOGGER.warning("Abandoning %s: %s", url, exc)
            return

        try:
            await self._process_page(url, content, depth)
        except MirrorCancelled:
            raise
        except Exception as exc:
            LOGGER.warning("Failed to crawl %s: %s", url, exc)

    async def _process_page(self, url: str, content: str, depth: int) -> None:
        is_html = "<html" in content.lower()
        stored = rewrite_html(content, url) if is_html else content

        name = file_name(url)
        entry = self.collector.add(name, stored, mime_type_for(name), url=url)
        if is_html and self.options.localize_links:
            self._localizable.append((url, content, entry.path))
        self.context.record_page(url)

        pages = len(self.context.crawled_pages)
        self.reporter.progress(
            crawl_percentage(pages),
            f"Downloaded {pages} page{'' if pages == 1 else 's'}...",
        )

        resources = extract_resources(content, url)
        LOGGER.debug("Downloading %d resources for %s", len(resources), url)
        await settle_all(
            resources,
            self._download_resource,
            batch_size=self.options.resource_batch_size,
            pause=self.options.resource_batch_pause,
            token=self.token,
        )

        if depth < self.context.max_depth:
            links = extract_links(content, url, self.context)
            LOGGER.debug("Following %d links from %s (depth %d)", len(links), url, depth)
            await settle_all(
                links,
                lambda link: self.crawl(link, depth + 1),
                batch_size=self.options.link_batch_size,
                token=self.token,
            )

    async def _download_resource(self, resource: ResourceRef) -> Optional[CollectedFile]:
        if not self.context.claim(resource.url):
            return None

        path = resource.local_path
        binary = is_binary_resource(path) or resource.type in BINARY_RESOURCE_TYPES

        try:
            if binary:
                content = await self.fetcher.fetch_binary(resource.url, self.token)
            else:
                content = await self.fetcher.fetch_text(
                    resource.url, self.token, validate=False
                )
        except MirrorCancelled:
            raise
        except Exception as exc:
            LOGGER.warning("Failed to download resource %s: %s", resource.url, exc)
            self.placeholders += 1
            return self.collector.add_placeholder(path, resource.url, str(exc))

        if not content:
            self.placeholders += 1
            return self.collector.add_placeholder(path, resource.url)
        if binary:
            mime_type = binary_mime_type(path, getattr(content, "content_type", None))
        else:
            mime_type = mime_type_for(path)
        return self.collector.add(path, content, mime_type, url=resource.url)

    def localize_pages(self) -> None:
        """Point stored pages at the archive entries of everything collected.

        Runs after downloads so that suffixed entries (``pic/index-1.html``)
        are linked under their final paths. References to URLs that were never
        collected stay absolute.
        """
        for url, html, path in self._localizable:
            localized = rewrite_html(
                html, url, localizer=self.collector.path_for, page_path=path
            )
            self.collector.replace(path, localized)
        self._localizable.clear()


def _build_result(
    context: CrawlContext,
    collector: FileCollector,
    status: str,
    *,
    placeholders: int = 0,
    error_kind: Optional[str] = None,
    error_message: Optional[str] = None,
    error_detail: Optional[str] = None,
) -> MirrorResult:
    stats = {
        "pages": len(context.crawled_pages),
        "files": collector.file_count,
        "total_size": collector.total_size,
        "placeholders": placeholders,
        "visited": len(context.visited),
    }
    if error_detail:
        stats["error_detail"] = error_detail
    return MirrorResult(
        seed_url=context.base_url,
        status=status,
        files=list(collector.files),
        pages=list(context.crawled_pages),
        stats=stats,
        error_kind=error_kind,
        error_message=error_message,
    )


async def mirror_site_async(
    url: str,
    *,
    options: Optional[MirrorOptions] = None,
    reporter: Optional[ProgressReporter] = None,
    token: Optional[CancelToken] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> MirrorResult:
    """
    Mirror a website starting from a seed URL.

    Args:
        url: The seed URL (scheme optional, defaults to https).
        options: Optional MirrorOptions; defaults apply otherwise.
        reporter: Progress collaborator; defaults to logging.
        token: Cancel token shared by every fetch of the run.
        transport: Optional httpx transport (testing, proxies).

    Returns:
        MirrorResult with status ``completed``, ``cancelled`` or ``failed``.

    Raises:
        InvalidSeedError: If the seed URL is rejected.
    """
    seed = normalize_seed(url)
    if not seed.is_valid:
        raise InvalidSeedError(seed.error)

    options = options or MirrorOptions()
    reporter = reporter or LoggingProgress()
    token = token or CancelToken()
    context = CrawlContext.from_seed(seed, include_subdomains=options.include_subdomains)
    collector = FileCollector()
    mirror: Optional[SiteMirror] = None

    reporter.progress(1, "Starting website extraction...")
    reporter.progress(10, "Loading main page...")

    try:
        async with ContentFetcher(
            options, transport=transport, referer=context.base_url
        ) as fetcher:
            mirror = SiteMirror(
                fetcher,
                context,
                token=token,
                collector=collector,
                reporter=reporter,
                options=options,
            )
            await mirror.crawl(context.base_url)
            mirror.localize_pages()
    except MirrorCancelled as exc:
        LOGGER.info("Mirror of %s cancelled", context.base_url)
        if mirror is not None:
            mirror.localize_pages()
        reporter.status("Download cancelled by user.", Severity.error)
        return _build_result(
            context,
            collector,
            "cancelled",
            placeholders=mirror.placeholders if mirror else 0,
            error_kind=FailureKind.cancelled.value,
            error_message=FAILURE_MESSAGES[FailureKind.cancelled],
            error_detail=str(exc),
        )
    except Exception as exc:
        kind = classify_failure(exc)
        LOGGER.error("Failed to mirror %s: %s", context.base_url, exc)
        reporter.status(
            f"Failed to download website: {FAILURE_MESSAGES[kind]}", Severity.error
        )
        return _build_result(
            context,
            collector,
            "failed",
            placeholders=mirror.placeholders if mirror else 0,
            error_kind=kind.value,
            error_message=FAILURE_MESSAGES[kind],
            error_detail=str(exc),
        )

    reporter.progress(85, "Processing downloaded files...")
    result = _build_result(
        context, collector, "completed", placeholders=mirror.placeholders
    )
    reporter.progress(100, "Mirror complete")
    reporter.status(
        f"Website mirrored: {len(result.pages)} pages, {result.file_count} files.",
        Severity.success,
    )
    LOGGER.info(
        "Mirror of %s complete: %d pages, %d files (%d placeholders)",
        context.base_url,
        len(result.pages),
        result.file_count,
        mirror.placeholders,
    )
    return result


def mirror_site(
    url: str,
    *,
    options: Optional[MirrorOptions] = None,
    reporter: Optional[ProgressReporter] = None,
    token: Optional[CancelToken] = None,
) -> MirrorResult:
    """Synchronous wrapper for mirror_site_async."""
    return asyncio.run(
        mirror_site_async(url, options=options, reporter=reporter, token=token)
    )
