"""Website mirroring into a self-contained archive.

This module provides a clean API for downloading a website's pages and the
assets they reference. It supports:

- Recursive same-domain crawling, up to three link levels below the seed
- Fetching through public relay services with a direct-request fallback
- Rejecting bot-challenge and error pages
- Absolutizing (or localizing) references in the stored HTML
- Cooperative cancellation and progress reporting
- Packaging the result as a ZIP archive

Example usage:

    from webmirror import mirror_site_async, write_archive

    result = await mirror_site_async("example.com")
    if result.status == "completed":
        write_archive(result, "example.zip")
    for entry in result.manifest():
        print(entry["path"], entry["size"])

    # Cancellation from another task
    from webmirror import CancelToken
    token = CancelToken()
    task = asyncio.create_task(mirror_site_async("example.com", token=token))
    token.cancel()
    result = await task  # result.status == "cancelled"
"""

from __future__ import annotations

from .archive import build_archive, build_readme, format_bytes, write_archive
from .cancel import CancelToken, MirrorCancelled
from .collector import FileCollector, mime_type_for
from .config import MAX_DEPTH, MirrorOptions, load_options_from_env
from .document import CollectedFile, MirrorResult, ResourceRef
from .fetcher import ContentFetcher, FetchError, FetchTimeout, ProtectedContentError
from .progress import LoggingProgress, ProgressReporter, Severity
from .site import (
    FailureKind,
    SiteMirror,
    classify_failure,
    mirror_site,
    mirror_site_async,
)
from .urls import InvalidSeedError, normalize_seed
from .validator import is_valid_content

__all__ = [
    # Result types
    "MirrorResult",
    "CollectedFile",
    "ResourceRef",
    # Options
    "MAX_DEPTH",
    "MirrorOptions",
    "load_options_from_env",
    # Errors
    "InvalidSeedError",
    "FetchError",
    "FetchTimeout",
    "ProtectedContentError",
    "MirrorCancelled",
    "FailureKind",
    "classify_failure",
    # Building blocks
    "CancelToken",
    "ContentFetcher",
    "FileCollector",
    "SiteMirror",
    "is_valid_content",
    "mime_type_for",
    "normalize_seed",
    # Progress
    "ProgressReporter",
    "LoggingProgress",
    "Severity",
    # Mirroring
    "mirror_site",
    "mirror_site_async",
    # Archive
    "build_archive",
    "build_readme",
    "format_bytes",
    "write_archive",
]
