"""Accumulates mirrored files for the archiver."""

from __future__ import annotations

import logging
import mimetypes
import posixpath
from dataclasses import replace
from typing import Container, Dict, Iterator, List, Optional, Tuple

from .document import CollectedFile, FileContent

LOGGER = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
PLACEHOLDER_MIME_TYPE = "text/plain"

MIME_TYPES: Dict[str, str] = {
    # Web
    "html": "text/html",
    "htm": "text/html",
    "css": "text/css",
    "js": "application/javascript",
    "mjs": "application/javascript",
    "jsx": "application/javascript",
    "ts": "application/typescript",
    "tsx": "application/typescript",
    "json": "application/json",
    "xml": "application/xml",
    "php": "application/x-php",
    "asp": "application/x-asp",
    "jsp": "application/x-jsp",
    # Images
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "ico": "image/x-icon",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "tiff": "image/tiff",
    "tif": "image/tiff",
    "avif": "image/avif",
    "heic": "image/heic",
    "heif": "image/heif",
    # Fonts
    "woff": "font/woff",
    "woff2": "font/woff2",
    "ttf": "font/ttf",
    "eot": "application/vnd.ms-fontobject",
    "otf": "font/otf",
    # Video
    "mp4": "video/mp4",
    "webm": "video/webm",
    "ogv": "video/ogg",
    "avi": "video/x-msvideo",
    "mov": "video/quicktime",
    "wmv": "video/x-ms-wmv",
    "flv": "video/x-flv",
    "mkv": "video/x-matroska",
    "3gp": "video/3gpp",
    # Audio
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "flac": "audio/flac",
    "aac": "audio/aac",
    "ogg": "audio/ogg",
    "oga": "audio/ogg",
    "wma": "audio/x-ms-wma",
    "m4a": "audio/mp4",
    # Documents
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "txt": "text/plain",
    "rtf": "application/rtf",
    # Archives
    "zip": "application/zip",
    "rar": "application/x-rar-compressed",
    "7z": "application/x-7z-compressed",
    "tar": "application/x-tar",
    "gz": "application/gzip",
    "bz2": "application/x-bzip2",
    # Other
    "manifest": "application/manifest+json",
    "webmanifest": "application/manifest+json",
    "appcache": "text/cache-manifest",
    "map": "application/json",
    "wasm": "application/wasm",
}

_TYPE_FALLBACKS = {"css": "text/css", "js": "application/javascript"}
_PASSTHROUGH_PREFIXES = ("image/", "font/", "video/", "audio/")

BINARY_EXTENSIONS = frozenset(
    {
        "woff", "woff2", "ttf", "eot", "otf",
        "png", "jpg", "jpeg", "gif", "svg", "ico", "webp", "bmp",
        "pdf", "zip", "exe", "dmg",
        "mp4", "avi", "mov", "webm", "mp3", "wav", "flac",
    }
)


def _extension(path: str) -> str:
    name = posixpath.basename(path) or path
    return name.rsplit(".", 1)[-1].lower() if "." in name else name.lower()


def mime_type_for(path_or_type: str) -> str:
    """Guess a MIME type from a file path, a bare extension or a type name."""
    if not path_or_type:
        return DEFAULT_MIME_TYPE
    mapped = MIME_TYPES.get(_extension(path_or_type))
    if mapped:
        return mapped
    if path_or_type.startswith(_PASSTHROUGH_PREFIXES):
        return path_or_type
    if path_or_type in _TYPE_FALLBACKS:
        return _TYPE_FALLBACKS[path_or_type]
    guessed, _ = mimetypes.guess_type(path_or_type, strict=False)
    return guessed or DEFAULT_MIME_TYPE


def is_binary_resource(path: str, mime_type: Optional[str] = None) -> bool:
    """True when *path* should be fetched and stored as raw bytes."""
    mime = mime_type or mime_type_for(path)
    if mime.startswith(("image/", "video/", "audio/")) or "font" in mime:
        return True
    return _extension(path) in BINARY_EXTENSIONS


def placeholder_text(url: str, error: Optional[str] = None) -> str:
    """HTML comment recorded in place of a resource that could not be fetched."""
    if error:
        return f"<!-- Failed to download: {url} - {error} -->"
    return f"<!-- Failed to download: {url} -->"


def content_size(content: FileContent) -> int:
    if isinstance(content, bytes):
        return len(content)
    return len(content.encode("utf-8"))


def media_type(header: Optional[str]) -> Optional[str]:
    """``image/png`` out of ``image/png; charset=binary``; None when absent."""
    if not header:
        return None
    value = header.split(";", 1)[0].strip().lower()
    return value or None


def binary_mime_type(path: str, served_type: Optional[str] = None) -> str:
    """MIME type for bytes stored at *path*.

    The path's own type wins unless it is unknown or textual (an extension-less
    URL is stored as ``.../index.html``); then the served type is used.
    """
    guessed = mime_type_for(path)
    if guessed != DEFAULT_MIME_TYPE and not guessed.startswith("text/"):
        return guessed
    return media_type(served_type) or DEFAULT_MIME_TYPE


def unique_path(path: str, taken: Container[str]) -> str:
    """*path*, or the first ``stem-N.ext`` variant not in *taken*."""
    if path not in taken:
        return path
    stem, ext = posixpath.splitext(path)
    counter = 1
    while f"{stem}-{counter}{ext}" in taken:
        counter += 1
    return f"{stem}-{counter}{ext}"


class FileCollector:
    """Ordered, append-only set of archive entries.

    Colliding paths are disambiguated with a numeric suffix before the
    extension (``style.css`` then ``style-1.css``) so entry paths stay unique.
    Entries added with their source URL can be looked up with
    :meth:`path_for`.
    """

    def __init__(self) -> None:
        self._files: List[CollectedFile] = []
        self._paths: Dict[str, int] = {}
        self._urls: Dict[str, str] = {}

    def add(
        self,
        path: str,
        content: FileContent,
        mime_type: str,
        *,
        url: Optional[str] = None,
    ) -> CollectedFile:
        unique = unique_path(path, self._paths)
        if unique != path:
            LOGGER.debug("Path %s already collected; storing as %s", path, unique)
        entry = CollectedFile(
            path=unique,
            content=content,
            mime_type=mime_type,
            size=content_size(content),
        )
        self._paths[unique] = len(self._files)
        self._files.append(entry)
        if url is not None:
            self._urls.setdefault(url, unique)
        return entry

    def add_placeholder(
        self, path: str, url: str, error: Optional[str] = None
    ) -> CollectedFile:
        return self.add(
            path, placeholder_text(url, error), PLACEHOLDER_MIME_TYPE, url=url
        )

    def replace(self, path: str, content: FileContent) -> CollectedFile:
        """Swap the content of the entry stored at *path*, keeping its position."""
        index = self._paths[path]
        entry = replace(self._files[index], content=content, size=content_size(content))
        self._files[index] = entry
        return entry

    def get(self, path: str) -> Optional[CollectedFile]:
        index = self._paths.get(path)
        return None if index is None else self._files[index]

    def path_for(self, url: str) -> Optional[str]:
        """Archive path the content of *url* was stored under, if any."""
        return self._urls.get(url)

    @property
    def files(self) -> Tuple[CollectedFile, ...]:
        return tuple(self._files)

    @property
    def file_count(self) -> int:
        return len(self._files)

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self._files)

    def __len__(self) -> int:
        return len(self._files)

    def __iter__(self) -> Iterator[CollectedFile]:
        return iter(list(self._files))
