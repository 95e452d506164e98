"""Package a mirror result as a ZIP archive."""

from __future__ import annotations

import io
import logging
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlsplit

from .collector import unique_path
from .document import MirrorResult

LOGGER = logging.getLogger(__name__)

README_NAME = "README.txt"
COMPRESSION_LEVEL = 6

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def format_bytes(size: int) -> str:
    """Human-readable size with up to two decimals (``1.5 KB``)."""
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    index = 0
    while value >= 1024 and index < len(_SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[index]}"


def build_readme(result: MirrorResult, *, now: Optional[datetime] = None) -> str:
    """Text of the README stored at the archive root."""
    timestamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    return (
        "Website Source Download\n"
        "======================\n"
        "\n"
        f"Source: {result.seed_url}\n"
        f"Downloaded: {timestamp}\n"
        f"Total Files: {result.file_count}\n"
        f"Total Size: {format_bytes(result.total_size)}\n"
        "\n"
        "Instructions:\n"
        "- Open index.html in your browser to view the website\n"
        "- All resources are organized in folders\n"
        "- Some external resources may not work offline\n"
    )


def readme_name(result: MirrorResult) -> str:
    """``README.txt``, suffixed when the mirror already holds an entry by that name."""
    return unique_path(README_NAME, {entry.path for entry in result.files})


def build_archive(result: MirrorResult, *, now: Optional[datetime] = None) -> bytes:
    """Return the ZIP bytes for *result*: every collected file plus a README."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(
        buffer,
        mode="w",
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=COMPRESSION_LEVEL,
    ) as archive:
        for entry in result.files:
            archive.writestr(entry.path, entry.content)
        archive.writestr(readme_name(result), build_readme(result, now=now))
    return buffer.getvalue()


def write_archive(
    result: MirrorResult,
    destination: Union[str, Path],
    *,
    now: Optional[datetime] = None,
) -> Path:
    """Write the archive for *result* to *destination* and return its path."""
    path = Path(destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = build_archive(result, now=now)
    path.write_bytes(data)
    LOGGER.info(
        "Wrote %s (%d files, %s)", path, result.file_count + 1, format_bytes(len(data))
    )
    return path


def default_archive_name(result: MirrorResult) -> str:
    """``<host>.zip`` for the seed, with dots kept and ports dropped."""
    host = (urlsplit(result.seed_url).hostname or "website").replace(":", "_")
    return f"{host}.zip"
