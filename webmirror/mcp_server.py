"""MCP Server for the website mirror.

Provides a single tool:
- mirror: Download a website's pages and assets, optionally into a ZIP archive

Supports both STDIO and HTTP transports.

Usage:
    # STDIO (for desktop MCP clients)
    python -m webmirror.mcp_server

    # HTTP (for remote access)
    python -m webmirror.mcp_server --transport http --port 8000

    # Or via FastMCP CLI
    fastmcp run webmirror/mcp_server.py:mcp --transport http --port 8000

Environment Variables:
    WEBMIRROR_USE_RELAYS: Route requests through public relays (default: true)
    WEBMIRROR_LOCALIZE_LINKS: Point references at archived copies (default: false)
    See .env.example for the full list.
"""

from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from dotenv import load_dotenv
from fastmcp import FastMCP

from .archive import format_bytes, write_archive
from .config import load_options_from_env
from .document import MirrorResult
from .urls import InvalidSeedError

LOGGER = logging.getLogger(__name__)

# Create the MCP server
mcp = FastMCP(
    name="Website Mirror",
    instructions="""
    A website mirroring server that provides:

    - mirror: Crawl a website (same domain, up to three link levels deep),
      download its pages, stylesheets, scripts, images, fonts and media, and
      optionally write everything to a ZIP archive.

    Output formats:
    - markdown: Short summary with the page list (default)
    - json: Full details including the file manifest and statistics
    """,
)


class OutputFormat(str, Enum):
    """Output format for mirror results."""

    markdown = "markdown"
    json = "json"


def _format_timestamp() -> str:
    """Get current timestamp in ISO format."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _format_markdown(result: MirrorResult, archive: Optional[str]) -> str:
    lines = [
        f"# {result.seed_url}",
        f"_Mirrored: {_format_timestamp()}_",
        "",
        f"**Status:** {result.status}",
    ]
    if result.error_message:
        lines.append(f"**Error:** {result.error_message}")
    lines.append(
        f"**Files:** {result.file_count} ({format_bytes(result.total_size)})"
    )
    if archive:
        lines.append(f"**Archive:** {archive}")

    if result.pages:
        lines.append("")
        lines.append("## Pages")
        lines.extend(f"- {page}" for page in result.pages)
    return "\n".join(lines)


def _format_output(
    result: MirrorResult, output_format: OutputFormat, archive: Optional[str]
) -> str:
    """Format a mirror result based on output format."""
    if output_format == OutputFormat.json:
        data = result.to_dict()
        data["mirrored_at"] = _format_timestamp()
        data["archive"] = archive
        return json.dumps(data, indent=2, ensure_ascii=False)
    return _format_markdown(result, archive)


async def mirror(
    url: str,
    output_path: Optional[str] = None,
    output_format: str = "markdown",
):
    """
    Mirror a website: its same-domain pages and their assets.

    Args:
        url: Website URL to mirror (https:// is assumed when no scheme is given)
        output_path: Where to write the ZIP archive; no archive when omitted
        output_format: Output format - "markdown" (default) or "json"
            - markdown: Status, size and the list of mirrored pages
            - json: Full details including every archived file's path, type and size

    Returns:
        A summary of the mirror in the specified format.

    Examples:
        # Summary only
        mirror(url="https://example.com")

        # Write an archive and get the manifest
        mirror(url="example.com", output_path="/tmp/example.zip", output_format="json")
    """
    from . import mirror_site_async

    # Validate output format
    try:
        fmt = OutputFormat(output_format.lower())
    except ValueError:
        fmt = OutputFormat.markdown

    LOGGER.info("Mirroring %s...", url)
    try:
        result = await mirror_site_async(url, options=load_options_from_env())
    except InvalidSeedError as exc:
        result = MirrorResult(
            seed_url=url,
            status="failed",
            error_kind="invalid_url",
            error_message=str(exc),
        )

    archive: Optional[str] = None
    if output_path and result.status == "completed":
        archive = str(write_archive(result, output_path))

    LOGGER.info(
        "Mirror %s: %d pages, %d files", result.status, len(result.pages), result.file_count
    )
    return _format_output(result, fmt, archive)


mcp.tool(mirror)


def main():
    """CLI entry point for running the MCP server."""
    parser = argparse.ArgumentParser(
        description="Run the website mirror MCP server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
    WEBMIRROR_*       Mirror tuning (see .env.example)

Examples:
    # STDIO transport (default)
    python -m webmirror.mcp_server

    # HTTP transport (for remote access)
    python -m webmirror.mcp_server --transport http --port 8000

    # Custom host/port
    python -m webmirror.mcp_server --transport http --host 0.0.0.0 --port 9000
""",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="Transport protocol (default: stdio)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to for HTTP transport (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to for HTTP transport (default: 8000)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    # Load .env before reading environment variables
    load_dotenv()

    if args.transport == "http":
        LOGGER.info("Starting MCP server on http://%s:%d/mcp", args.host, args.port)
        mcp.run(transport="http", host=args.host, port=args.port)
    else:
        LOGGER.info("Starting MCP server with STDIO transport")
        mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
