"""Command-line interface for mirroring a website into a ZIP archive."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import shutil
import signal
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .archive import default_archive_name, format_bytes, write_archive
from .cancel import CancelToken
from .cli_config import CONFIG_DIR, CONFIG_ENV_FILE, load_config
from .config import MirrorOptions, load_options_from_env
from .document import MirrorResult
from .site import mirror_site_async
from .urls import InvalidSeedError

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


def _load_config() -> None:
    load_config(
        config_dir=CONFIG_DIR,
        config_env_file=CONFIG_ENV_FILE,
        cwd=Path.cwd(),
        load_env=load_dotenv,
        copy_file=shutil.copy,
    )


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    if not verbose:
        # httpx logs every request at INFO.
        logging.getLogger("httpx").setLevel(logging.WARNING)


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="webmirror",
        description="Download a website's pages and assets into a ZIP archive.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Examples:
  # Mirror a site into example.com.zip
  webmirror example.com

  # Choose the archive path
  webmirror https://example.com -o mirrors/example.zip

  # Direct requests only, no public relays
  webmirror https://example.com --no-relays

  # Archive that browses offline (links point at local copies)
  webmirror https://example.com --localize-links

  # Machine-readable summary
  webmirror https://example.com --json
""",
    )

    parser.add_argument("url", help="Website URL to mirror (https:// is assumed)")
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Archive path (default: <host>.zip in the current directory)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Print the summary as JSON (includes the file manifest)",
    )
    parser.add_argument(
        "--no-relays",
        action="store_true",
        help="Fetch directly instead of trying public relay services first",
    )
    parser.add_argument(
        "--localize-links",
        action="store_true",
        help="Rewrite references to point at the archived copies",
    )
    parser.add_argument(
        "--include-subdomains",
        action="store_true",
        help="Also follow links into subdomains of the site",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args(argv)


def _options_from_args(args: argparse.Namespace, base: MirrorOptions) -> MirrorOptions:
    overrides: Dict[str, Any] = {}
    if args.no_relays:
        overrides["use_relays"] = False
    if args.localize_links:
        overrides["localize_links"] = True
    if args.include_subdomains:
        overrides["include_subdomains"] = True
    return replace(base, **overrides) if overrides else base


def _format_summary(result: MirrorResult, archive: Optional[Path]) -> str:
    """Format a mirror result as a short markdown summary.

    Example output:
    # Mirror: https://example.com/

    - Status: completed
    - Pages: 3
    - Files: 12 (45.2 KB)
    - Archive: example.com.zip
    """
    lines = [f"# Mirror: {result.seed_url}", ""]
    lines.append(f"- Status: {result.status}")
    lines.append(f"- Pages: {len(result.pages)}")
    lines.append(f"- Files: {result.file_count} ({format_bytes(result.total_size)})")
    placeholders = result.stats.get("placeholders", 0)
    if placeholders:
        lines.append(f"- Placeholders: {placeholders}")
    if archive is not None:
        lines.append(f"- Archive: {archive}")
    if result.error_message:
        lines.append(f"- Error: {result.error_message}")
    return "\n".join(lines)


def _print_result(
    result: MirrorResult, archive: Optional[Path], json_output: bool
) -> None:
    if json_output:
        data = result.to_dict()
        data["archive"] = str(archive) if archive is not None else None
        print(json.dumps(data, indent=2, ensure_ascii=False))
    else:
        print(_format_summary(result, archive))


def _install_interrupt(token: CancelToken) -> bool:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel, "Interrupted")
    except (NotImplementedError, RuntimeError):
        # No loop signal support (Windows); Ctrl-C surfaces as KeyboardInterrupt.
        return False
    return True


async def _run_mirror_async(args: argparse.Namespace, options: MirrorOptions) -> int:
    """Main async entry point for the mirror command."""
    token = CancelToken()
    installed = _install_interrupt(token)

    try:
        logging.info("Mirroring: %s", args.url)
        result = await mirror_site_async(args.url, options=options, token=token)
    except InvalidSeedError as exc:
        logging.error("Invalid URL: %s", exc)
        return EXIT_FAILED
    finally:
        if installed:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)

    if result.status == "cancelled":
        logging.warning("Mirror cancelled; no archive written")
        _print_result(result, None, args.json_output)
        return EXIT_CANCELLED

    if result.status != "completed":
        logging.error("Mirror failed: %s", result.error_message)
        _print_result(result, None, args.json_output)
        return EXIT_FAILED

    archive = write_archive(result, args.output or default_archive_name(result))
    _print_result(result, archive, args.json_output)
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the webmirror command."""
    args = _parse_args(argv)
    _setup_logging(args.verbose)
    _load_config()
    options = _options_from_args(args, load_options_from_env())

    try:
        return asyncio.run(_run_mirror_async(args, options))
    except KeyboardInterrupt:
        logging.info("Interrupted")
        return EXIT_CANCELLED
    except Exception as exc:
        logging.error("Error: %s", exc)
        if args.verbose:
            logging.exception("Full traceback:")
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
