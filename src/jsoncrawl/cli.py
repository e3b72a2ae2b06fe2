"""
Command-line interface for the crawler.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlparse

from jsoncrawl.config import (
    DEFAULT_MAX_DEPTH,
    FETCH_TIMEOUT_S,
    CrawlOptions,
    build_headers,
    load_headers_file,
    parse_cookie,
    parse_header,
)
from jsoncrawl.core import CrawlStats, NodeStatus, URLNode, crawl
from jsoncrawl.urls import InvalidUrlError

LOGGER = logging.getLogger(__name__)

STATUS_MARKERS = {
    NodeStatus.LOADING: "…",
    NodeStatus.SUCCESS: "✓",
    NodeStatus.ERROR: "✗",
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def print_node_line(node: URLNode) -> None:
    """Print one node transition to stderr."""
    marker = STATUS_MARKERS.get(node.status, "?")
    indent = "  " * node.depth
    line = f"{indent}{marker} [{node.id}] {node.url}"
    if node.status is NodeStatus.SUCCESS:
        line += f" ({node.response_time:.0f} ms, +{len(node.discovered_urls)} urls)"
    elif node.status is NodeStatus.ERROR:
        line += f" ERROR: {node.error}"
    sys.stderr.write(line + "\n")
    sys.stderr.flush()


def print_summary(stats: CrawlStats) -> None:
    """Print crawl summary to stderr."""
    sys.stderr.write("=" * 50 + "\n")
    sys.stderr.write("CRAWL SUMMARY\n")
    sys.stderr.write("=" * 50 + "\n\n")

    sys.stderr.write(f"Total nodes:            {stats.total}\n")
    sys.stderr.write(f"Succeeded:              {stats.success}\n")
    sys.stderr.write(f"Failed:                 {stats.error}\n")
    sys.stderr.write(f"Completion:             {stats.completion:.0f}%\n")
    sys.stderr.write(f"Total response time:    {stats.total_response_time:.0f} ms\n")

    sys.stderr.write("\n")


def generate_output_path(start_url: str) -> Path:
    """Generate output path: crawls/{hostname}_{datetime}.json"""
    parsed = urlparse(start_url)
    hostname = parsed.hostname or "unknown"
    hostname_safe = hostname.replace(".", "_")
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    crawls_dir = Path("crawls")
    crawls_dir.mkdir(exist_ok=True)

    return crawls_dir / f"{hostname_safe}_{timestamp}.json"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jsoncrawl",
        description="Follow URLs referenced by JSON responses, starting from a URL, and output the discovered tree.",
    )
    parser.add_argument("start_url", help="Start URL (e.g. https://api.example.com)")
    parser.add_argument(
        "--max-depth", type=int, default=DEFAULT_MAX_DEPTH,
        help=f"Maximum link depth to follow (default: {DEFAULT_MAX_DEPTH})",
    )
    parser.add_argument(
        "--header", action="append", default=[], metavar="'NAME: VALUE'",
        help="Extra request header, may be repeated; overrides a default of the same name",
    )
    parser.add_argument("--headers-file", type=Path, help="JSON file with a header name -> value object")
    parser.add_argument("--no-default-headers", action="store_true", help="Do not send the default headers")
    parser.add_argument("--include-cookies", action="store_true", help="Send cookies with requests")
    parser.add_argument(
        "--cookie", action="append", default=[], metavar="NAME=VALUE",
        help="Cookie to send, may be repeated (requires --include-cookies)",
    )
    parser.add_argument(
        "--timeout", type=float, default=FETCH_TIMEOUT_S,
        help=f"Per-request timeout in seconds (default: {FETCH_TIMEOUT_S:g})",
    )
    parser.add_argument("--out", help="Output file path, or '-' for stdout (default: auto-generated in crawls/)")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON")
    parser.add_argument("--verbose", action="store_true", help="Show progress and summary")
    return parser


def options_from_args(args: argparse.Namespace) -> CrawlOptions:
    """Build crawl options from parsed arguments. Raises ValueError on bad input."""
    if args.max_depth < 0:
        raise ValueError("--max-depth must be 0 or greater")
    if args.timeout <= 0:
        raise ValueError("--timeout must be greater than 0")

    overrides: Dict[str, str] = {}
    if args.headers_file:
        overrides.update(load_headers_file(args.headers_file))
    overrides.update(dict(parse_header(item) for item in args.header))

    cookies = dict(parse_cookie(item) for item in args.cookie)
    if cookies and not args.include_cookies:
        LOGGER.warning("--cookie given without --include-cookies; cookies will not be sent")

    return CrawlOptions(
        max_depth=args.max_depth,
        headers=build_headers(overrides, use_defaults=not args.no_default_headers),
        include_cookies=args.include_cookies,
        cookies=cookies,
        timeout_s=args.timeout,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the crawler CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        options = options_from_args(args)
    except (OSError, ValueError) as exc:
        sys.stderr.write(f"Error: {exc}\n")
        return 2

    try:
        result = crawl(
            args.start_url,
            max_depth=options.max_depth,
            headers=options.headers,
            include_cookies=options.include_cookies,
            cookies=options.cookies,
            on_node_update=print_node_line if args.verbose else None,
            timeout_s=options.timeout_s,
        )
    except InvalidUrlError as exc:
        sys.stderr.write(f"Error: {exc}\n")
        return 2

    # Print summary if verbose
    if args.verbose:
        print_summary(result.stats)

    json_text = json.dumps(result.to_dict(), ensure_ascii=False, indent=2 if args.pretty else None)

    if args.out == "-":
        print(json_text)
    else:
        output_path = Path(args.out) if args.out else generate_output_path(args.start_url)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json_text, encoding="utf-8")
        if args.verbose:
            sys.stderr.write(f"Results written to: {output_path}\n")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
