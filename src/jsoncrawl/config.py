"""
Crawl defaults and helpers for turning command-line input into crawl options.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Tuple

DEFAULT_MAX_DEPTH = 3

# Hard wall-clock bound for one fetch, in seconds
FETCH_TIMEOUT_S = 10.0

DEFAULT_HEADERS: Dict[str, str] = {
    "accept": "application/json",
    "accept-language": "en-GB,en-US;q=0.9,en;q=0.8",
    "content-type": "application/json",
}


@dataclass
class CrawlOptions:
    """Options for one crawl run."""

    max_depth: int = DEFAULT_MAX_DEPTH
    headers: Optional[Dict[str, str]] = None
    include_cookies: bool = False
    cookies: Dict[str, str] = field(default_factory=dict)
    timeout_s: float = FETCH_TIMEOUT_S


def parse_header(text: str) -> Tuple[str, str]:
    """Parse a "Name: value" header argument."""
    name, sep, value = text.partition(":")
    name = name.strip()
    if not sep or not name:
        raise ValueError(f"Invalid header {text!r}, expected 'Name: value'")
    return name, value.strip()


def parse_cookie(text: str) -> Tuple[str, str]:
    """Parse a "name=value" cookie argument."""
    name, sep, value = text.partition("=")
    name = name.strip()
    if not sep or not name:
        raise ValueError(f"Invalid cookie {text!r}, expected 'name=value'")
    return name, value.strip()


def load_headers_file(path: Path) -> Dict[str, str]:
    """Load a JSON object mapping header names to string values."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Headers file {path} is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Headers file {path} must contain a JSON object")
    for name, value in data.items():
        if not isinstance(value, str):
            raise ValueError(f"Header {name!r} in {path} must be a string")
    return dict(data)


def build_headers(
    overrides: Iterable[Tuple[str, str]] | Mapping[str, str] = (),
    use_defaults: bool = True,
) -> Dict[str, str]:
    """
    Merge user headers over the defaults.

    Header names compare case-insensitively; an override replaces the default
    entry and keeps the spelling the user gave.
    """
    headers: Dict[str, str] = dict(DEFAULT_HEADERS) if use_defaults else {}
    items = overrides.items() if isinstance(overrides, Mapping) else overrides
    for name, value in items:
        for existing in [key for key in headers if key.lower() == name.lower()]:
            del headers[existing]
        headers[name] = value
    return headers
