"""
Link extraction from parsed JSON values.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List

from jsoncrawl.urls import is_valid_url, resolve_url

# Embedded absolute URLs in free text: scheme followed by a run of non-space, non-quote chars
URL_PATTERN = re.compile(r"""https?://[^\s"']+""")

RELATIVE_PREFIXES = ("/", "./", "../")


def extract_urls(value: Any, base_url: str) -> List[str]:
    """
    Collect every URL referenced anywhere inside a JSON value.

    Strings are checked in order: a complete absolute URL, a path-looking
    reference ("/", "./", "../") resolved against base_url, then any absolute
    URLs embedded in free text. Results keep first-encounter order and are
    deduplicated by exact string.
    """
    found: Dict[str, None] = {}
    # Iterative pre-order walk; JSON nesting depth is unbounded
    stack: List[Any] = [value]
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            _collect_from_string(item, base_url, found)
        elif isinstance(item, (list, tuple)):
            stack.extend(reversed(item))
        elif isinstance(item, dict):
            stack.extend(reversed(list(item.values())))
    return list(found)


def _collect_from_string(text: str, base_url: str, found: Dict[str, None]) -> None:
    if is_valid_url(text):
        found.setdefault(text, None)
        return

    if text.startswith(RELATIVE_PREFIXES):
        resolved = resolve_url(base_url, text)
        if is_valid_url(resolved):
            found.setdefault(resolved, None)
        return

    for match in URL_PATTERN.findall(text):
        if is_valid_url(match):
            found.setdefault(match, None)
