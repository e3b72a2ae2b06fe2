"""
URL validation and resolution helpers.
"""
from __future__ import annotations

from urllib.parse import urljoin, urlsplit


class InvalidUrlError(ValueError):
    """Raised when a seed URL is not an absolute URL."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Invalid URL: {url!r}")


def is_valid_url(value: object) -> bool:
    """Return True if value is an absolute URL with a scheme and an authority."""
    if not isinstance(value, str) or not value:
        return False
    try:
        parsed = urlsplit(value)
        # Accessing .port validates the port component
        parsed.port
    except ValueError:
        return False

    if not parsed.scheme or not parsed.netloc:
        return False
    return not any(ch.isspace() for ch in parsed.netloc)


def resolve_url(base: str, ref: str) -> str:
    """
    Resolve ref against base.

    Absolute references pass through unchanged. If base is not an absolute URL
    or resolution fails, ref is returned as-is; callers validate the result.
    """
    if not is_valid_url(base):
        return ref
    try:
        return urljoin(base, ref)
    except ValueError:
        return ref
