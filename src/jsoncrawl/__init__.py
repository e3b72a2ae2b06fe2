"""
Crawler that follows URLs referenced inside JSON responses, depth-first from a start URL.
Emits one record per node state change and returns the discovered tree.
"""
from jsoncrawl.core import (
    CrawlResult,
    CrawlStats,
    NodeCollector,
    NodeStatus,
    URLEdge,
    URLNode,
    build_edges,
    crawl,
    crawl_url,
)
from jsoncrawl.extract import extract_urls
from jsoncrawl.fetch import (
    FetchError,
    FetchResult,
    FetchTimeout,
    HttpStatusError,
    JsonParseError,
    NetworkError,
    NotJsonError,
    fetch_url,
)
from jsoncrawl.urls import InvalidUrlError, is_valid_url, resolve_url

__version__ = "1.0.0"
__all__ = [
    "crawl",
    "crawl_url",
    "CrawlResult",
    "CrawlStats",
    "NodeCollector",
    "NodeStatus",
    "URLEdge",
    "URLNode",
    "build_edges",
    "extract_urls",
    "fetch_url",
    "FetchResult",
    "FetchError",
    "FetchTimeout",
    "HttpStatusError",
    "JsonParseError",
    "NetworkError",
    "NotJsonError",
    "InvalidUrlError",
    "is_valid_url",
    "resolve_url",
]
