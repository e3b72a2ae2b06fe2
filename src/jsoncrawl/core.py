"""
Core crawling logic and data structures.

The crawl is a depth-first, strictly sequential traversal: each discovered URL
is fetched and its whole subtree explored before the next sibling starts. Every
URL string gets at most one node per run; a URL reachable from several parents
is recorded under the first parent that discovered it, so the result is always
a tree even when the underlying link graph is not.
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

import requests

from jsoncrawl.config import DEFAULT_HEADERS, DEFAULT_MAX_DEPTH, FETCH_TIMEOUT_S
from jsoncrawl.extract import extract_urls
from jsoncrawl.fetch import FetchError, fetch_url
from jsoncrawl.urls import InvalidUrlError, is_valid_url

LOGGER = logging.getLogger(__name__)

GENERIC_FETCH_ERROR = "Failed to fetch"


class NodeStatus(str, Enum):
    """
    Crawl status of a node.

    The engine only ever produces LOADING followed by SUCCESS or ERROR.
    PENDING exists for consumers that show placeholder nodes.
    """
    PENDING = "pending"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(slots=True)
class URLNode:
    """One discovered URL and the outcome of fetching it."""
    id: str
    url: str
    status: NodeStatus
    depth: int
    parent_id: Optional[str] = None
    data: Any = None
    error: Optional[str] = None
    response_time: Optional[float] = None
    discovered_urls: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the exported JSON shape."""
        payload: Dict[str, Any] = {
            "id": self.id,
            "url": self.url,
            "status": self.status.value,
            "depth": self.depth,
            "parentId": self.parent_id,
            "discoveredUrls": list(self.discovered_urls),
        }
        if self.status is NodeStatus.SUCCESS:
            payload["data"] = self.data
        if self.status is NodeStatus.ERROR:
            payload["error"] = self.error
        if self.response_time is not None:
            payload["responseTime"] = self.response_time
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "URLNode":
        """Inverse of to_dict."""
        return cls(
            id=payload["id"],
            url=payload["url"],
            status=NodeStatus(payload["status"]),
            depth=payload["depth"],
            parent_id=payload.get("parentId"),
            data=payload.get("data"),
            error=payload.get("error"),
            response_time=payload.get("responseTime"),
            discovered_urls=list(payload.get("discoveredUrls") or []),
        )


@dataclass(slots=True, frozen=True)
class URLEdge:
    """Parent-to-child link derived from a node's parent_id."""
    source: str
    target: str

    def to_dict(self) -> Dict[str, str]:
        return {"source": self.source, "target": self.target}


NodeSink = Callable[[URLNode], None]


@dataclass(slots=True)
class CrawlStats:
    """Status counts over a node collection."""
    total: int = 0
    pending: int = 0
    loading: int = 0
    success: int = 0
    error: int = 0
    total_response_time: float = 0.0

    @classmethod
    def from_nodes(cls, nodes: Iterable[URLNode]) -> "CrawlStats":
        stats = cls()
        for node in nodes:
            stats.record(node)
        return stats

    def record(self, node: URLNode) -> None:
        """Count one node by its current status."""
        self.total += 1
        if node.status is NodeStatus.PENDING:
            self.pending += 1
        elif node.status is NodeStatus.LOADING:
            self.loading += 1
        elif node.status is NodeStatus.SUCCESS:
            self.success += 1
        else:
            self.error += 1
        if node.response_time is not None:
            self.total_response_time += node.response_time

    @property
    def completion(self) -> float:
        """Percentage of nodes that reached a terminal status."""
        if not self.total:
            return 0.0
        return (self.success + self.error) / self.total * 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "pending": self.pending,
            "loading": self.loading,
            "success": self.success,
            "error": self.error,
            "completion": round(self.completion, 1),
            "totalResponseTime": self.total_response_time,
        }


def build_edges(nodes: Iterable[URLNode]) -> List[URLEdge]:
    """Project one edge per non-root node, from its parent to itself."""
    return [
        URLEdge(source=node.parent_id, target=node.id)
        for node in nodes
        if node.parent_id is not None
    ]


class NodeCollector:
    """
    Sink that keeps the latest record per node id.

    Each call is an upsert: a later record for the same id replaces the earlier
    one while the node keeps its original position. Records are optionally
    forwarded to another sink afterwards.
    """

    def __init__(self, forward: Optional[NodeSink] = None):
        self._nodes: Dict[str, URLNode] = {}
        self._forward = forward

    def __call__(self, node: URLNode) -> None:
        self._nodes[node.id] = node
        if self._forward is not None:
            self._forward(node)

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def nodes(self) -> List[URLNode]:
        return list(self._nodes.values())

    def get(self, node_id: str) -> Optional[URLNode]:
        return self._nodes.get(node_id)

    def edges(self) -> List[URLEdge]:
        return build_edges(self._nodes.values())

    def stats(self) -> CrawlStats:
        return CrawlStats.from_nodes(self._nodes.values())


@dataclass(slots=True)
class CrawlResult:
    """Everything one crawl run produced."""
    seed_url: str
    max_depth: int
    nodes: List[URLNode] = field(default_factory=list)
    edges: List[URLEdge] = field(default_factory=list)
    stats: CrawlStats = field(default_factory=CrawlStats)
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Export document with every node field preserved."""
        return {
            "seedUrl": self.seed_url,
            "maxDepth": self.max_depth,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "stats": self.stats.to_dict(),
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
        }


@dataclass(slots=True)
class _Traversal:
    """State owned by a single traversal: the visited set and where nodes go."""
    max_depth: int
    visited: Set[str]
    sink: NodeSink
    headers: Optional[Mapping[str, str]]
    include_cookies: bool
    session: Optional[requests.Session]
    timeout_s: float


def utc_now_iso() -> str:
    """Return current UTC time in ISO format."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def crawl_url(
    url: str,
    depth: int,
    parent_id: Optional[str],
    max_depth: int,
    visited: Set[str],
    on_node_update: NodeSink,
    headers: Optional[Mapping[str, str]] = None,
    include_cookies: bool = False,
    *,
    session: Optional[requests.Session] = None,
    timeout_s: float = FETCH_TIMEOUT_S,
) -> None:
    """
    Fetch url and recursively crawl the URLs its JSON body references.

    Nothing is returned; every node creation and terminal update is pushed to
    on_node_update. URLs already in visited, or deeper than max_depth, are
    skipped without creating a node. Fetch failures end up as error nodes and
    never propagate; exceptions raised by on_node_update do.

    Args:
        url: URL to fetch. Not normalized, dedup is by exact string.
        depth: Hops from the seed (0 for the seed itself).
        parent_id: Id of the node whose body referenced url, None for the seed.
        max_depth: Deepest level that gets a node.
        visited: URLs already assigned a node in this run. Updated in place.
        on_node_update: Called with the full node after every state change.
        headers: Request headers, None for the fetcher's default.
        include_cookies: Whether requests carry cookies.
        session: Optional requests session shared by all fetches.
        timeout_s: Per-fetch deadline in seconds.
    """
    traversal = _Traversal(
        max_depth=max_depth,
        visited=visited,
        sink=on_node_update,
        headers=headers,
        include_cookies=include_cookies,
        session=session,
        timeout_s=timeout_s,
    )
    _visit(traversal, url, depth, parent_id)


def _visit(traversal: _Traversal, url: str, depth: int, parent_id: Optional[str]) -> None:
    if depth > traversal.max_depth or url in traversal.visited:
        return

    traversal.visited.add(url)
    node = URLNode(
        id=f"node-{len(traversal.visited)}",
        url=url,
        status=NodeStatus.LOADING,
        depth=depth,
        parent_id=parent_id,
    )
    traversal.sink(node)

    try:
        result = fetch_url(
            url,
            traversal.headers,
            traversal.include_cookies,
            session=traversal.session,
            timeout_s=traversal.timeout_s,
        )
    except FetchError as exc:
        LOGGER.warning("Failed to fetch %s: %s", url, exc)
        traversal.sink(dataclasses.replace(
            node,
            status=NodeStatus.ERROR,
            error=_error_message(exc),
            response_time=exc.response_time,
            discovered_urls=[],
        ))
        return

    discovered = extract_urls(result.data, url)
    LOGGER.debug("%s at depth %d referenced %d URL(s)", url, depth, len(discovered))
    traversal.sink(dataclasses.replace(
        node,
        status=NodeStatus.SUCCESS,
        data=result.data,
        response_time=result.response_time,
        discovered_urls=list(discovered),
    ))

    if depth < traversal.max_depth:
        for child_url in discovered:
            _visit(traversal, child_url, depth + 1, node.id)


def _error_message(exc: BaseException) -> str:
    """Message of exc, else of the exception it was raised from, else a generic one."""
    message = str(exc)
    if message:
        return message
    cause = exc.__cause__
    if cause is not None and str(cause):
        return str(cause)
    return GENERIC_FETCH_ERROR


def crawl(
    start_url: str,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    headers: Optional[Mapping[str, str]] = None,
    include_cookies: bool = False,
    cookies: Optional[Mapping[str, str]] = None,
    on_node_update: Optional[NodeSink] = None,
    timeout_s: float = FETCH_TIMEOUT_S,
) -> CrawlResult:
    """
    Run one complete crawl from start_url.

    Each run owns a fresh visited set, node collection and HTTP session.

    Args:
        start_url: Seed URL, must be an absolute URL.
        max_depth: Deepest level to crawl (0 = seed only).
        headers: Request headers; defaults to DEFAULT_HEADERS.
        include_cookies: Send cookies with requests.
        cookies: Cookies to preload into the session when include_cookies is set.
        on_node_update: Optional sink receiving every node update as it happens.
        timeout_s: Per-fetch deadline in seconds.

    Returns:
        CrawlResult with the final state of every node.

    Raises:
        InvalidUrlError: If start_url is not an absolute URL.
    """
    if not is_valid_url(start_url):
        raise InvalidUrlError(start_url)

    collector = NodeCollector(forward=on_node_update)
    request_headers = dict(headers) if headers is not None else dict(DEFAULT_HEADERS)
    started_at = utc_now_iso()

    LOGGER.info("Starting crawl from %s (max depth %d)", start_url, max_depth)
    with requests.Session() as session:
        if include_cookies and cookies:
            for name, value in cookies.items():
                session.cookies.set(name, value)
        crawl_url(
            start_url,
            0,
            None,
            max_depth,
            set(),
            collector,
            request_headers,
            include_cookies,
            session=session,
            timeout_s=timeout_s,
        )

    result = CrawlResult(
        seed_url=start_url,
        max_depth=max_depth,
        nodes=collector.nodes,
        edges=collector.edges(),
        stats=collector.stats(),
        started_at=started_at,
        finished_at=utc_now_iso(),
    )
    LOGGER.info(
        "Crawl finished: %d node(s), %d ok, %d failed",
        result.stats.total,
        result.stats.success,
        result.stats.error,
    )
    return result
