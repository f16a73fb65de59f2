"""Graph traversal over knowledge links.

Paths are interned once into integer node ids; adjacency lists hold link
indices and BFS visited sets hold node ids, so cycles terminate without
repeated string hashing.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from locus.db.models import KnowledgeLink, Relationship, normalize_path
from locus.db.repository import Repository

MIN_DEPTH = 1
MAX_DEPTH = 5
DEFAULT_DEPTH = 2


class Direction(str, Enum):
    OUTGOING = "outgoing"
    INCOMING = "incoming"
    BOTH = "both"


@dataclass
class GraphNode:
    """A visited file with its (filtered) edges, built during traversal."""

    path: str
    outgoing: list[KnowledgeLink] = field(default_factory=list)
    incoming: list[KnowledgeLink] = field(default_factory=list)
    depth: int = 0


@dataclass
class TraversalResult:
    """BFS result.

    Attributes:
        start: Normalised start path.
        nodes: Visited nodes in BFS order, start first.
        total_links: Sum of per-node edge counts; an edge between two visited
            nodes is counted once at each end.
        unique_links: Distinct edges seen across all visited nodes.
    """

    start: str
    nodes: list[GraphNode]
    total_links: int
    unique_links: int

    @property
    def paths(self) -> list[str]:
        return [n.path for n in self.nodes]


@dataclass
class AdjacencyList:
    nodes: dict[str, set[str]]
    links: dict[str, KnowledgeLink]


class LinkGraph:
    """In-memory arena of the link graph."""

    def __init__(self, links: Iterable[KnowledgeLink]) -> None:
        self._ids: dict[str, int] = {}
        self._paths: list[str] = []
        self._out: list[list[int]] = []
        self._in: list[list[int]] = []
        self._links: list[KnowledgeLink] = []
        self._ends: list[tuple[int, int]] = []

        for link in links:
            src = self._intern(link.source)
            dst = self._intern(link.target)
            li = len(self._links)
            self._links.append(link)
            self._ends.append((src, dst))
            self._out[src].append(li)
            self._in[dst].append(li)

    @classmethod
    def from_repo(cls, repo: Repository) -> LinkGraph:
        return cls(repo.all_links())

    def __len__(self) -> int:
        return len(self._paths)

    def _intern(self, path: str) -> int:
        node = self._ids.get(path)
        if node is None:
            node = len(self._paths)
            self._ids[path] = node
            self._paths.append(path)
            self._out.append([])
            self._in.append([])
        return node

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def traverse(
        self,
        start: str,
        depth: int = DEFAULT_DEPTH,
        relationship: Relationship | None = None,
        direction: Direction = Direction.BOTH,
    ) -> TraversalResult:
        """Breadth-first walk from *start*.

        *depth* is clamped to [1, 5]. Bidirectional edges are walked both
        ways whatever *direction* says.
        """
        depth = max(MIN_DEPTH, min(MAX_DEPTH, depth))
        start_path = normalize_path(start)
        root = self._ids.get(start_path)
        if root is None:
            return TraversalResult(start_path, [GraphNode(start_path)], 0, 0)

        want_out = direction in (Direction.OUTGOING, Direction.BOTH)
        want_in = direction in (Direction.INCOMING, Direction.BOTH)

        visited = {root}
        queue: deque[tuple[int, int]] = deque([(root, 0)])
        nodes: list[GraphNode] = []
        total = 0
        seen_links: set[int] = set()

        while queue:
            node, level = queue.popleft()
            out = [li for li in self._out[node] if self._keep(li, relationship, want_out)]
            inc = [li for li in self._in[node] if self._keep(li, relationship, want_in)]

            nodes.append(
                GraphNode(
                    path=self._paths[node],
                    outgoing=[self._links[li] for li in out],
                    incoming=[self._links[li] for li in inc],
                    depth=level,
                )
            )
            total += len(out) + len(inc)
            seen_links.update(out)
            seen_links.update(inc)

            if level >= depth:
                continue
            neighbours = [self._ends[li][1] for li in out] + [self._ends[li][0] for li in inc]
            for nb in neighbours:
                if nb not in visited:
                    visited.add(nb)
                    queue.append((nb, level + 1))

        return TraversalResult(start_path, nodes, total, len(seen_links))

    def _keep(self, li: int, relationship: Relationship | None, wanted: bool) -> bool:
        link = self._links[li]
        if relationship is not None and link.relationship is not relationship:
            return False
        return wanted or link.bidirectional

    def find_path(self, source: str, target: str) -> list[KnowledgeLink] | None:
        """Shortest edge chain from *source* to *target*, ignoring edge direction.

        Returns ``[]`` when both are the same file and ``None`` when *target*
        is unreachable.
        """
        src_path = normalize_path(source)
        dst_path = normalize_path(target)
        if src_path == dst_path:
            return []
        src = self._ids.get(src_path)
        dst = self._ids.get(dst_path)
        if src is None or dst is None:
            return None

        came_from: dict[int, tuple[int, int]] = {}
        visited = {src}
        queue: deque[int] = deque([src])
        while queue:
            node = queue.popleft()
            steps = [(li, self._ends[li][1]) for li in self._out[node]]
            steps += [(li, self._ends[li][0]) for li in self._in[node]]
            for li, nb in steps:
                if nb in visited:
                    continue
                visited.add(nb)
                came_from[nb] = (node, li)
                if nb == dst:
                    return self._chain(came_from, src, dst)
                queue.append(nb)
        return None

    def _chain(self, came_from: dict[int, tuple[int, int]], src: int, dst: int) -> list[KnowledgeLink]:
        chain: list[KnowledgeLink] = []
        node = dst
        while node != src:
            node, li = came_from[node]
            chain.append(self._links[li])
        chain.reverse()
        return chain

    # ------------------------------------------------------------------
    # Whole-graph views
    # ------------------------------------------------------------------

    def adjacency_list(self) -> AdjacencyList:
        """``path -> connected paths`` plus ``id -> link``.

        Every endpoint appears as a node; a bidirectional edge is also added
        in reverse.
        """
        nodes: dict[str, set[str]] = {path: set() for path in self._paths}
        links: dict[str, KnowledgeLink] = {}
        for link in self._links:
            nodes[link.source].add(link.target)
            if link.bidirectional:
                nodes[link.target].add(link.source)
            links[link.id] = link
        return AdjacencyList(nodes=nodes, links=links)

    def prerequisite_chain(self, path: str) -> list[str]:
        """Everything *path* transitively requires (BFS order, start excluded)."""
        result = self.traverse(path, MAX_DEPTH, Relationship.REQUIRES, Direction.OUTGOING)
        return result.paths[1:]

    def dependents(self, path: str) -> list[str]:
        """Everything that transitively requires *path* (BFS order, start excluded)."""
        result = self.traverse(path, MAX_DEPTH, Relationship.REQUIRES, Direction.INCOMING)
        return result.paths[1:]

    def contradictions(self, path: str) -> list[KnowledgeLink]:
        """``contradicts`` links touching *path*, in either direction."""
        node = self._ids.get(normalize_path(path))
        if node is None:
            return []
        return [
            self._links[li]
            for li in self._out[node] + self._in[node]
            if self._links[li].relationship is Relationship.CONTRADICTS
        ]


# ------------------------------------------------------------------
# Repository-backed entry points
# ------------------------------------------------------------------


def traverse_graph(
    repo: Repository,
    start: str,
    depth: int = DEFAULT_DEPTH,
    relationship: Relationship | None = None,
    direction: Direction = Direction.BOTH,
) -> TraversalResult:
    return LinkGraph.from_repo(repo).traverse(start, depth, relationship, direction)


def find_path(repo: Repository, source: str, target: str) -> list[KnowledgeLink] | None:
    return LinkGraph.from_repo(repo).find_path(source, target)


def build_adjacency_list(repo: Repository) -> AdjacencyList:
    return LinkGraph.from_repo(repo).adjacency_list()


def get_prerequisite_chain(repo: Repository, path: str) -> list[str]:
    return LinkGraph.from_repo(repo).prerequisite_chain(path)


def get_dependents(repo: Repository, path: str) -> list[str]:
    return LinkGraph.from_repo(repo).dependents(path)


def find_contradictions(repo: Repository, path: str) -> list[KnowledgeLink]:
    return LinkGraph.from_repo(repo).contradictions(path)
