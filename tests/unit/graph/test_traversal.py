"""Tests for BFS traversal, path finding and whole-graph views."""

from __future__ import annotations

import pytest

from locus.db.models import KnowledgeLink, Relationship
from locus.graph.links import link_id
from locus.graph.traversal import (
    Direction,
    LinkGraph,
    build_adjacency_list,
    find_path,
    traverse_graph,
)


def _link(source, target, rel=Relationship.RELATES_TO, bidirectional=False) -> KnowledgeLink:
    return KnowledgeLink(
        id=link_id(source, target, rel),
        source=source,
        target=target,
        relationship=rel,
        bidirectional=bidirectional,
    )


def _chain(*paths, rel=Relationship.REQUIRES) -> list[KnowledgeLink]:
    return [_link(a, b, rel) for a, b in zip(paths, paths[1:])]


# ------------------------------------------------------------------
# traverse
# ------------------------------------------------------------------


def test_two_cycle_visits_each_node_once():
    graph = LinkGraph([_link("/a", "/b"), _link("/b", "/a")])
    result = graph.traverse("/a", depth=1)
    assert result.paths == ["/a", "/b"]
    assert result.unique_links == 2
    # Each edge is counted at both of its visited ends.
    assert result.total_links == 4


def test_depth_limits_walk():
    graph = LinkGraph(_chain("/a", "/b", "/c", "/d"))
    assert graph.traverse("/a", depth=1, direction=Direction.OUTGOING).paths == ["/a", "/b"]
    result = graph.traverse("/a", depth=2, direction=Direction.OUTGOING)
    assert result.paths == ["/a", "/b", "/c"]
    assert [n.depth for n in result.nodes] == [0, 1, 2]


@pytest.mark.parametrize("depth,expected", [(0, 2), (-3, 2), (99, 6)])
def test_depth_is_clamped(depth, expected):
    graph = LinkGraph(_chain("/n0", "/n1", "/n2", "/n3", "/n4", "/n5", "/n6", "/n7"))
    result = graph.traverse("/n0", depth=depth, direction=Direction.OUTGOING)
    assert len(result.nodes) == expected


def test_direction_filters():
    graph = LinkGraph([_link("/a", "/b"), _link("/c", "/a")])
    assert graph.traverse("/a", direction=Direction.OUTGOING).paths == ["/a", "/b"]
    assert graph.traverse("/a", direction=Direction.INCOMING).paths == ["/a", "/c"]
    assert graph.traverse("/a", direction=Direction.BOTH).paths == ["/a", "/b", "/c"]


def test_bidirectional_edge_walked_against_direction():
    graph = LinkGraph([_link("/b", "/a", bidirectional=True)])
    assert graph.traverse("/a", direction=Direction.OUTGOING).paths == ["/a", "/b"]


def test_relationship_filter():
    graph = LinkGraph(
        [_link("/a", "/b", Relationship.REQUIRES), _link("/a", "/c", Relationship.REFERENCES)]
    )
    result = graph.traverse("/a", relationship=Relationship.REQUIRES)
    assert result.paths == ["/a", "/b"]
    assert [link.target for link in result.nodes[0].outgoing] == ["/b"]


def test_unknown_start_is_lone_node():
    result = LinkGraph([_link("/a", "/b")]).traverse("nowhere")
    assert result.paths == ["/nowhere"]
    assert result.total_links == 0


def test_traverse_graph_reads_repository(repo, links):
    for path in ("/a.md", "/b.md"):
        repo.upsert_file(path, "x")
    links.create_link("/a.md", "/b.md", Relationship.EXTENDS)
    assert traverse_graph(repo, "/b.md").paths == ["/b.md", "/a.md"]


# ------------------------------------------------------------------
# find_path
# ------------------------------------------------------------------


def test_find_path_same_file_is_empty():
    assert LinkGraph([]).find_path("/a", "a") == []


def test_find_path_unreachable_is_none():
    graph = LinkGraph([_link("/a", "/b"), _link("/c", "/d")])
    assert graph.find_path("/a", "/d") is None
    assert graph.find_path("/a", "/zzz") is None


def test_find_path_shortest_chain():
    links = _chain("/a", "/b", "/c", "/d") + [_link("/a", "/x"), _link("/x", "/d")]
    path = LinkGraph(links).find_path("/a", "/d")
    assert [(link.source, link.target) for link in path] == [("/a", "/x"), ("/x", "/d")]


def test_find_path_ignores_direction():
    path = LinkGraph([_link("/b", "/a"), _link("/b", "/c")]).find_path("/a", "/c")
    assert [(link.source, link.target) for link in path] == [("/b", "/a"), ("/b", "/c")]


def test_find_path_reads_repository(repo, links):
    for path in ("/a.md", "/b.md", "/c.md"):
        repo.upsert_file(path, "x")
    links.create_link("/a.md", "/b.md", Relationship.REQUIRES)
    links.create_link("/b.md", "/c.md", Relationship.REQUIRES)
    assert len(find_path(repo, "/a.md", "/c.md")) == 2


# ------------------------------------------------------------------
# Whole-graph views
# ------------------------------------------------------------------


def test_adjacency_list():
    graph = LinkGraph([_link("/a", "/b"), _link("/b", "/c", bidirectional=True)])
    adjacency = graph.adjacency_list()
    assert adjacency.nodes == {"/a": {"/b"}, "/b": {"/c"}, "/c": {"/b"}}
    assert len(adjacency.links) == 2


def test_build_adjacency_list_empty(repo):
    adjacency = build_adjacency_list(repo)
    assert adjacency.nodes == {}
    assert adjacency.links == {}


def test_prerequisite_chain_and_dependents():
    links = _chain("/app", "/lib", "/core") + [_link("/app", "/readme", Relationship.REFERENCES)]
    graph = LinkGraph(links)
    assert graph.prerequisite_chain("/app") == ["/lib", "/core"]
    assert graph.dependents("/core") == ["/lib", "/app"]
    assert graph.dependents("/app") == []


def test_contradictions():
    graph = LinkGraph(
        [
            _link("/a", "/b", Relationship.CONTRADICTS),
            _link("/c", "/a", Relationship.CONTRADICTS),
            _link("/a", "/d", Relationship.EXTENDS),
        ]
    )
    found = graph.contradictions("/a")
    assert {(link.source, link.target) for link in found} == {("/a", "/b"), ("/c", "/a")}
    assert graph.contradictions("/unknown") == []
