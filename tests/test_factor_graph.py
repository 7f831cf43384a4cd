from __future__ import annotations

from typing import List

import pytest

from slam_graph.core.errors import DimensionMismatchError, InvalidInputError
from slam_graph.core.factor_graph import FactorGraph, IndexedFactorGraph
from slam_graph.core.factors import BetweenPosesFactor, Factor
from slam_graph.core.poses import Pose3
from slam_graph.core.types import NodeId


class EmptyFactor(Factor):
    """A factor that references no nodes (e.g. a global constraint)."""

    def node_ids(self) -> List[NodeId]:
        return []


class TripleFactor(Factor):
    def __init__(self, a, b, c):
        self._ids = [NodeId(a), NodeId(b), NodeId(c)]

    def node_ids(self) -> List[NodeId]:
        return list(self._ids)


def between(src, dst):
    return BetweenPosesFactor(NodeId(src), NodeId(dst), Pose3.identity())


@pytest.fixture(params=[FactorGraph, IndexedFactorGraph])
def graph_cls(request):
    return request.param


def test_empty_graph(graph_cls):
    g = graph_cls()
    assert g.factor_count() == 0
    assert g.node_count() == 0
    assert g.node_ids() == []
    assert g.root() is None
    assert g.is_empty()


def test_two_edges_chain(graph_cls):
    """
    Two between factors 1->2, 2->3:
      factor count 2, nodes {1, 2, 3}, root 1
    """
    g = graph_cls()
    g.add_factor(between(1, 2))
    g.add_factor(between(2, 3))

    assert g.factor_count() == 2
    assert g.node_ids() == [1, 2, 3]
    assert g.node_count() == 3
    assert g.root() == 1


def test_root_is_first_seen_not_minimum(graph_cls):
    g = graph_cls()
    g.add_factor(between(7, 3))
    g.add_factor(between(1, 7))
    assert g.root() == 7
    assert g.node_ids() == [7, 3, 1]


def test_root_skips_factors_without_nodes(graph_cls):
    g = graph_cls()
    g.add_factor(EmptyFactor())
    assert g.factor_count() == 1
    assert g.node_count() == 0
    assert g.root() is None

    g.add_factor(TripleFactor(9, 4, 5))
    assert g.root() == 9
    assert g.node_ids() == [9, 4, 5]


def test_self_loops_and_duplicate_edges_are_accepted(graph_cls):
    g = graph_cls()
    g.add_factor(between(4, 4))
    g.add_factor(between(4, 5))
    g.add_factor(between(4, 5))
    assert g.factor_count() == 3
    assert g.node_ids() == [4, 5]
    assert g.factors()[0].is_self_loop()


def test_derived_queries_are_idempotent(graph_cls):
    g = graph_cls()
    g.extend([between(3, 2), between(2, 1), between(1, 3)])
    assert g.node_ids() == g.node_ids()
    assert g.root() == g.root() == 3


def test_factors_view_is_read_only_copy(graph_cls):
    g = graph_cls()
    f = between(1, 2)
    g.add_factor(f)
    view = g.factors()
    assert isinstance(view, tuple)
    assert view[0] is f
    assert [x.node_ids() for x in g] == [[1, 2]]


def test_factor_node_order_is_src_dst():
    f = between(10, 2)
    assert f.node_ids() == [10, 2]
    assert f.dim == 3


def test_factor_rejects_negative_node_ids():
    with pytest.raises(InvalidInputError):
        BetweenPosesFactor(-1, 2, Pose3.identity())


def test_indexed_graph_matches_reference():
    seq = [between(5, 6), EmptyFactor(), between(6, 2), TripleFactor(2, 8, 5), between(9, 9)]
    ref = FactorGraph()
    idx = IndexedFactorGraph()
    for f in seq:
        ref.add_factor(f)
        idx.add_factor(f)
        assert ref.node_ids() == idx.node_ids()
        assert ref.root() == idx.root()
        assert ref.node_count() == idx.node_count()
    assert idx.index_of(NodeId(8)) == 3
    assert idx.has_node(NodeId(9))
    assert not idx.has_node(NodeId(100))


def test_graph_dimension_must_be_supported():
    with pytest.raises(DimensionMismatchError):
        FactorGraph(dim=4)
