# Copyright (c) 2025.
# This file is part of slam-graph, released under the MIT License.
"""
Factor graph container for slam-graph.

This module implements the central structure of the system: an append-only,
ordered collection of factors. Nodes are never stored; they are implied by
the factors that reference them.

The FactorGraph stores:
    - factors, in insertion order
    - the spatial dimension (2 or 3) its pose factors are expected to have

Derived queries
---------------
node_ids()
    Union of ``factor.node_ids()`` over all factors in insertion order,
    deduplicated by first occurrence.

root()
    The first node id of the first factor whose ``node_ids()`` is non-empty,
    or None for a graph without factors. This is a first-seen choice, not
    the minimum id.

node_count() / factor_count() / factors()
    Counts and a read-only view of the factor sequence.

Notes
-----
``FactorGraph`` recomputes every derived query from the factor list on each
call. Offline graphs of a few thousand factors make this cheap next to a
solver pass. ``IndexedFactorGraph`` keeps the node index and root up to date
inside ``add_factor`` instead, for callers that query large graphs often.
Both give identical answers for the same insertion sequence.

The container holds no lock. Any number of readers may query a graph once
the single writer has stopped calling ``add_factor``.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple, TYPE_CHECKING

from .errors import DimensionMismatchError
from .factors import Factor
from .types import NodeId

if TYPE_CHECKING:
    from ..io.g2o import G2OConfig, LoadReport
    from ..io.toro import ToroConfig


@dataclass
class FactorGraph:
    """
    Append-only factor graph.

    - dim: spatial dimension of the pose factors (2 or 3)
    - factors are kept in a private list; use ``factors()`` for a read-only view
    """
    dim: int = 3
    _factors: List[Factor] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.dim not in (2, 3):
            raise DimensionMismatchError(f"FactorGraph dimension must be 2 or 3, got {self.dim}")

    def add_factor(self, factor: Factor) -> None:
        """Append ``factor``. No duplicate or cross-reference validation is done."""
        self._factors.append(factor)

    def extend(self, factors: Iterable[Factor]) -> None:
        for f in factors:
            self.add_factor(f)

    # --- read-only views ---

    def factors(self) -> Tuple[Factor, ...]:
        return tuple(self._factors)

    def factor_count(self) -> int:
        return len(self._factors)

    def __iter__(self):
        return iter(self.factors())

    # --- derived queries ---

    def node_ids(self) -> List[NodeId]:
        """Distinct node ids in first-seen order."""
        seen: Dict[NodeId, None] = {}
        for f in self._factors:
            for nid in f.node_ids():
                seen.setdefault(nid, None)
        return list(seen)

    def node_count(self) -> int:
        return len(self.node_ids())

    def root(self) -> Optional[NodeId]:
        """First node id of the first factor that references any node."""
        for f in self._factors:
            ids = f.node_ids()
            if ids:
                return ids[0]
        return None

    def is_empty(self) -> bool:
        return not self._factors

    # --- file formats ---

    def load_from_g2o(self, path, cfg: Optional["G2OConfig"] = None) -> "LoadReport":
        """
        Append the factors of a g2o file to this graph.

        The file is parsed into a fresh graph first, so on failure this graph
        is left untouched.
        """
        from ..io.g2o import load_g2o
        return load_g2o(path, self, cfg)

    def export_to_g2o(self, path) -> int:
        from ..io.g2o import export_g2o
        return export_g2o(self, path)

    def load_from_toro(self, path, cfg: Optional["ToroConfig"] = None) -> "LoadReport":
        from ..io.toro import load_toro
        return load_toro(path, self, cfg)

    def export_to_toro(self, path) -> int:
        from ..io.toro import export_toro
        return export_toro(self, path)


@dataclass
class IndexedFactorGraph(FactorGraph):
    """
    Factor graph that maintains its node index incrementally.

    ``add_factor`` updates an insertion-ordered node index and the root, so
    ``node_ids()``, ``node_count()`` and ``root()`` no longer rescan the
    factor list. Trades memory proportional to the node count for that.
    """
    _node_index: Dict[NodeId, int] = field(default_factory=dict, init=False, repr=False)
    _root: Optional[NodeId] = field(default=None, init=False, repr=False)

    def add_factor(self, factor: Factor) -> None:
        super().add_factor(factor)
        ids = factor.node_ids()
        if self._root is None and ids:
            self._root = ids[0]
        for nid in ids:
            if nid not in self._node_index:
                self._node_index[nid] = len(self._node_index)

    def node_ids(self) -> List[NodeId]:
        return list(self._node_index)

    def node_count(self) -> int:
        return len(self._node_index)

    def root(self) -> Optional[NodeId]:
        return self._root

    def index_of(self, nid: NodeId) -> int:
        """Dense, first-seen index of ``nid`` (raises KeyError for unknown nodes)."""
        return self._node_index[nid]

    def has_node(self, nid: NodeId) -> bool:
        return nid in self._node_index
