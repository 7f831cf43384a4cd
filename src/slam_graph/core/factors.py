# Copyright (c) 2025.
# This file is part of slam-graph, released under the MIT License.
"""
Factor types for slam-graph.

A factor is a constraint over a small, fixed set of nodes. The only
capability the graph relies on is ``node_ids()``: the ordered list of
:data:`NodeId` handles the factor references. Order matters, because the
graph picks its root from the first node of the first factor.

New constraint kinds are added by subclassing :class:`Factor`; nothing in
the graph container needs to change.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from .poses import Pose
from .types import NodeId, node_id


class Factor(ABC):
    """Abstract factor connecting nodes."""

    @abstractmethod
    def node_ids(self) -> List[NodeId]:
        """Nodes involved in the factor, in a stable order."""

    @property
    def dim(self) -> Optional[int]:
        """Spatial dimension of the factor's measurement, if it has one."""
        return None


@dataclass(frozen=True, eq=False)
class BetweenPosesFactor(Factor):
    """
    Relative-pose measurement between two nodes.

    ``measurement`` is the pose of ``dst`` expressed in the frame of ``src``.
    Self-loops (``src == dst``) and repeated edges are representable.
    """

    src: NodeId
    dst: NodeId
    measurement: Pose

    def __post_init__(self) -> None:
        object.__setattr__(self, "src", node_id(self.src))
        object.__setattr__(self, "dst", node_id(self.dst))

    def node_ids(self) -> List[NodeId]:
        return [self.src, self.dst]

    @property
    def dim(self) -> int:
        return self.measurement.dim

    def is_self_loop(self) -> bool:
        return self.src == self.dst

    def __repr__(self) -> str:
        return f"BetweenPosesFactor({self.src} -> {self.dst}, {self.measurement!r})"
