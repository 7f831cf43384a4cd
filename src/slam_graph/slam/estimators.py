# Copyright (c) 2025.
# This file is part of slam-graph, released under the MIT License.
"""
Pluggable node position estimators.

Nothing in this module is a SLAM solution. The graph stores measurements
only; whatever per-node poses an estimator produces here are *provisional*:
an initial guess for a solver, or a stand-in so that a viewer has something
to draw. Every result is wrapped in :class:`NodeEstimates` with
``provisional=True`` and the name of the estimator that produced it, so a
caller cannot mistake it for an optimised estimate.

Estimators
----------
RandomPlaceholderEstimator
    Uniformly random positions in a box. Useful only for rendering a graph
    before anything better is available.

SpanningTreeEstimator
    Breadth-first traversal from the graph root, chaining between-poses
    measurements along the traversal tree (forward edges apply the
    measurement, backward edges its inverse). Each connected component is
    anchored at the identity at its first-seen node. Loop-closing edges are
    ignored, so the result is a dead-reckoning initial guess.

A real solver implements the same :class:`PositionEstimator` interface and
returns ``provisional=False``.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional, Tuple

import jax
import jax.numpy as jnp

from ..core.factor_graph import FactorGraph
from ..core.factors import BetweenPosesFactor
from ..core.poses import Pose, pose_type_for_dim
from ..core.types import NodeId

logger = logging.getLogger("slam_graph.estimators")


@dataclass(frozen=True)
class NodeEstimates:
    """
    Per-node pose estimates and where they came from.

    - poses: NodeId -> Pose
    - source: name of the estimator
    - provisional: True unless produced by a real optimiser
    """
    poses: Dict[NodeId, Pose]
    source: str
    provisional: bool = True
    components: int = 1

    def positions(self) -> Dict[NodeId, jnp.ndarray]:
        return {nid: p.translation for nid, p in self.poses.items()}

    def as_array(self, order: Optional[List[NodeId]] = None) -> jnp.ndarray:
        """Stack translations into an (N, D) array, in ``order`` or insertion order."""
        order = list(self.poses) if order is None else order
        if not order:
            return jnp.zeros((0, 0))
        return jnp.stack([self.poses[nid].translation for nid in order])


class PositionEstimator(ABC):
    """Capability: produce per-node pose estimates for a graph."""

    name: str = "estimator"

    @abstractmethod
    def estimate(self, graph: FactorGraph) -> NodeEstimates:
        ...


@dataclass
class RandomPlaceholderEstimator(PositionEstimator):
    """
    Random positions in ``[low, high)^D`` with identity rotations.

    Seeded through ``jax.random`` so results are reproducible.
    """
    seed: int = 0
    low: float = 0.0
    high: float = 100.0
    name: str = field(default="random-placeholder", init=False)

    def estimate(self, graph: FactorGraph) -> NodeEstimates:
        ids = graph.node_ids()
        pose_cls = pose_type_for_dim(graph.dim)
        key = jax.random.PRNGKey(self.seed)
        pts = jax.random.uniform(key, (len(ids), graph.dim), minval=self.low, maxval=self.high)
        poses = {nid: pose_cls(pts[i], jnp.eye(graph.dim)) for i, nid in enumerate(ids)}
        logger.debug("Random placeholder positions for %d nodes", len(ids))
        return NodeEstimates(poses=poses, source=self.name, provisional=True)


@dataclass
class SpanningTreeEstimator(PositionEstimator):
    """Chain between-poses measurements breadth-first from the root."""
    name: str = field(default="spanning-tree", init=False)

    @staticmethod
    def _adjacency(graph: FactorGraph) -> Dict[NodeId, List[Tuple[NodeId, Pose]]]:
        adj: Dict[NodeId, List[Tuple[NodeId, Pose]]] = defaultdict(list)
        for f in graph.factors():
            if not isinstance(f, BetweenPosesFactor) or f.is_self_loop():
                continue
            z = f.measurement
            adj[f.src].append((f.dst, z))
            adj[f.dst].append((f.src, z.inverse()))
        return adj

    def estimate(self, graph: FactorGraph) -> NodeEstimates:
        adj = self._adjacency(graph)
        pose_cls = pose_type_for_dim(graph.dim)
        poses: Dict[NodeId, Pose] = {}
        components = 0

        # root() is the first node of node_ids(), so the first component
        # is always anchored at the root.
        for start in graph.node_ids():
            if start in poses:
                continue
            components += 1
            poses[start] = pose_cls.identity()
            queue = deque([start])
            while queue:
                nid = queue.popleft()
                for nbr, z in adj.get(nid, ()):
                    if nbr in poses:
                        continue
                    poses[nbr] = poses[nid].compose(z)
                    queue.append(nbr)

        if components > 1:
            logger.info("Graph has %d disconnected components; each anchored at identity", components)
        ordered = {nid: poses[nid] for nid in graph.node_ids()}
        return NodeEstimates(poses=ordered, source=self.name, provisional=True, components=components)
