# Copyright (c) 2025.
# This file is part of slam-graph, released under the MIT License.
"""
Residual models for the factors of slam-graph.

The graph itself never optimises anything. This module is the seam a
nonlinear least-squares solver plugs into: given candidate poses for the
nodes, it evaluates how far each factor's measurement is from being
satisfied.

Between-poses residual
----------------------
For a factor ``src -> dst`` with measurement ``Z`` and candidate poses
``T_src``, ``T_dst``:

    T_rel = T_src⁻¹ ∘ T_dst
    E     = Z⁻¹ ∘ T_rel
    r     = [ t_E, log(R_E) ]

``log`` is the SO(3) logarithm in 3-D (3 values) and the heading angle in
2-D (1 value), so ``r`` has 6 or 3 entries. When the measurement carries an
uncertainty, the residual is whitened with the symmetric square root of its
information matrix so that ``‖r‖² = rᵀ Λ r``. The square root comes from an
eigen-decomposition with negative eigenvalues clamped to zero, so a
positive semi-definite Λ (zero rows leave an axis unconstrained) is
accepted.

Rotation convention
-------------------
The rotation block of ``r`` is the full rotation vector ``θ·a``. g2o's
``EDGE_SE3:QUAT`` error uses the quaternion vector part ``sin(θ/2)·a``
(about ``θ/2·a``) instead, so an information matrix read from a g2o file
weights rotation errors roughly 4× more here than in g2o. Scale the
rotation block of Λ by 1/4 to reproduce g2o's objective. 2-D edges
(``EDGE_SE2``) use the angle directly in both.

Notes
-----
All arithmetic is ``jax.numpy``; a solver may differentiate through the
array-level helper :func:`between_residual_arrays` with ``jax.jacfwd``.
"""

from __future__ import annotations
from typing import Mapping, Optional

import jax.numpy as jnp

from ..core import math3d
from ..core.errors import DimensionMismatchError, InvalidInputError
from ..core.factor_graph import FactorGraph
from ..core.factors import BetweenPosesFactor
from ..core.poses import Pose
from ..core.types import NodeId, Uncertainty


def _apply_information(residual: jnp.ndarray, uncertainty: Optional[Uncertainty]) -> jnp.ndarray:
    """
    Whiten ``residual`` with the measurement's information matrix.

    With Λ = V diag(λ) Vᵀ and S = V diag(√max(λ, 0)) Vᵀ, r' = S r gives
    ‖r'‖² = rᵀ Λ r, also when Λ is only semi-definite.
    """
    if uncertainty is None:
        return residual
    info = uncertainty.as_information().matrix
    info = (info + info.T) / 2.0
    eigvals, eigvecs = jnp.linalg.eigh(info)
    sqrt_info = (eigvecs * jnp.sqrt(jnp.maximum(eigvals, 0.0))) @ eigvecs.T
    return sqrt_info @ residual


def between_residual_arrays(
    R_src: jnp.ndarray,
    t_src: jnp.ndarray,
    R_dst: jnp.ndarray,
    t_dst: jnp.ndarray,
    R_meas: jnp.ndarray,
    t_meas: jnp.ndarray,
) -> jnp.ndarray:
    """Unweighted between residual on raw (R, t) arrays; 2-D or 3-D by shape."""
    R_rel, t_rel = math3d.relative(R_src, t_src, R_dst, t_dst)
    R_err, t_err = math3d.relative(R_meas, t_meas, R_rel, t_rel)
    if R_err.shape[0] == 3:
        rot = math3d.so3_log(R_err)
    else:
        rot = jnp.reshape(math3d.rot2_angle(R_err), (1,))
    return jnp.concatenate([t_err, rot])


def between_pose_residual(
    pose_src: Pose,
    pose_dst: Pose,
    measurement: Pose,
    weighted: bool = True,
) -> jnp.ndarray:
    """
    Residual of a between-poses measurement for candidate poses of its nodes.

    A zero vector means the candidates agree exactly with the measurement.
    """
    if not (pose_src.dim == pose_dst.dim == measurement.dim):
        raise DimensionMismatchError(
            f"Between residual needs poses of one dimension, got "
            f"{pose_src.dim}, {pose_dst.dim} and {measurement.dim}"
        )
    r = between_residual_arrays(
        pose_src.rotation,
        pose_src.translation,
        pose_dst.rotation,
        pose_dst.translation,
        measurement.rotation,
        measurement.translation,
    )
    if weighted:
        r = _apply_information(r, measurement.uncertainty)
    return r


def graph_residuals(
    graph: FactorGraph,
    poses: Mapping[NodeId, Pose],
    weighted: bool = True,
) -> jnp.ndarray:
    """
    Stacked residual vector over every :class:`BetweenPosesFactor` of ``graph``,
    in factor insertion order. Other factor kinds contribute nothing.
    """
    res_list = []
    for f in graph.factors():
        if not isinstance(f, BetweenPosesFactor):
            continue
        try:
            src, dst = poses[f.src], poses[f.dst]
        except KeyError as e:
            raise InvalidInputError(f"No pose given for node {e.args[0]}") from None
        res_list.append(between_pose_residual(src, dst, f.measurement, weighted))

    if not res_list:
        return jnp.zeros((0,))
    return jnp.concatenate(res_list)


def total_error(graph: FactorGraph, poses: Mapping[NodeId, Pose], weighted: bool = True) -> float:
    """Scalar objective ``‖r‖²`` over the stacked graph residual."""
    r = graph_residuals(graph, poses, weighted)
    return float(jnp.sum(r ** 2))
