from __future__ import annotations

import math

import jax.numpy as jnp
import pytest

from slam_graph.core.errors import DimensionMismatchError, InvalidInputError
from slam_graph.core.factor_graph import FactorGraph
from slam_graph.core.factors import BetweenPosesFactor
from slam_graph.core.poses import Pose2, Pose3
from slam_graph.core.types import Uncertainty, UncertaintyType
from slam_graph.slam.measurements import (
    between_pose_residual,
    graph_residuals,
    total_error,
)


def test_residual_zero_when_poses_match_measurement():
    a = Pose3.from_rpy([1.0, 0.0, 0.0], 0.1, 0.0, 0.2)
    z = Pose3.from_rpy([0.5, 0.5, 0.0], 0.0, 0.3, -0.1)
    b = a.compose(z)
    r = between_pose_residual(a, b, z)
    assert r.shape == (6,)
    assert jnp.allclose(r, 0.0, atol=1e-5)


def test_residual_2d_has_three_entries():
    a = Pose2.identity()
    b = Pose2.from_angle([1.0, 0.0], 0.0)
    z = Pose2.from_angle([1.0, 0.0], 0.25)
    r = between_pose_residual(a, b, z, weighted=False)
    assert r.shape == (3,)
    assert float(r[2]) == pytest.approx(-0.25, abs=1e-6)


def test_residual_translation_error():
    a = Pose3.identity()
    b = Pose3.from_quaternion([2.0, 0.0, 0.0], [0.0, 0.0, 0.0, 1.0])
    z = Pose3.from_quaternion([1.0, 0.0, 0.0], [0.0, 0.0, 0.0, 1.0])
    r = between_pose_residual(a, b, z)
    assert jnp.allclose(r, jnp.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.0]), atol=1e-6)


def test_information_whitens_residual():
    info = Uncertainty(UncertaintyType.INFORMATION, jnp.eye(3) * 4.0)
    z = Pose2.from_angle([1.0, 0.0], 0.0).with_uncertainty(info)
    a = Pose2.identity()
    b = Pose2.from_angle([2.0, 0.0], 0.0)
    r = between_pose_residual(a, b, z)
    # sqrt(4) * 1.0
    assert jnp.allclose(r, jnp.array([2.0, 0.0, 0.0]), atol=1e-6)
    assert jnp.allclose(between_pose_residual(a, b, z, weighted=False), jnp.array([1.0, 0.0, 0.0]), atol=1e-6)


def test_mixed_dimensions_rejected():
    with pytest.raises(DimensionMismatchError):
        between_pose_residual(Pose2.identity(), Pose3.identity(), Pose3.identity())


def test_graph_residuals_stack_in_factor_order():
    g = FactorGraph(dim=2)
    g.add_factor(BetweenPosesFactor(0, 1, Pose2.from_angle([1.0, 0.0], 0.0)))
    g.add_factor(BetweenPosesFactor(1, 2, Pose2.from_angle([1.0, 0.0], math.pi / 2)))
    poses = {
        0: Pose2.identity(),
        1: Pose2.from_angle([1.0, 0.0], 0.0),
        2: Pose2.from_angle([2.0, 0.0], 0.0),
    }
    r = graph_residuals(g, poses)
    assert r.shape == (6,)
    assert jnp.allclose(r[:3], 0.0, atol=1e-6)
    assert float(r[5]) == pytest.approx(-math.pi / 2, abs=1e-5)
    assert total_error(g, poses) == pytest.approx((math.pi / 2) ** 2, rel=1e-4)


def test_graph_residuals_missing_pose():
    g = FactorGraph()
    g.add_factor(BetweenPosesFactor(0, 1, Pose3.identity()))
    with pytest.raises(InvalidInputError):
        graph_residuals(g, {0: Pose3.identity()})


def test_empty_graph_has_empty_residual():
    assert graph_residuals(FactorGraph(), {}).shape == (0,)
    assert total_error(FactorGraph(), {}) == 0.0


def test_half_turn_error_is_not_zero():
    half_turn = Pose3.from_rpy([0.0, 0.0, 0.0], 0.0, 0.0, math.pi)
    r = between_pose_residual(Pose3.identity(), Pose3.identity(), half_turn, weighted=False)
    assert jnp.allclose(r[:3], 0.0, atol=1e-6)
    assert float(jnp.linalg.norm(r[3:])) == pytest.approx(math.pi, abs=1e-3)
    assert abs(float(r[5])) == pytest.approx(math.pi, abs=1e-3)


def test_rotation_residual_is_full_rotation_vector():
    # theta * axis, not the quaternion vector part (theta / 2) * axis
    z = Pose3.from_rpy([0.0, 0.0, 0.0], 0.0, 0.0, 0.2)
    r = between_pose_residual(Pose3.identity(), Pose3.identity(), z, weighted=False)
    assert float(r[5]) == pytest.approx(-0.2, abs=1e-5)


def test_semi_definite_information_leaves_axes_free():
    info = Uncertainty(UncertaintyType.INFORMATION, jnp.diag(jnp.array([1.0, 1.0, 1.0, 0.0, 0.0, 0.0])))
    g = FactorGraph()
    g.add_factor(BetweenPosesFactor(0, 1, Pose3.identity().with_uncertainty(info)))
    poses = {
        0: Pose3.identity(),
        1: Pose3.from_rpy([1.0, 0.0, 0.0], 0.0, 0.0, 0.5),
    }
    r = graph_residuals(g, poses)
    assert bool(jnp.all(jnp.isfinite(r)))
    # the yaw error is not penalised, the 1 m translation error is
    assert jnp.allclose(r[3:], 0.0, atol=1e-6)
    assert total_error(g, poses) == pytest.approx(1.0, abs=1e-5)


def test_whitening_matches_quadratic_form():
    info_m = jnp.array([[4.0, 1.0, 0.0], [1.0, 3.0, 0.5], [0.0, 0.5, 2.0]])
    z = Pose2.identity().with_uncertainty(Uncertainty(UncertaintyType.INFORMATION, info_m))
    b = Pose2.from_angle([0.3, -0.2], 0.1)
    r_raw = between_pose_residual(Pose2.identity(), b, z, weighted=False)
    r_w = between_pose_residual(Pose2.identity(), b, z)
    assert float(r_w @ r_w) == pytest.approx(float(r_raw @ info_m @ r_raw), rel=1e-4)
