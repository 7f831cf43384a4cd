# Copyright (c) 2025.
# This file is part of slam-graph, released under the MIT License.
"""
Rotation and rigid-transform helpers for slam-graph.

This module implements the small amount of Lie-group mathematics the graph
data model needs:

    • Quaternion ↔ rotation matrix conversion (with normalisation)
    • Roll/pitch/yaw ↔ rotation matrix conversion (TORO files)
    • SO(2) construction and angle extraction
    • SO(3) logarithm map
    • Composition and inversion of (R, t) transforms in 2-D and 3-D

All arithmetic is written against ``jax.numpy`` so the same helpers can be
reused inside a JIT-compiled residual by a downstream solver. The
conversions that branch on data (``rot_to_quat``) are host-side only.

Key Functions
-------------
quat_to_rot(q)
    Unit quaternion ``[qx, qy, qz, qw]`` to a 3×3 rotation matrix. The
    input is normalised first, so ``q`` and ``-q`` yield the same matrix.

rot_to_quat(R)
    Inverse of ``quat_to_rot``; returns the representative with ``qw >= 0``.

so3_log(R)
    Rotation matrix to axis-angle, valid up to and including a half turn.

compose(Ra, ta, Rb, tb) / invert(R, t)
    Rigid transforms in any dimension.

Notes
-----
Rotations are stored as explicit matrices everywhere downstream of the
parser. This removes the quaternion double cover before any equality test or
arithmetic takes place.
"""

from __future__ import annotations

import math

import jax
import jax.numpy as jnp

from .errors import InvalidPoseError


def vee(R: jnp.ndarray) -> jnp.ndarray:
    """
    vee: so(3) -> R^3.
    Reads the axis off the skew-symmetric part of R.
    """
    return jnp.array([
        R[2, 1] - R[1, 2],
        R[0, 2] - R[2, 0],
        R[1, 0] - R[0, 1],
    ]) / 2.0


def so3_log(R: jnp.ndarray) -> jnp.ndarray:
    """
    Numerically stable logarithm map for SO(3).

    Handles:
      - small angles via first-order approximation
      - angles near pi, where R - R^T vanishes, by reading the axis off the
        symmetric part (R + R^T)/2 = cos(theta) I + (1 - cos(theta)) a a^T
      - trace slightly outside [-1, 3] via clamping

    Returns w in R^3 with |w| in [0, pi] such that Exp(w) ~ R.
    """
    R = jnp.asarray(R)
    cos_theta = (jnp.trace(R) - 1.0) / 2.0
    cos_theta = jnp.clip(cos_theta, -1.0, 1.0)
    theta = jnp.arccos(cos_theta)

    def small_angle_case(_) -> jnp.ndarray:
        # R ~ I + [w]x
        return vee(R - jnp.eye(3, dtype=R.dtype))

    def general_case(_) -> jnp.ndarray:
        factor = theta / (2.0 * jnp.sin(theta) + 1e-12)
        return factor * vee(R - R.T)

    def near_pi_case(_) -> jnp.ndarray:
        # B = a a^T up to O((pi - theta)^2); take the largest column.
        B = ((R + R.T) / 2.0 + jnp.eye(3, dtype=R.dtype)) / 2.0
        k = jnp.argmax(jnp.diag(B))
        axis = B[:, k] / jnp.sqrt(jnp.maximum(B[k, k], 1e-12))
        axis = axis / jnp.linalg.norm(axis)
        # Orient the axis with the (small) skew-symmetric part.
        sign = jnp.where(jnp.dot(axis, vee(R - R.T)) < 0.0, -1.0, 1.0)
        return sign * theta * axis

    def large_angle_case(_) -> jnp.ndarray:
        return jax.lax.cond(theta > jnp.pi - 1e-3, near_pi_case, general_case, operand=None)

    return jax.lax.cond(theta < 1e-5, small_angle_case, large_angle_case, operand=None)


def rot2(theta, dtype=None) -> jnp.ndarray:
    """2x2 rotation matrix for a counter-clockwise angle ``theta``."""
    c = jnp.cos(jnp.asarray(theta, dtype=dtype))
    s = jnp.sin(jnp.asarray(theta, dtype=dtype))
    return jnp.array([[c, -s], [s, c]], dtype=dtype)


def rot2_angle(R: jnp.ndarray) -> jnp.ndarray:
    """Angle in (-pi, pi] of a 2x2 rotation matrix."""
    return jnp.arctan2(R[1, 0], R[0, 0])


def quat_to_rot(q, dtype=None) -> jnp.ndarray:
    """
    Convert a quaternion ``[qx, qy, qz, qw]`` to a 3x3 rotation matrix.

    The quaternion is normalised first. A zero (or non-finite) quaternion has
    no rotation associated with it and raises :class:`InvalidPoseError`.
    """
    q = jnp.asarray(q, dtype=dtype)
    if q.shape != (4,):
        raise InvalidPoseError(f"Quaternion must have 4 components, got shape {q.shape}")
    norm = float(jnp.linalg.norm(q))
    if not math.isfinite(norm) or norm < 1e-12:
        raise InvalidPoseError(f"Quaternion {q.tolist()} cannot be normalised")
    qx, qy, qz, qw = q / norm
    return jnp.array(
        [
            [1.0 - 2.0 * (qy * qy + qz * qz), 2.0 * (qx * qy - qz * qw), 2.0 * (qx * qz + qy * qw)],
            [2.0 * (qx * qy + qz * qw), 1.0 - 2.0 * (qx * qx + qz * qz), 2.0 * (qy * qz - qx * qw)],
            [2.0 * (qx * qz - qy * qw), 2.0 * (qy * qz + qx * qw), 1.0 - 2.0 * (qx * qx + qy * qy)],
        ],
        dtype=dtype,
    )


def rot_to_quat(R: jnp.ndarray) -> jnp.ndarray:
    """
    Convert a 3x3 rotation matrix to a unit quaternion ``[qx, qy, qz, qw]``.

    Shepperd's method: pick the largest of the four diagonal combinations to
    divide by, then flip the sign so that ``qw >= 0``.
    """
    R = jnp.asarray(R)
    m = [[float(R[i, j]) for j in range(3)] for i in range(3)]
    trace = m[0][0] + m[1][1] + m[2][2]

    if trace > 0.0:
        s = 2.0 * math.sqrt(trace + 1.0)
        qw = 0.25 * s
        qx = (m[2][1] - m[1][2]) / s
        qy = (m[0][2] - m[2][0]) / s
        qz = (m[1][0] - m[0][1]) / s
    elif m[0][0] > m[1][1] and m[0][0] > m[2][2]:
        s = 2.0 * math.sqrt(1.0 + m[0][0] - m[1][1] - m[2][2])
        qw = (m[2][1] - m[1][2]) / s
        qx = 0.25 * s
        qy = (m[0][1] + m[1][0]) / s
        qz = (m[0][2] + m[2][0]) / s
    elif m[1][1] > m[2][2]:
        s = 2.0 * math.sqrt(1.0 + m[1][1] - m[0][0] - m[2][2])
        qw = (m[0][2] - m[2][0]) / s
        qx = (m[0][1] + m[1][0]) / s
        qy = 0.25 * s
        qz = (m[1][2] + m[2][1]) / s
    else:
        s = 2.0 * math.sqrt(1.0 + m[2][2] - m[0][0] - m[1][1])
        qw = (m[1][0] - m[0][1]) / s
        qx = (m[0][2] + m[2][0]) / s
        qy = (m[1][2] + m[2][1]) / s
        qz = 0.25 * s

    q = jnp.array([qx, qy, qz, qw], dtype=R.dtype)
    q = q / jnp.linalg.norm(q)
    return jnp.where(q[3] < 0.0, -q, q)


def rpy_to_rot(roll, pitch, yaw, dtype=None) -> jnp.ndarray:
    """Rotation matrix ``Rz(yaw) @ Ry(pitch) @ Rx(roll)``."""
    cr, sr = math.cos(roll), math.sin(roll)
    cp, sp = math.cos(pitch), math.sin(pitch)
    cy, sy = math.cos(yaw), math.sin(yaw)
    return jnp.array(
        [
            [cy * cp, cy * sp * sr - sy * cr, cy * sp * cr + sy * sr],
            [sy * cp, sy * sp * sr + cy * cr, sy * sp * cr - cy * sr],
            [-sp, cp * sr, cp * cr],
        ],
        dtype=dtype,
    )


def rot_to_rpy(R: jnp.ndarray) -> tuple[float, float, float]:
    """Inverse of :func:`rpy_to_rot`; returns ``(roll, pitch, yaw)``."""
    R = jnp.asarray(R)
    pitch = math.asin(max(-1.0, min(1.0, -float(R[2, 0]))))
    if abs(math.cos(pitch)) < 1e-9:
        # Gimbal lock: only roll - yaw (or roll + yaw) is observable.
        roll = 0.0
        yaw = math.atan2(-float(R[0, 1]), float(R[1, 1]))
    else:
        roll = math.atan2(float(R[2, 1]), float(R[2, 2]))
        yaw = math.atan2(float(R[1, 0]), float(R[0, 0]))
    return roll, pitch, yaw


def compose(Ra: jnp.ndarray, ta: jnp.ndarray, Rb: jnp.ndarray, tb: jnp.ndarray) -> tuple[jnp.ndarray, jnp.ndarray]:
    """
    Compose two rigid transforms: (Ra, ta) ∘ (Rb, tb).

        R = Ra Rb
        t = Ra tb + ta
    """
    return Ra @ Rb, Ra @ tb + ta


def invert(R: jnp.ndarray, t: jnp.ndarray) -> tuple[jnp.ndarray, jnp.ndarray]:
    """Inverse of a rigid transform: (R^T, -R^T t)."""
    Rt = R.T
    return Rt, -(Rt @ t)


def relative(Ra: jnp.ndarray, ta: jnp.ndarray, Rb: jnp.ndarray, tb: jnp.ndarray) -> tuple[jnp.ndarray, jnp.ndarray]:
    """
    Relative transform from a to b:

      T_rel = T_a^{-1} T_b
      t_rel = R_a^T (t_b - t_a)
      R_rel = R_a^T R_b
    """
    return Ra.T @ Rb, Ra.T @ (tb - ta)


def to_homogeneous(R: jnp.ndarray, t: jnp.ndarray) -> jnp.ndarray:
    """Build the (D+1)x(D+1) homogeneous matrix for (R, t)."""
    d = R.shape[0]
    T = jnp.eye(d + 1, dtype=R.dtype)
    T = T.at[:d, :d].set(R)
    T = T.at[:d, d].set(t)
    return T
