# Copyright (c) 2025.
# This file is part of slam-graph, released under the MIT License.
"""
Pose representations for slam-graph.

A pose is a rigid transform (translation + rotation) at a fixed
dimensionality, optionally annotated with an :class:`Uncertainty`. The set of
supported dimensions is closed, so there is one concrete class per
dimension rather than a generic-dimension machinery:

Pose2
    Planar pose ``(x, y, theta)``. Rotation stored as a 2×2 matrix.

Pose3
    Spatial pose ``(x, y, z, qx, qy, qz, qw)``. The quaternion is normalised
    and converted to a 3×3 rotation matrix at construction time, so ``q`` and
    ``-q`` denote the same ``Pose3``.

Both classes parse strictly and positionally from whitespace-separated text
(translation first, then orientation) and share the small :class:`Pose`
base that holds everything dimension-independent. Mixing dimensions in
``compose`` / ``relative_to`` / ``isclose`` raises
:class:`DimensionMismatchError`.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
import math
from typing import ClassVar, Optional, Sequence

import jax.numpy as jnp

from . import math3d
from .errors import DimensionMismatchError, InvalidPoseError
from .types import Uncertainty, UncertaintyType


def _parse_fields(fields, expected: int, what: str) -> list[float]:
    if isinstance(fields, str):
        fields = fields.split()
    fields = list(fields)
    if len(fields) != expected:
        raise InvalidPoseError(f"{what} expects {expected} fields, got {len(fields)}: {fields}")
    values = []
    for tok in fields:
        try:
            v = float(tok)
        except (TypeError, ValueError) as exc:
            raise InvalidPoseError(f"{what} field {tok!r} is not a number") from exc
        if not math.isfinite(v):
            raise InvalidPoseError(f"{what} field {tok!r} is not finite")
        values.append(v)
    return values


@dataclass(frozen=True, eq=False)
class Pose(ABC):
    """Rigid transform plus optional uncertainty. Use :class:`Pose2` / :class:`Pose3`."""

    translation: jnp.ndarray
    rotation: jnp.ndarray
    uncertainty: Optional[Uncertainty] = None

    DIM: ClassVar[int] = 0
    TANGENT_DIM: ClassVar[int] = 0
    NUM_FIELDS: ClassVar[int] = 0

    def __post_init__(self) -> None:
        t = jnp.asarray(self.translation)
        if not jnp.issubdtype(t.dtype, jnp.floating):
            t = t.astype(jnp.result_type(float))
        R = jnp.asarray(self.rotation, dtype=t.dtype)
        d = self.DIM
        if t.shape != (d,):
            raise InvalidPoseError(f"{type(self).__name__} translation must have shape ({d},), got {t.shape}")
        if R.shape != (d, d):
            raise InvalidPoseError(f"{type(self).__name__} rotation must have shape ({d}, {d}), got {R.shape}")
        if not (bool(jnp.all(jnp.isfinite(t))) and bool(jnp.all(jnp.isfinite(R)))):
            raise InvalidPoseError(f"{type(self).__name__} has non-finite components")
        if self.uncertainty is not None and self.uncertainty.size != self.TANGENT_DIM:
            raise InvalidPoseError(
                f"{type(self).__name__} uncertainty must be {self.TANGENT_DIM}x{self.TANGENT_DIM}, "
                f"got {self.uncertainty.size}x{self.uncertainty.size}"
            )
        object.__setattr__(self, "translation", t)
        object.__setattr__(self, "rotation", R)

    # --- descriptors ---

    @property
    def dim(self) -> int:
        return self.DIM

    @property
    def tangent_dim(self) -> int:
        return self.TANGENT_DIM

    @classmethod
    def dims(cls) -> int:
        return cls.DIM

    def has_uncertainty(self) -> bool:
        return self.uncertainty is not None

    def uncertainty_type(self) -> Optional[UncertaintyType]:
        """Which representation the attached uncertainty uses, or None."""
        return None if self.uncertainty is None else self.uncertainty.kind

    def with_uncertainty(self, uncertainty: Optional[Uncertainty]) -> "Pose":
        return replace(self, uncertainty=uncertainty)

    # --- parsing ---

    @classmethod
    @abstractmethod
    def from_fields(cls, fields: Sequence, dtype=None) -> "Pose":
        """Build a pose from its ordered text fields."""

    @classmethod
    def from_string(cls, text: str, dtype=None) -> "Pose":
        """Strict positional parse of whitespace-separated fields."""
        return cls.from_fields(text.split(), dtype=dtype)

    @abstractmethod
    def to_fields(self) -> list[float]:
        """Inverse of :meth:`from_fields`."""

    # --- group operations ---

    def _check_same_dim(self, other: "Pose") -> None:
        if self.DIM != other.DIM:
            raise DimensionMismatchError(
                f"Cannot combine a {self.DIM}-D pose with a {other.DIM}-D pose"
            )

    @classmethod
    def identity(cls, dtype=None) -> "Pose":
        return cls(jnp.zeros(cls.DIM, dtype=dtype), jnp.eye(cls.DIM, dtype=dtype))

    def compose(self, other: "Pose") -> "Pose":
        """``self ∘ other``. The result carries no uncertainty."""
        self._check_same_dim(other)
        R, t = math3d.compose(self.rotation, self.translation, other.rotation, other.translation)
        return type(self)(t, R)

    def inverse(self) -> "Pose":
        R, t = math3d.invert(self.rotation, self.translation)
        return type(self)(t, R)

    def relative_to(self, other: "Pose") -> "Pose":
        """Transform taking ``other`` to ``self``: ``other⁻¹ ∘ self``."""
        self._check_same_dim(other)
        R, t = math3d.relative(other.rotation, other.translation, self.rotation, self.translation)
        return type(self)(t, R)

    def to_matrix(self) -> jnp.ndarray:
        return math3d.to_homogeneous(self.rotation, self.translation)

    def isclose(self, other: "Pose", atol: float = 1e-5) -> bool:
        """Geometric equality within ``atol``. Uncertainty is not compared."""
        self._check_same_dim(other)
        return bool(
            jnp.allclose(self.translation, other.translation, atol=atol)
            and jnp.allclose(self.rotation, other.rotation, atol=atol)
        )


@dataclass(frozen=True, eq=False)
class Pose2(Pose):
    """SE(2) pose: position (x, y) and heading theta (radians, counter-clockwise)."""

    DIM: ClassVar[int] = 2
    TANGENT_DIM: ClassVar[int] = 3
    NUM_FIELDS: ClassVar[int] = 3

    @classmethod
    def from_angle(cls, translation, theta: float, uncertainty: Optional[Uncertainty] = None, dtype=None) -> "Pose2":
        t = jnp.asarray(translation, dtype=dtype)
        return cls(t, math3d.rot2(theta, dtype=t.dtype), uncertainty)

    @classmethod
    def from_fields(cls, fields: Sequence, dtype=None) -> "Pose2":
        x, y, theta = _parse_fields(fields, cls.NUM_FIELDS, "Pose2")
        return cls.from_angle([x, y], theta, dtype=dtype)

    @property
    def angle(self) -> float:
        return float(math3d.rot2_angle(self.rotation))

    def to_fields(self) -> list[float]:
        return [float(self.translation[0]), float(self.translation[1]), self.angle]

    def __repr__(self) -> str:
        x, y, theta = self.to_fields()
        return f"Pose2(x={x:.4f}, y={y:.4f}, theta={theta:.4f}, uncertainty={self.uncertainty_type()})"


@dataclass(frozen=True, eq=False)
class Pose3(Pose):
    """
    SE(3) pose: translation (x, y, z) and an explicit 3×3 rotation.

    Construct from a quaternion with :meth:`from_quaternion` or from the g2o
    field order ``x y z qx qy qz qw`` with :meth:`from_fields`.
    """

    DIM: ClassVar[int] = 3
    TANGENT_DIM: ClassVar[int] = 6
    NUM_FIELDS: ClassVar[int] = 7

    @classmethod
    def from_quaternion(cls, translation, quaternion, uncertainty: Optional[Uncertainty] = None, dtype=None) -> "Pose3":
        """
        :param translation: ``[x, y, z]``.
        :param quaternion: ``[qx, qy, qz, qw]``, normalised here.
        """
        t = jnp.asarray(translation, dtype=dtype)
        return cls(t, math3d.quat_to_rot(quaternion, dtype=t.dtype), uncertainty)

    @classmethod
    def from_fields(cls, fields: Sequence, dtype=None) -> "Pose3":
        x, y, z, qx, qy, qz, qw = _parse_fields(fields, cls.NUM_FIELDS, "Pose3")
        return cls.from_quaternion([x, y, z], [qx, qy, qz, qw], dtype=dtype)

    @classmethod
    def from_rpy(cls, translation, roll: float, pitch: float, yaw: float, dtype=None) -> "Pose3":
        t = jnp.asarray(translation, dtype=dtype)
        return cls(t, math3d.rpy_to_rot(roll, pitch, yaw, dtype=t.dtype))

    def to_quaternion(self) -> jnp.ndarray:
        """``[qx, qy, qz, qw]`` with ``qw >= 0``."""
        return math3d.rot_to_quat(self.rotation)

    def to_rpy(self) -> tuple[float, float, float]:
        return math3d.rot_to_rpy(self.rotation)

    def to_fields(self) -> list[float]:
        return [float(v) for v in self.translation] + [float(v) for v in self.to_quaternion()]

    def __repr__(self) -> str:
        x, y, z, qx, qy, qz, qw = self.to_fields()
        return (
            f"Pose3(t=[{x:.4f}, {y:.4f}, {z:.4f}], q=[{qx:.4f}, {qy:.4f}, {qz:.4f}, {qw:.4f}], "
            f"uncertainty={self.uncertainty_type()})"
        )


POSE_TYPES = {2: Pose2, 3: Pose3}


def pose_type_for_dim(dim: int) -> type:
    try:
        return POSE_TYPES[dim]
    except KeyError:
        raise DimensionMismatchError(f"Unsupported pose dimension {dim}; expected one of {sorted(POSE_TYPES)}") from None
