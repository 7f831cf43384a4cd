# Copyright (c) 2025.
# This file is part of slam-graph, released under the MIT License.
"""
Core typed data structures for slam-graph.

These types are intentionally minimal. A node in the graph is nothing more
than an opaque integer handle; all state lives in the factors that reference
it. Uncertainty attached to a measurement is kept in whichever of its two
dual forms it was given, and converted on request.

Types
-----
NodeId
    Opaque unsigned handle for a pose or a landmark. ``PoseId`` and
    ``LandmarkId`` are aliases that document intent at call sites.

UncertaintyType
    Tag selecting the covariance or information (inverse covariance) form.

Uncertainty
    A square matrix together with its ``UncertaintyType``.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, NewType

import jax.numpy as jnp

from .errors import InvalidInputError

NodeId = NewType("NodeId", int)
PoseId = NodeId
LandmarkId = NodeId


def node_id(value: Any) -> NodeId:
    """Coerce ``value`` to a :data:`NodeId`, rejecting negatives and non-integers."""
    if isinstance(value, bool):
        raise InvalidInputError(f"Node id must be an unsigned integer, got {value!r}")
    if isinstance(value, str):
        token = value.strip()
        if not (token.isascii() and token.isdigit()):
            raise InvalidInputError(f"Node id must be an unsigned integer, got {value!r}")
        return NodeId(int(token))
    try:
        as_int = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"Node id must be an unsigned integer, got {value!r}") from exc
    if as_int != value or as_int < 0:
        raise InvalidInputError(f"Node id must be an unsigned integer, got {value!r}")
    return NodeId(as_int)


class UncertaintyType(Enum):
    """Way of encoding the uncertainty of a measurement."""
    COVARIANCE = "covariance"
    INFORMATION = "information"


@dataclass(frozen=True, eq=False)
class Uncertainty:
    """Gaussian uncertainty in either covariance or information form."""
    kind: UncertaintyType
    matrix: jnp.ndarray

    def __post_init__(self) -> None:
        m = jnp.asarray(self.matrix)
        if m.ndim != 2 or m.shape[0] != m.shape[1]:
            raise InvalidInputError(f"Uncertainty matrix must be square, got shape {m.shape}")
        object.__setattr__(self, "matrix", m)

    @property
    def size(self) -> int:
        return int(self.matrix.shape[0])

    def as_information(self) -> "Uncertainty":
        if self.kind is UncertaintyType.INFORMATION:
            return self
        return Uncertainty(UncertaintyType.INFORMATION, jnp.linalg.inv(self.matrix))

    def as_covariance(self) -> "Uncertainty":
        if self.kind is UncertaintyType.COVARIANCE:
            return self
        return Uncertainty(UncertaintyType.COVARIANCE, jnp.linalg.inv(self.matrix))

    @classmethod
    def from_upper_triangle(
        cls, values, size: int, kind: UncertaintyType = UncertaintyType.INFORMATION, dtype=None
    ) -> "Uncertainty":
        """
        Build a symmetric matrix from its row-major upper triangle, the way
        g2o and TORO files store information matrices.
        """
        expected = size * (size + 1) // 2
        values = list(values)
        if len(values) != expected:
            raise InvalidInputError(
                f"Upper triangle of a {size}x{size} matrix needs {expected} values, got {len(values)}"
            )
        rows, cols = jnp.triu_indices(size)
        m = jnp.zeros((size, size), dtype=dtype)
        m = m.at[rows, cols].set(jnp.asarray(values, dtype=dtype))
        m = m.at[cols, rows].set(jnp.asarray(values, dtype=dtype))
        return cls(kind, m)

    def upper_triangle(self) -> list[float]:
        rows, cols = jnp.triu_indices(self.size)
        return [float(v) for v in self.matrix[rows, cols]]

    def isclose(self, other: "Uncertainty", atol: float = 1e-6) -> bool:
        return (
            self.kind is other.kind
            and self.size == other.size
            and bool(jnp.allclose(self.matrix, other.matrix, atol=atol))
        )
