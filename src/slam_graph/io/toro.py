# Copyright (c) 2025.
# This file is part of slam-graph, released under the MIT License.
"""
TORO / MRPT graph format codec.

References:
    * https://openslam-org.github.io/toro.html
    * https://www.mrpt.org/Graph-SLAM_maps

Supported records::

    VERTEX2 / VERTEX3 / VERTEX ...                          -> ignored
    EDGE2 <src> <dst> <dx> <dy> <dth>
          [<I11> <I12> <I22> <I33> <I13> <I23>]             -> BetweenPosesFactor (2-D)
    EDGE3 <src> <dst> <x> <y> <z> <roll> <pitch> <yaw>
          [<21 information upper-triangle values>]          -> BetweenPosesFactor (3-D)

``EDGE`` without a suffix is read as ``EDGE2``. The 2-D information block
uses TORO's own ordering (translation terms, then rotation, then the
cross terms), which differs from g2o's row-major upper triangle.
"""

from __future__ import annotations
import logging
from typing import List, Optional, Tuple, Type

import jax.numpy as jnp

from ..core.errors import InvalidInputError, ToroParseError
from ..core.factor_graph import FactorGraph
from ..core.factors import BetweenPosesFactor
from ..core.poses import Pose, Pose2, Pose3
from ..core.types import Uncertainty, UncertaintyType, node_id
from .base import (
    LoadConfig,
    LoadReport,
    Record,
    RecordKind,
    Source,
    Target,
    ingest,
    merge_into,
    parse_floats,
    split_tag,
    write_lines,
)

logger = logging.getLogger("slam_graph.io.toro")

ToroConfig = LoadConfig

EDGE_TAG_DIMS = {"EDGE": 2, "EDGE2": 2, "EDGE3": 3}
VERTEX_TAGS = {"VERTEX", "VERTEX2", "VERTEX3"}
INFO_SIZES = {2: 6, 3: 21}


def _toro2_info_to_matrix(v: List[float], dtype=None) -> jnp.ndarray:
    i11, i12, i22, i33, i13, i23 = v
    return jnp.array(
        [
            [i11, i12, i13],
            [i12, i22, i23],
            [i13, i23, i33],
        ],
        dtype=dtype,
    )


def _toro2_matrix_to_info(m: jnp.ndarray) -> List[float]:
    return [float(m[0, 0]), float(m[0, 1]), float(m[1, 1]), float(m[2, 2]), float(m[0, 2]), float(m[1, 2])]


def parse_toro_line(
    line: str,
    dim: int = 2,
    cfg: Optional[ToroConfig] = None,
    line_no: Optional[int] = None,
) -> Record:
    """Parse a single TORO line into a :class:`Record`."""
    cfg = cfg or ToroConfig()
    tokens = line.split()
    if not tokens:
        return Record(RecordKind.BLANK)

    tag, qualifier = split_tag(tokens[0])
    if tag in VERTEX_TAGS:
        return Record(RecordKind.VERTEX, tag, qualifier)
    if tag not in EDGE_TAG_DIMS:
        return Record(RecordKind.UNKNOWN, tag, qualifier)

    edge_dim = EDGE_TAG_DIMS[tag]
    if edge_dim != dim:
        raise ToroParseError(f"{tag!r} record in a {dim}-D graph", line_no, line)
    if len(tokens) < 3:
        raise ToroParseError("edge record is missing node ids", line_no, line)
    try:
        src = node_id(tokens[1])
        dst = node_id(tokens[2])
    except InvalidInputError as e:
        raise ToroParseError(str(e), line_no, line) from None

    n_pose = 3 if edge_dim == 2 else 6
    rest = tokens[3:]
    if len(rest) < n_pose:
        raise ToroParseError(f"edge record needs {n_pose} pose fields, got {len(rest)}", line_no, line)
    values = parse_floats(rest[:n_pose], "pose", ToroParseError, line_no, line)

    try:
        if edge_dim == 2:
            pose: Pose = Pose2.from_angle(values[:2], values[2], dtype=cfg.dtype)
        else:
            pose = Pose3.from_rpy(values[:3], *values[3:], dtype=cfg.dtype)
    except InvalidInputError as e:
        raise ToroParseError(str(e), line_no, line) from None

    info_fields = rest[n_pose:]
    if info_fields:
        expected = INFO_SIZES[edge_dim]
        if len(info_fields) != expected:
            raise ToroParseError(
                f"information matrix needs {expected} values, got {len(info_fields)}", line_no, line
            )
        info = parse_floats(info_fields, "information", ToroParseError, line_no, line)
        if cfg.attach_information:
            if edge_dim == 2:
                u = Uncertainty(UncertaintyType.INFORMATION, _toro2_info_to_matrix(info, cfg.dtype))
            else:
                u = Uncertainty.from_upper_triangle(info, 6, UncertaintyType.INFORMATION, dtype=cfg.dtype)
            pose = pose.with_uncertainty(u)

    return Record(RecordKind.EDGE, tag, qualifier, BetweenPosesFactor(src, dst, pose))


def read_toro(
    source: Source,
    cfg: Optional[ToroConfig] = None,
    dim: int = 2,
    graph_cls: Type[FactorGraph] = FactorGraph,
) -> Tuple[FactorGraph, LoadReport]:
    """Build a new graph from a TORO file path or an iterable of lines."""
    return ingest(source, parse_toro_line, cfg or ToroConfig(), dim=dim, graph_cls=graph_cls)


def load_toro(source: Source, graph: FactorGraph, cfg: Optional[ToroConfig] = None) -> LoadReport:
    """Append the factors of a TORO source to ``graph`` (all or nothing)."""
    fresh, report = read_toro(source, cfg, dim=graph.dim, graph_cls=type(graph))
    merge_into(graph, fresh)
    return report


def format_toro_edge(factor: BetweenPosesFactor) -> str:
    pose = factor.measurement
    if pose.dim == 2:
        fields = pose.to_fields()
        tag = "EDGE2"
    else:
        fields = [float(v) for v in pose.translation] + list(pose.to_rpy())
        tag = "EDGE3"
    parts = [tag, str(factor.src), str(factor.dst), " ".join(f"{v:.9g}" for v in fields)]
    if pose.uncertainty is not None:
        info = pose.uncertainty.as_information()
        values = _toro2_matrix_to_info(info.matrix) if pose.dim == 2 else info.upper_triangle()
        parts.append(" ".join(f"{v:.9g}" for v in values))
    return " ".join(parts)


def export_toro(graph: FactorGraph, target: Target) -> int:
    """Write every :class:`BetweenPosesFactor` of ``graph`` as a TORO edge."""
    def lines():
        for f in graph.factors():
            if isinstance(f, BetweenPosesFactor):
                yield format_toro_edge(f)
            else:
                logger.warning("Cannot export %s to TORO, skipping", type(f).__name__)

    n = write_lines(target, lines())
    logger.info("Exported %d TORO edges", n)
    return n
