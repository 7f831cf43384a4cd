# Copyright (c) 2025.
# This file is part of slam-graph, released under the MIT License.
"""
g2o text format codec.

Format reference: https://github.com/RainerKuemmerle/g2o/wiki/File-Format

Supported subset (one record per line, whitespace separated)::

    VERTEX_SE3[:<qualifier>] <id> ...                  -> ignored
    EDGE_SE3[:<qualifier>] <src> <dst>
        <x> <y> <z> <qx> <qy> <qz> <qw>
        [<21 information upper-triangle values>]       -> BetweenPosesFactor (3-D)
    EDGE_SE2[:<qualifier>] <src> <dst>
        <x> <y> <theta> [<6 information values>]       -> BetweenPosesFactor (2-D)
    <anything else>                                     -> ignored

Nodes are never declared by vertex records; they exist because edges
reference them. The optional ``:<qualifier>`` suffix (e.g. ``QUAT``) is kept
on the parsed :class:`Record` but does not change how the pose is read.

Example line::

    EDGE_SE3:QUAT 4877 4977 0.100898 -0.810923 -0.475330 0.6337326 -0.4920395 -0.5958230 0.0357092 100 0 0 0 0 0 100 0 0 0 0 100 0 0 0 400 0 0 400 0 400
"""

from __future__ import annotations
import logging
from typing import Optional, Tuple, Type

from ..core.errors import G2OParseError, InvalidInputError
from ..core.factor_graph import FactorGraph
from ..core.factors import BetweenPosesFactor
from ..core.poses import pose_type_for_dim
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

logger = logging.getLogger("slam_graph.io.g2o")

G2OConfig = LoadConfig

VERTEX_PREFIX = "VERTEX_SE"
EDGE_PREFIX = "EDGE_SE"
EDGE_TAGS = {2: "EDGE_SE2", 3: "EDGE_SE3:QUAT"}


def _edge_dim(tag: str, line_no: Optional[int], line: str) -> int:
    suffix = tag[len(EDGE_PREFIX):len(EDGE_PREFIX) + 1]
    if suffix == "2":
        return 2
    if suffix == "3":
        return 3
    raise G2OParseError(f"unsupported edge type {tag!r}", line_no, line)


def parse_g2o_line(
    line: str,
    dim: int = 3,
    cfg: Optional[G2OConfig] = None,
    line_no: Optional[int] = None,
) -> Record:
    """
    Parse a single g2o line into a :class:`Record`.

    Raises :class:`G2OParseError` for a malformed edge record. Vertex,
    unknown and blank lines never raise.
    """
    cfg = cfg or G2OConfig()
    tokens = line.split()
    if not tokens:
        return Record(RecordKind.BLANK)

    tag, qualifier = split_tag(tokens[0])

    if tag.startswith(VERTEX_PREFIX):
        return Record(RecordKind.VERTEX, tag, qualifier)
    if not tag.startswith(EDGE_PREFIX):
        return Record(RecordKind.UNKNOWN, tag, qualifier)

    edge_dim = _edge_dim(tag, line_no, line)
    if edge_dim != dim:
        raise G2OParseError(f"{tag!r} record in a {dim}-D graph", line_no, line)

    if len(tokens) < 3:
        raise G2OParseError("edge record is missing node ids", line_no, line)
    try:
        src = node_id(tokens[1])
        dst = node_id(tokens[2])
    except InvalidInputError as e:
        raise G2OParseError(str(e), line_no, line) from None

    pose_cls = pose_type_for_dim(edge_dim)
    rest = tokens[3:]
    n_pose = pose_cls.NUM_FIELDS
    if len(rest) < n_pose:
        raise G2OParseError(
            f"edge record needs {n_pose} pose fields, got {len(rest)}", line_no, line
        )
    try:
        pose = pose_cls.from_fields(rest[:n_pose], dtype=cfg.dtype)
    except InvalidInputError as e:
        raise G2OParseError(str(e), line_no, line) from None

    info_fields = rest[n_pose:]
    if info_fields:
        side = pose_cls.TANGENT_DIM
        expected = side * (side + 1) // 2
        if len(info_fields) != expected:
            raise G2OParseError(
                f"information matrix needs {expected} values, got {len(info_fields)}", line_no, line
            )
        values = parse_floats(info_fields, "information", G2OParseError, line_no, line)
        if cfg.attach_information:
            pose = pose.with_uncertainty(
                Uncertainty.from_upper_triangle(values, side, UncertaintyType.INFORMATION, dtype=cfg.dtype)
            )

    return Record(RecordKind.EDGE, tag, qualifier, BetweenPosesFactor(src, dst, pose))


def read_g2o(
    source: Source,
    cfg: Optional[G2OConfig] = None,
    dim: int = 3,
    graph_cls: Type[FactorGraph] = FactorGraph,
) -> Tuple[FactorGraph, LoadReport]:
    """
    Build a new graph from a g2o file path or an iterable of lines.

    :returns: ``(graph, report)``.
    :raises FileNotFoundError: if ``source`` is a path that does not exist.
    :raises G2OParseError: on a malformed record in strict mode.
    :raises IngestionCancelledError: if ``cfg.should_cancel`` fired.
    """
    return ingest(source, parse_g2o_line, cfg or G2OConfig(), dim=dim, graph_cls=graph_cls)


def load_g2o(source: Source, graph: FactorGraph, cfg: Optional[G2OConfig] = None) -> LoadReport:
    """
    Append the factors of a g2o source to ``graph``.

    Parsing happens into a fresh graph of the same type and dimension;
    ``graph`` only changes once the whole source has been read successfully.
    """
    fresh, report = read_g2o(source, cfg, dim=graph.dim, graph_cls=type(graph))
    merge_into(graph, fresh)
    return report


def _fmt(values) -> str:
    return " ".join(f"{float(v):.9g}" for v in values)


def format_g2o_edge(factor: BetweenPosesFactor) -> str:
    """Render a between factor as a single g2o edge line."""
    pose = factor.measurement
    parts = [EDGE_TAGS[pose.dim], str(factor.src), str(factor.dst), _fmt(pose.to_fields())]
    if pose.uncertainty is not None:
        parts.append(_fmt(pose.uncertainty.as_information().upper_triangle()))
    return " ".join(parts)


def export_g2o(graph: FactorGraph, target: Target) -> int:
    """
    Write every :class:`BetweenPosesFactor` of ``graph`` as a g2o edge.

    Factors of other kinds have no g2o edge form and are skipped with a
    warning. Covariances are written in information form.

    :returns: number of lines written.
    """
    def lines():
        for f in graph.factors():
            if isinstance(f, BetweenPosesFactor):
                yield format_g2o_edge(f)
            else:
                logger.warning("Cannot export %s to g2o, skipping", type(f).__name__)

    n = write_lines(target, lines())
    logger.info("Exported %d g2o edges", n)
    return n
