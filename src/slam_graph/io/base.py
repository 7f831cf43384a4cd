# Copyright (c) 2025.
# This file is part of slam-graph, released under the MIT License.
"""
Shared machinery for the line-oriented graph file formats.

Both the g2o and the TORO codecs read one record per line, whitespace
separated, with no comment syntax. Each codec supplies a ``parse_line``
function turning one line into a :class:`Record`; :func:`ingest` drives it
over a file or an iterable of lines and builds a fresh graph.

Failure policy
--------------
- Missing / unreadable file: the ``OSError`` from ``open`` propagates.
- Malformed record: with ``strict=True`` (default) the first one raises the
  codec's :class:`RecordParseError`; with ``strict=False`` the line is
  skipped, a warning is logged and the line is listed in
  :attr:`LoadReport.malformed`.
- Cancellation: ``should_cancel`` is polled before every line; a True result
  raises :class:`IngestionCancelledError`.

In every failing case the partially built graph is discarded, so callers
see either a complete graph or an exception.
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
import logging
import math
import os
from typing import Any, Callable, Iterable, Iterator, List, Optional, TextIO, Tuple, Type, Union

from ..core.errors import IngestionCancelledError, RecordParseError
from ..core.factor_graph import FactorGraph
from ..core.factors import Factor

logger = logging.getLogger("slam_graph.io")

Source = Union[str, os.PathLike, Iterable[str]]
Target = Union[str, os.PathLike, TextIO]


@dataclass
class LoadConfig:
    """
    Options shared by the text codecs.

    - strict: abort on the first malformed record instead of skipping it
    - attach_information: store trailing information-matrix fields on the
      measurement's uncertainty
    - should_cancel: polled once per line; return True to abort the load
    - dtype: floating point dtype for the parsed poses (None: JAX default)
    """
    strict: bool = True
    attach_information: bool = True
    should_cancel: Optional[Callable[[], bool]] = None
    dtype: Any = None


class RecordKind(Enum):
    VERTEX = "vertex"
    EDGE = "edge"
    UNKNOWN = "unknown"
    BLANK = "blank"


@dataclass(frozen=True)
class Record:
    """One parsed line. ``factor`` is set only for edge records."""
    kind: RecordKind
    tag: str = ""
    qualifier: Optional[str] = None
    factor: Optional[Factor] = None


@dataclass
class LoadReport:
    """Summary of one ingestion call."""
    lines_read: int = 0
    factors_added: int = 0
    vertices_ignored: int = 0
    blank_lines: int = 0
    unknown_tags: Counter = field(default_factory=Counter)
    malformed: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.malformed)

    @property
    def unknown_count(self) -> int:
        return sum(self.unknown_tags.values())


def split_tag(token: str) -> Tuple[str, Optional[str]]:
    """``"EDGE_SE3:QUAT"`` -> ``("EDGE_SE3", "QUAT")``; no qualifier gives None."""
    tag, sep, qualifier = token.partition(":")
    return tag, (qualifier if sep else None)


def parse_floats(
    tokens,
    what: str,
    error_cls: Type[RecordParseError],
    line_no: Optional[int] = None,
    line: Optional[str] = None,
) -> List[float]:
    out = []
    for tok in tokens:
        try:
            value = float(tok)
        except ValueError:
            raise error_cls(f"{what} field {tok!r} is not a number", line_no, line) from None
        if not math.isfinite(value):
            raise error_cls(f"{what} field {tok!r} is not finite", line_no, line)
        out.append(value)
    return out


def iter_lines(source: Source) -> Iterator[str]:
    """
    Yield lines from a path (opened as UTF-8 text) or from any iterable of strings.

    Undecodable bytes are kept as lone surrogates rather than aborting the
    read. Tags and numbers are ASCII, so such a line is either skipped as an
    unknown record or fails field parsing as a malformed one.
    """
    if isinstance(source, (str, os.PathLike)):
        with open(source, "r", encoding="utf-8", errors="surrogateescape") as f:
            yield from f
    else:
        yield from source


def write_lines(target: Target, lines: Iterable[str]) -> int:
    """Write ``lines`` (newline added) to a path or a text stream; returns the count."""
    count = 0
    if isinstance(target, (str, os.PathLike)):
        with open(target, "w", encoding="utf-8") as f:
            for line in lines:
                f.write(line + "\n")
                count += 1
    else:
        for line in lines:
            target.write(line + "\n")
            count += 1
    return count


ParseLine = Callable[[str, int, LoadConfig, Optional[int]], Record]


def ingest(
    source: Source,
    parse_line: ParseLine,
    cfg: LoadConfig,
    dim: int = 3,
    graph_cls: Type[FactorGraph] = FactorGraph,
) -> Tuple[FactorGraph, LoadReport]:
    """
    Run ``parse_line`` over every line of ``source`` and collect the edge
    records into a new ``graph_cls(dim=dim)``.
    """
    graph = graph_cls(dim=dim)
    report = LoadReport()
    # Opening happens on first iteration, so a missing file raises here.
    lines = iter_lines(source)

    for line_no, raw in enumerate(lines, start=1):
        if cfg.should_cancel is not None and cfg.should_cancel():
            logger.info("Ingestion cancelled before line %d", line_no)
            raise IngestionCancelledError(line_no)

        report.lines_read += 1
        line = raw.rstrip("\r\n")
        try:
            record = parse_line(line, dim, cfg, line_no)
        except RecordParseError as e:
            if cfg.strict:
                raise
            logger.warning("Skipping line %d: %s", line_no, e.reason)
            report.malformed.append((line_no, e.reason))
            continue

        if record.kind is RecordKind.EDGE:
            graph.add_factor(record.factor)
            report.factors_added += 1
        elif record.kind is RecordKind.VERTEX:
            report.vertices_ignored += 1
        elif record.kind is RecordKind.BLANK:
            report.blank_lines += 1
        else:
            report.unknown_tags[record.tag] += 1

    logger.info(
        "Loaded %d factors over %d nodes (%d lines, %d vertices ignored, %d unknown, %d malformed)",
        report.factors_added,
        graph.node_count(),
        report.lines_read,
        report.vertices_ignored,
        report.unknown_count,
        report.skipped_count,
    )
    if report.unknown_tags:
        logger.debug("Unknown record tags: %s", dict(report.unknown_tags))
    return graph, report


def merge_into(graph: FactorGraph, fresh: FactorGraph) -> None:
    """Append every factor of ``fresh`` to ``graph``."""
    graph.extend(fresh.factors())
