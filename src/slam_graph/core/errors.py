# Copyright (c) 2025.
# This file is part of slam-graph, released under the MIT License.
"""
Exception hierarchy for slam-graph.

Every error raised by the library derives from :class:`SlamError`. Errors
caused by bad input additionally derive from :class:`ValueError` so callers
that only care about "the data was wrong" can catch the builtin. I/O errors
(missing or unreadable files) are not wrapped: the builtin ``OSError``
subclasses propagate unchanged from the ingestion entry points.
"""

from __future__ import annotations
from typing import Optional


class SlamError(Exception):
    """Base class of all slam-graph errors."""


class InvalidInputError(SlamError, ValueError):
    """Catch-all for invalid inputs."""


class InvalidPoseError(InvalidInputError):
    """A pose could not be built from the given fields."""


class DimensionMismatchError(InvalidInputError):
    """An operation mixed 2-D and 3-D objects."""


class RecordParseError(InvalidInputError):
    """A single text record could not be parsed.

    :param reason: Human readable description of what went wrong.
    :param line_no: 1-based line number in the source, when known.
    :param line: The offending line, stripped of its newline.
    """

    format_name = "record"

    def __init__(self, reason: str, line_no: Optional[int] = None, line: Optional[str] = None) -> None:
        self.reason = reason
        self.line_no = line_no
        self.line = line
        where = f" at line {line_no}" if line_no is not None else ""
        super().__init__(f"Malformed {self.format_name}{where}: {reason}")


class G2OParseError(RecordParseError):
    format_name = "g2o record"


class ToroParseError(RecordParseError):
    format_name = "TORO record"


class IngestionCancelledError(SlamError):
    """Ingestion was cancelled by the caller before it finished."""

    def __init__(self, line_no: int) -> None:
        self.line_no = line_no
        super().__init__(f"Ingestion cancelled before line {line_no}")


# --- Dataset / stream errors ---

class DatasetDriverError(SlamError):
    """Errors associated with dataset and stream operations."""


class UnsteadyFrequencyError(DatasetDriverError):
    def __init__(self, message: str = "Frequency of the given stream is not steady") -> None:
        super().__init__(message)


class StreamEmptyError(DatasetDriverError):
    def __init__(self, message: str = "Stream doesn't contain any measurements") -> None:
        super().__init__(message)


class StreamNotInitialisedError(DatasetDriverError):
    def __init__(self, message: str = "Stream is not initialised yet") -> None:
        super().__init__(message)


class DatasetInitialisationError(DatasetDriverError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Dataset initialisation failed - Reason: {reason}")
