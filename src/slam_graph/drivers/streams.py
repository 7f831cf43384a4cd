# Copyright (c) 2025.
# This file is part of slam-graph, released under the MIT License.
"""
Measurement stream contract.

Dataset drivers sit outside the graph core; this module only fixes the
interface they present to it:

Stream
    Exposes a :class:`MeasurementType` and a fallible ``init()``.

FiniteStream
    A stream with a known length and a frequency hint. ``freq_hint()``
    raises :class:`UnsteadyFrequencyError` when the inter-arrival times are
    not stable enough for a single frequency to describe them.

Frequency rule
--------------
Given timestamps ``t_0 < t_1 < ... < t_n`` (nanoseconds), the per-gap rates
are ``f_i = 1 / (t_i - t_{i-1})`` in Hz. With ``μ`` and ``σ`` their mean and
population standard deviation, the stream is steady when fewer than 10% of
the ``f_i`` fall outside ``[μ - 3σ, μ + 3σ]``; the hint is then ``μ``.
Fewer than two timestamps, or any non-positive gap, give no hint.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from ..core.errors import UnsteadyFrequencyError

NANOS_PER_SECOND = 1e9
OUTLIER_SIGMAS = 3.0
MAX_OUTLIER_FRACTION = 0.1


class MeasurementType(Enum):
    """Types of measurements that SLAM can run on."""
    GRAYSCALE = "grayscale"
    RGB = "rgb"
    IMU = "imu"
    GPS = "gps"
    ODOMETRY = "odometry"


@dataclass(frozen=True)
class StampedEntry:
    """One entry of a finite stream: a timestamp and the file holding the data."""
    timestamp_ns: int
    path: Path


def infer_frequency(timestamps_ns: Sequence[int]) -> Optional[float]:
    """
    Frequency hint (Hz) for a sequence of timestamps in nanoseconds, or None
    when the rate is not steady. See the module docstring for the rule.
    """
    # Differences are taken on int64: epoch nanoseconds do not fit a float64 mantissa.
    stamps = np.asarray(timestamps_ns, dtype=np.int64)
    if stamps.size < 2:
        return None
    gaps = np.diff(stamps).astype(np.float64) / NANOS_PER_SECOND
    if np.any(gaps <= 0.0):
        return None

    freqs = 1.0 / gaps
    mean = float(np.mean(freqs))
    stddev = float(np.std(freqs))
    outliers = np.count_nonzero(
        (freqs > mean + OUTLIER_SIGMAS * stddev) | (freqs < mean - OUTLIER_SIGMAS * stddev)
    )
    if outliers < MAX_OUTLIER_FRACTION * freqs.size:
        return mean
    return None


class Stream(ABC):
    """A stream of measurements that can be used for running SLAM."""

    @property
    @abstractmethod
    def measurement_type(self) -> MeasurementType:
        ...

    @abstractmethod
    def init(self) -> None:
        """Initialisation actions for the stream. Raises on failure."""


class FiniteStream(Stream):
    """A stream of finitely many measurements."""

    @abstractmethod
    def __len__(self) -> int:
        ...

    @abstractmethod
    def _cached_frequency(self) -> Optional[float]:
        ...

    def freq_hint(self) -> float:
        """
        Frequency of the measurements in Hz.

        :raises UnsteadyFrequencyError: if the frequency is not steady.
        """
        freq = self._cached_frequency()
        if freq is None:
            raise UnsteadyFrequencyError()
        return freq
