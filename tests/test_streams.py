from __future__ import annotations

from typing import Optional

import pytest

from slam_graph.core.errors import DatasetDriverError, UnsteadyFrequencyError
from slam_graph.drivers.streams import FiniteStream, MeasurementType, infer_frequency

PERIOD_20HZ = 50_000_000


def stamps_from_gaps(gaps, start=1_403_636_579_763_555_584):
    out = [start]
    for g in gaps:
        out.append(out[-1] + g)
    return out


class FixedStream(FiniteStream):
    def __init__(self, n: int, freq: Optional[float]):
        self._n = n
        self._freq = freq

    @property
    def measurement_type(self) -> MeasurementType:
        return MeasurementType.IMU

    def init(self) -> None:
        pass

    def __len__(self) -> int:
        return self._n

    def _cached_frequency(self) -> Optional[float]:
        return self._freq


def test_constant_rate_is_steady():
    stamps = stamps_from_gaps([PERIOD_20HZ] * 50)
    assert infer_frequency(stamps) == pytest.approx(20.0)


def test_single_dropped_frame_is_tolerated():
    gaps = [PERIOD_20HZ] * 29 + [2 * PERIOD_20HZ]
    freq = infer_frequency(stamps_from_gaps(gaps))
    assert freq is not None
    assert freq == pytest.approx((29 * 20.0 + 10.0) / 30)


def test_outliers_on_both_sides_are_unsteady():
    # 17 gaps at 20 Hz, one at 10 Hz and one at ~30 Hz: 2 of 19 rates sit
    # just beyond three standard deviations.
    gaps = [PERIOD_20HZ] * 8 + [100_000_000] + [PERIOD_20HZ] * 9 + [33_333_333]
    assert infer_frequency(stamps_from_gaps(gaps)) is None


@pytest.mark.parametrize("stamps", [[], [42]])
def test_too_few_stamps(stamps):
    assert infer_frequency(stamps) is None


@pytest.mark.parametrize("gaps", [[PERIOD_20HZ, 0, PERIOD_20HZ], [PERIOD_20HZ, -5, PERIOD_20HZ]])
def test_non_increasing_stamps(gaps):
    assert infer_frequency(stamps_from_gaps(gaps)) is None


def test_freq_hint():
    assert FixedStream(10, 200.0).freq_hint() == 200.0
    with pytest.raises(UnsteadyFrequencyError):
        FixedStream(10, None).freq_hint()


def test_driver_errors_share_a_base():
    with pytest.raises(DatasetDriverError):
        FixedStream(1, None).freq_hint()
