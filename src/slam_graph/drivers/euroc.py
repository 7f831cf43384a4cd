# Copyright (c) 2025.
# This file is part of slam-graph, released under the MIT License.
"""
Read the index of a stream stored in the EuRoC MAV dataset layout.

For more information on the format see:

- EuRoC datasets download page:
  https://projects.asl.ethz.ch/datasets/doku.php?id=kmavvisualinertialdatasets

A stream directory looks like::

    <...>/mav0            <- root of the dataset
    <...>/mav0/cam0/      <- root of this stream
    <...>/mav0/cam0/data.csv
    <...>/mav0/cam0/data/1403636579763555584.png

``data.csv`` starts with a ``#`` header line and holds
``timestamp [ns], filename`` rows. Only the index is read here: entries are
yielded as ``StampedEntry(timestamp_ns, path)``, decoding the files is left
to the consumer.
"""

from __future__ import annotations
import csv
import logging
from pathlib import Path
from typing import Iterator, List, Optional, Union

from ..core.errors import DatasetInitialisationError, StreamEmptyError, StreamNotInitialisedError
from .streams import FiniteStream, MeasurementType, StampedEntry, infer_frequency

logger = logging.getLogger("slam_graph.drivers.euroc")


class EurocStream(FiniteStream):
    """
    A finite stream of files indexed by a EuRoC ``data.csv``.

    :param root_dir: Directory of the stream (``<...>/mav0/cam0``).
    :param measurement_type: What the files contain.
    :param data_file: Name of the index inside ``root_dir``.
    :param data_dir: Directory the filenames are relative to, inside
        ``root_dir``.
    :param check_files: Drop index rows whose file does not exist.
    """

    def __init__(
        self,
        root_dir: Union[str, Path],
        measurement_type: MeasurementType = MeasurementType.GRAYSCALE,
        data_file: str = "data.csv",
        data_dir: str = "data",
        check_files: bool = True,
    ) -> None:
        self.root_dir = Path(root_dir)
        self._measurement_type = measurement_type
        self.data_file = data_file
        self.data_dir = data_dir
        self.check_files = check_files
        self._entries: Optional[List[StampedEntry]] = None
        self._freq: Optional[float] = None

    @property
    def measurement_type(self) -> MeasurementType:
        return self._measurement_type

    @property
    def initialised(self) -> bool:
        return self._entries is not None

    def _resolve(self, filename: str) -> Path:
        return self.root_dir / self.data_dir / filename

    def init(self) -> None:
        """
        Read the index, drop rows whose file is missing and cache the
        frequency hint.

        :raises FileNotFoundError: if the index file does not exist.
        :raises DatasetInitialisationError: on a malformed index row.
        :raises StreamEmptyError: if no usable entry remains.
        """
        index_path = self.root_dir / self.data_file
        entries: List[StampedEntry] = []
        dropped = 0

        with open(index_path, "r", encoding="utf-8", newline="") as f:
            for row_no, row in enumerate(csv.reader(f), start=1):
                if not row or row[0].lstrip().startswith("#"):
                    continue
                if len(row) < 2:
                    raise DatasetInitialisationError(f"{index_path}:{row_no}: expected 'timestamp,filename'")
                try:
                    stamp = int(row[0].strip())
                except ValueError:
                    raise DatasetInitialisationError(
                        f"{index_path}:{row_no}: timestamp {row[0]!r} is not an integer"
                    ) from None

                path = self._resolve(row[1].strip())
                if self.check_files and not path.exists():
                    logger.warning("File path [%s] is invalid", path)
                    dropped += 1
                    continue
                entries.append(StampedEntry(stamp, path))

        if not entries:
            raise StreamEmptyError(f"Stream at {self.root_dir} has no usable entries ({dropped} dropped)")

        self._entries = entries
        self._freq = infer_frequency([e.timestamp_ns for e in entries])
        logger.info(
            "Initialised stream %s: %d entries, %d dropped, freq hint %s",
            self.root_dir,
            len(entries),
            dropped,
            "unsteady" if self._freq is None else f"{self._freq:.3f} Hz",
        )

    def _require_entries(self) -> List[StampedEntry]:
        if self._entries is None:
            raise StreamNotInitialisedError()
        return self._entries

    def _cached_frequency(self) -> Optional[float]:
        self._require_entries()
        return self._freq

    def __len__(self) -> int:
        return len(self._require_entries())

    def __iter__(self) -> Iterator[StampedEntry]:
        return iter(self._require_entries())

    def __getitem__(self, idx: int) -> StampedEntry:
        return self._require_entries()[idx]
