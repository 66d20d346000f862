from __future__ import annotations

import dataclasses
import math
import os
import stat
from datetime import datetime
from enum import Enum

SECONDS_PER_DAY = 3600 * 24
SIZE_SUFFIXES = " kMGTP"


class RankOrder(Enum):
    """Orderings available over the latest sample of each file."""

    BIGGEST = "sample.size DESC"
    OLDEST = "sample.mtime ASC"
    NEWEST = "sample.mtime DESC"


class ScanState(Enum):
    IDLE = 1
    WALKING = 2
    DRAINING = 3
    EVICTING = 4
    DONE = 5
    FAILED = 6


@dataclasses.dataclass(frozen=True)
class ScanRecord:
    """A regular file found by the walker, waiting to be written."""

    path: str
    sampletime: int
    mode: int
    size: int
    mtime: int

    @classmethod
    def from_stat(
        cls,
        path: str,
        stat_result: os.stat_result,
        sampletime: int,
    ) -> ScanRecord:
        """Build a record from an `os.stat_result` captured at `sampletime`."""
        return cls(
            path=path,
            sampletime=sampletime,
            mode=stat.S_IMODE(stat_result.st_mode),
            size=stat_result.st_size,
            mtime=int(stat_result.st_mtime),
        )


@dataclasses.dataclass(frozen=True)
class FileEntry:
    """The latest sample of a file as returned by the report queries."""

    path: str
    sampletime: int
    mode: int
    size: int
    mtime: int
    rate: float | None = None

    def __str__(self) -> str:
        """Return a tab separated report line."""
        mtime = datetime.fromtimestamp(self.mtime).strftime("%Y-%m-%d %H:%M:%S")
        rate = ""
        if self.rate:
            rate = f"{nice_size(self.rate * SECONDS_PER_DAY)}B/day\t"

        return f"{mtime}\t{self.mode:o}\t{nice_size(self.size)}\t{rate}{self.path}"


@dataclasses.dataclass(frozen=True)
class ScanResult:
    """Summary of one completed (or failed) scan of a root."""

    root: str
    dirid: int
    files_recorded: int
    batches_committed: int
    entry_errors: int
    files_evicted: int
    elapsed_seconds: float
    state: ScanState
    unlisted_directories: tuple[str, ...] = ()


def nice_size(value: float) -> str:
    """
    Format a byte count with a power of 1000 suffix.

    Args:
        value: The number of bytes. May be fractional or negative (rates).

    Returns:
        "0" for zero, otherwise the value scaled to its largest suffix with two
        decimal places, e.g. "1.50k" or "12.00M".
    """
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""
    magnitude = abs(value)
    power = max(0, int(math.floor(math.log10(magnitude) / 3.0)))
    if power >= len(SIZE_SUFFIXES):
        return f"{sign}{int(magnitude)}"

    scaled = magnitude / 10 ** (3 * power)
    return f"{sign}{scaled:3.2f}{SIZE_SUFFIXES[power]}".rstrip()
