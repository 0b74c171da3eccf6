"""
Scan assembler

Groups the measurement stream into full rotations. A rotation ends right
before the next measurement (other than the first buffered one) that has
its new scan flag set.

Measurements can be consumed in one of three ways, and only one of them may
be used until the assembler is cleared, because they share the buffer:

    WHOLE_SCAN      - next_scan(), Scan objects with timing
    UNTIL_BOUNDARY  - next_chunk(), plain measurement lists per rotation
    RAW             - take_all(), everything buffered, no boundary handling
"""

import time
from enum import Enum
from typing import Callable, Iterable, List, Optional

from .data_types import Measurement, Scan
from .errors import InvalidStateError


class Discipline(Enum):
    WHOLE_SCAN = "whole_scan"
    UNTIL_BOUNDARY = "until_boundary"
    RAW = "raw"


class ScanAssembler:
    """Buffers measurements and cuts them into rotations."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._buffer: List[Measurement] = []
        self._index = 0
        self._last_boundary: Optional[float] = None
        self._discipline: Optional[Discipline] = None

    @property
    def discipline(self) -> Optional[Discipline]:
        return self._discipline

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def claim(self, discipline: Discipline) -> None:
        """
        Bind the assembler to one consumption discipline.

        Raises:
            InvalidStateError: If another discipline is already in use
        """
        if self._discipline is None:
            self._discipline = discipline
        elif self._discipline != discipline:
            raise InvalidStateError(
                f"Measurements are consumed as {self._discipline.value}, "
                f"can't switch to {discipline.value} before clearing"
            )

    def add(self, measurements: Iterable[Measurement]) -> None:
        self._buffer.extend(measurements)

    def _find_boundary(self) -> Optional[int]:
        for i in range(max(self._index, 1), len(self._buffer)):
            if self._buffer[i].is_new_scan:
                return i
        self._index = len(self._buffer)
        return None

    def _cut(self, boundary: int) -> List[Measurement]:
        chunk = self._buffer[:boundary]
        del self._buffer[:boundary]
        self._index = 0
        return chunk

    def next_scan(self) -> Optional[Scan]:
        """
        Return the next complete rotation, or None if it hasn't ended yet.

        Duration is measured between boundaries, the first scan reports 0.
        """
        self.claim(Discipline.WHOLE_SCAN)

        boundary = self._find_boundary()
        if boundary is None:
            return None

        now = self._clock()
        duration = 0
        if self._last_boundary is not None:
            duration = int(round((now - self._last_boundary) * 1000.0))
        self._last_boundary = now

        return Scan(
            measurements=tuple(self._cut(boundary)),
            duration=duration,
            rate=1000.0 / duration if duration > 0 else 0.0,
        )

    def next_chunk(self) -> Optional[List[Measurement]]:
        """Return measurements up to the next boundary, or None if it hasn't been seen."""
        self.claim(Discipline.UNTIL_BOUNDARY)

        boundary = self._find_boundary()
        if boundary is None:
            return None
        return self._cut(boundary)

    def take_all(self) -> List[Measurement]:
        """Return and drop everything buffered."""
        self.claim(Discipline.RAW)

        return self._cut(len(self._buffer))

    def clear(self) -> None:
        """Drop buffered measurements, timing and the discipline binding."""
        self._buffer.clear()
        self._index = 0
        self._last_boundary = None
        self._discipline = None
