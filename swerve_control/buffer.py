"""Bounded, timestamp-ordered history with interpolated lookup.

Stores samples keyed by timestamp over a fixed history window. Lookups at
arbitrary timestamps interpolate between the two bracketing samples, and
clamp to the oldest/newest sample outside the stored range.
"""

import bisect
from typing import Callable, Generic, List, Optional, Tuple, TypeVar

T = TypeVar("T")


def _interpolate_with_method(start, end, t: float):
    return start.interpolate(end, t)


class TimeInterpolatableBuffer(Generic[T]):
    """Sorted buffer of (timestamp, sample) pairs covering `history_seconds`.

    Attributes:
        history_seconds: Samples older than the newest insert minus this
            window are discarded.
    """

    def __init__(
        self,
        history_seconds: float,
        interpolate: Optional[Callable[[T, T, float], T]] = None,
    ):
        """Initialize an empty buffer.

        Args:
            history_seconds: Length of the retained window (seconds).
            interpolate: Function (start, end, t) -> sample. Default: calls
                `start.interpolate(end, t)`.
        """
        self.history_seconds = history_seconds
        self._interpolate = interpolate if interpolate is not None else _interpolate_with_method
        self._timestamps: List[float] = []
        self._samples: List[T] = []

    def add_sample(self, timestamp: float, sample: T) -> None:
        """Insert a sample, replacing any sample with the same timestamp."""
        self._clean_up(timestamp)

        index = bisect.bisect_left(self._timestamps, timestamp)
        if index < len(self._timestamps) and self._timestamps[index] == timestamp:
            self._samples[index] = sample
        else:
            self._timestamps.insert(index, timestamp)
            self._samples.insert(index, sample)

    def _clean_up(self, time: float) -> None:
        while self._timestamps and time - self._timestamps[0] >= self.history_seconds:
            del self._timestamps[0]
            del self._samples[0]

    def clear(self) -> None:
        self._timestamps.clear()
        self._samples.clear()

    def get_sample(self, timestamp: float) -> Optional[T]:
        """Sample the buffer at `timestamp`.

        Args:
            timestamp: Time to look up (seconds).

        Returns:
            The stored sample on an exact match, the interpolation between the
            bracketing samples otherwise, the oldest/newest sample outside the
            stored range, or None if the buffer is empty.
        """
        if not self._timestamps:
            return None

        index = bisect.bisect_left(self._timestamps, timestamp)
        if index < len(self._timestamps) and self._timestamps[index] == timestamp:
            return self._samples[index]

        if index == 0:
            return self._samples[0]
        if index == len(self._timestamps):
            return self._samples[-1]

        t0, t1 = self._timestamps[index - 1], self._timestamps[index]
        return self._interpolate(
            self._samples[index - 1], self._samples[index], (timestamp - t0) / (t1 - t0)
        )

    @property
    def oldest_timestamp(self) -> Optional[float]:
        return self._timestamps[0] if self._timestamps else None

    @property
    def newest_timestamp(self) -> Optional[float]:
        return self._timestamps[-1] if self._timestamps else None

    def items(self) -> List[Tuple[float, T]]:
        return list(zip(self._timestamps, self._samples))

    def __len__(self) -> int:
        return len(self._timestamps)
