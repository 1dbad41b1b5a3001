from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np


class SampleStore:
    """
    Raw sample history plus a cumulative sum-of-squares prefix array.

    Samples are held in a growable preallocated NumPy buffer. ``sq_prefix`` has
    exactly one more entry than the retained samples, with ``sq_prefix[0] == 0``
    and ``sq_prefix[i + 1] == sq_prefix[i] + samples[i] ** 2``, which makes the
    energy of any window an O(1) difference of two prefix entries.

    The store is not thread-safe; the owning engine serialises access.
    """

    def __init__(self, sample_rate: float, initial_capacity: int = 1024) -> None:
        if initial_capacity <= 0:
            raise ValueError("initial_capacity must be positive")
        self._sample_rate = self._check_rate(sample_rate)
        self._capacity = int(initial_capacity)
        self._data = np.empty(self._capacity, dtype=np.float64)
        self._prefix = np.zeros(self._capacity + 1, dtype=np.float64)
        self._length = 0
        self._start_time: Optional[float] = None

    @staticmethod
    def _check_rate(sample_rate: float) -> float:
        rate = float(sample_rate)
        if not math.isfinite(rate) or rate <= 0:
            raise ValueError("sample_rate must be positive and finite")
        return rate

    # ---- Properties ----------------------------------------------------------

    @property
    def sample_rate(self) -> float:
        return self._sample_rate

    @sample_rate.setter
    def sample_rate(self, value: float) -> None:
        self._sample_rate = self._check_rate(value)

    @property
    def start_time(self) -> Optional[float]:
        """Absolute time of ``samples[0]``; None until the store is anchored."""
        return self._start_time

    @property
    def anchored(self) -> bool:
        return self._start_time is not None

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def samples(self) -> np.ndarray:
        """Read-only view of the retained samples.

        The view aliases the internal buffer and is only valid until the next
        append, discard or clear; copy it to keep the contents.
        """
        view = self._data[: self._length]
        view.flags.writeable = False
        return view

    @property
    def sq_prefix(self) -> np.ndarray:
        """Read-only view of the prefix array; valid until the next mutation."""
        view = self._prefix[: self._length + 1]
        view.flags.writeable = False
        return view

    def __len__(self) -> int:
        return self._length

    # ---- Mutation ------------------------------------------------------------

    def anchor(self, start_time: float) -> None:
        """Fix the absolute time of the first sample if not already set."""
        if self._start_time is None:
            self._start_time = float(start_time)

    def append(self, values: Sequence[float] | np.ndarray) -> int:
        """Append samples and extend the prefix array. Returns the number appended."""
        arr = np.asarray(values, dtype=np.float64).reshape(-1)
        count = int(arr.shape[0])
        if count == 0:
            return 0
        self._reserve(self._length + count)

        start = self._length
        end = start + count
        self._data[start:end] = arr
        # Continue the running sum sequentially from the last prefix entry so
        # the incremental result matches a cumulative sum over the whole slice.
        seeded = np.empty(count + 1, dtype=np.float64)
        seeded[0] = self._prefix[start]
        np.square(arr, out=seeded[1:])
        self._prefix[start + 1 : end + 1] = np.cumsum(seeded)[1:]
        self._length = end
        return count

    def discard_front(self, count: int) -> int:
        """
        Drop the oldest `count` samples and rebase the store onto the remainder.

        The prefix array is rebuilt from scratch over the retained slice and
        ``start_time`` advances by the dropped duration. Returns the number of
        samples actually dropped.
        """
        count = max(0, min(int(count), self._length))
        if count == 0:
            return 0

        remaining = self._length - count
        if remaining:
            self._data[:remaining] = self._data[count : self._length]
        self._length = remaining
        self._rebuild_prefix()
        if self._start_time is not None:
            self._start_time += count / self._sample_rate
        return count

    def clear(self) -> None:
        """Forget every sample and the time anchor."""
        self._length = 0
        self._prefix[0] = 0.0
        self._start_time = None

    def _rebuild_prefix(self) -> None:
        self._prefix[0] = 0.0
        if self._length:
            np.cumsum(np.square(self._data[: self._length]), out=self._prefix[1 : self._length + 1])

    def _reserve(self, needed: int) -> None:
        if needed <= self._capacity:
            return
        capacity = self._capacity
        while capacity < needed:
            capacity *= 2
        data = np.empty(capacity, dtype=np.float64)
        data[: self._length] = self._data[: self._length]
        prefix = np.zeros(capacity + 1, dtype=np.float64)
        prefix[: self._length + 1] = self._prefix[: self._length + 1]
        self._data = data
        self._prefix = prefix
        self._capacity = capacity

    # ---- Queries -------------------------------------------------------------

    def window_sum_sq(self, start: int, length: int) -> float:
        """Sum of squares over ``samples[start:start + length]``."""
        end = start + length
        if not 0 <= start <= end <= self._length:
            raise IndexError(f"window [{start}, {end}) outside retained range [0, {self._length})")
        return float(self._prefix[end] - self._prefix[start])

    def time_of(self, index: float) -> float:
        """Absolute time of (possibly fractional) sample `index`."""
        if self._start_time is None:
            raise RuntimeError("store has not been anchored to a start time")
        return self._start_time + index / self._sample_rate


__all__ = ["SampleStore"]
