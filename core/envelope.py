from __future__ import annotations

import math
from collections import deque
from typing import Deque, List, Optional, Tuple

from shared.models import RmsPoint
from shared.sample_store import SampleStore


class WindowedRms:
    """
    Hop-aligned RMS envelope materialised lazily over a SampleStore.

    A cursor marks the raw index where the next window starts. Each call to
    `advance` emits one point per hop for every window that now fits inside the
    retained samples; points already emitted are never revisited, so the
    envelope grows in O(1) amortized time per ingested sample.
    """

    def __init__(self) -> None:
        self._points: Deque[RmsPoint] = deque()
        self._cursor = 0

    @property
    def cursor(self) -> int:
        """Raw index (inclusive) at which the next window would start."""
        return self._cursor

    @property
    def points(self) -> Tuple[RmsPoint, ...]:
        return tuple(self._points)

    def __len__(self) -> int:
        return len(self._points)

    def advance(self, store: SampleStore, window_size: int, hop_size: int) -> int:
        """Emit every window that fits the retained data. Returns the number of new points."""
        n = len(store)
        if window_size <= 0 or n < window_size:
            return 0
        if hop_size <= 0:
            raise ValueError("hop_size must be positive")
        start_time = store.start_time
        if start_time is None:
            return 0

        last_start = n - window_size
        # Parameter changes between calls can leave the cursor stale.
        self._cursor = min(max(self._cursor, 0), max(0, last_start))

        prefix = store.sq_prefix
        rate = store.sample_rate
        half = window_size / 2.0
        emitted = 0
        cursor = self._cursor
        while cursor <= last_start:
            sum_sq = prefix[cursor + window_size] - prefix[cursor]
            rms = math.sqrt(sum_sq / window_size)
            self._points.append(RmsPoint(t=start_time + (cursor + half) / rate, v=rms))
            cursor += hop_size
            emitted += 1
        self._cursor = cursor
        return emitted

    def rebase(self, dropped: int) -> None:
        """Shift the cursor after `dropped` samples left the front of the store."""
        self._cursor = max(0, self._cursor - int(dropped))

    def discard_before(self, cutoff: float) -> int:
        """Drop points whose centre lies strictly before `cutoff`."""
        removed = 0
        while self._points and self._points[0].t < cutoff:
            self._points.popleft()
            removed += 1
        return removed

    def reset(self) -> None:
        self._points.clear()
        self._cursor = 0

    def latest_at(self, now: float) -> Optional[RmsPoint]:
        """Newest point whose centre is not in the future relative to `now`."""
        for point in reversed(self._points):
            if point.t <= now:
                return point
        return None

    def recent_at(self, now: float, count: int) -> List[RmsPoint]:
        """Up to `count` newest points with ``t <= now``, newest first."""
        selected: List[RmsPoint] = []
        if count <= 0:
            return selected
        for point in reversed(self._points):
            if point.t > now:
                continue
            selected.append(point)
            if len(selected) == count:
                break
        return selected


__all__ = ["WindowedRms"]
