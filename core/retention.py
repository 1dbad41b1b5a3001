from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from shared.sample_store import SampleStore

from .envelope import WindowedRms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PruneStats:
    """What a single prune pass removed."""

    dropped_samples: int = 0
    dropped_points: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.dropped_samples or self.dropped_points)


class RetentionPruner:
    """
    Keeps raw history and the RMS envelope bounded to a rolling time horizon.

    One full window of samples ahead of the cutoff is always kept so that any
    window still computable from retained data keeps its full context.
    Retained RMS points are never recomputed; pruning only discards and rebases.
    """

    def __init__(self) -> None:
        self.dropped_samples = 0
        self.dropped_points = 0
        self.passes = 0

    def prune(
        self,
        now: float,
        store: SampleStore,
        envelope: WindowedRms,
        *,
        retention_seconds: float,
        window_size: int,
    ) -> PruneStats:
        start_time = store.start_time
        if start_time is None:
            return PruneStats()

        oldest_keep_time = now - retention_seconds
        keep_idx = math.floor((oldest_keep_time - start_time) * store.sample_rate) - window_size
        keep_idx = min(max(keep_idx, 0), len(store))
        if keep_idx == 0:
            return PruneStats()

        dropped = store.discard_front(keep_idx)
        envelope.rebase(dropped)
        removed = envelope.discard_before(oldest_keep_time)

        self.passes += 1
        self.dropped_samples += dropped
        self.dropped_points += removed
        logger.debug(
            "Pruned %d samples and %d RMS points before t=%.6f (retained=%d, start=%.6f)",
            dropped,
            removed,
            oldest_keep_time,
            len(store),
            store.start_time,
        )
        return PruneStats(dropped_samples=dropped, dropped_points=removed)


__all__ = ["PruneStats", "RetentionPruner"]
