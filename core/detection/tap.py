from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Mapping, Optional, Sequence, Tuple

import numpy as np

from shared.models import RmsPoint, SampleBatch, TapDecision
from shared.sample_store import SampleStore
from shared.settings import EngineSettings

from ..envelope import WindowedRms
from ..retention import RetentionPruner
from .base import DetectorParameter, register_detector

logger = logging.getLogger(__name__)


@register_detector
class TapDetector:
    """
    Sustained-threshold tap detector over a windowed RMS envelope.

    Sample batches are appended to a SampleStore; every ingestion and every
    tick materialises any newly complete RMS windows and prunes history older
    than the retention horizon. A tick reports True while the most recent
    ``threshold_count`` RMS points at or before "now" all reach the threshold.

    The detector is single-threaded: callers that ingest and tick from
    different threads must serialise access (see ``core.runtime.TapRuntime``).
    """

    name = "rms_tap"
    display_name = "RMS Tap (Sustained Threshold)"

    def __init__(self, settings: Optional[EngineSettings] = None) -> None:
        settings = settings or EngineSettings()
        settings.validate()
        self._settings = settings
        self._store = SampleStore(settings.sample_rate)
        self._envelope = WindowedRms()
        self._pruner = RetentionPruner()
        self._now: Optional[float] = None
        self._last_level = False

    # ---- Parameters ----------------------------------------------------------

    @property
    def parameters(self) -> Mapping[str, DetectorParameter]:
        return {
            "window_size": DetectorParameter(
                name="window_size", default=32, min=1, help="RMS window length (samples)"
            ),
            "hop_size": DetectorParameter(
                name="hop_size", default=8, min=1, help="Stride between RMS windows (samples)"
            ),
            "threshold": DetectorParameter(
                name="threshold", default=1.0, min=0.0, help="RMS level a point must reach to qualify"
            ),
            "threshold_count": DetectorParameter(
                name="threshold_count",
                default=3,
                min=1,
                help="Number of most recent RMS points that must all qualify",
            ),
            "retention_seconds": DetectorParameter(
                name="retention_seconds", default=5.0, min=0.0, help="History kept behind the clock (s)"
            ),
            "sample_rate": DetectorParameter(
                name="sample_rate", default=256.0, min=1e-9, help="Samples per second"
            ),
            "trigger_mode": DetectorParameter(
                name="trigger_mode", default="level", help="'level' reports every tick, 'edge' only onsets"
            ),
        }

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    def configure(self, **params) -> None:
        """Replace parameters mid-stream. Invalid combinations raise ValueError."""
        self.apply_settings(replace(self._settings, **params))

    def apply_settings(self, settings: EngineSettings) -> None:
        settings.validate()
        if settings.trigger_mode != self._settings.trigger_mode:
            self._last_level = False
        self._settings = settings
        self._store.sample_rate = settings.sample_rate

    @property
    def threshold(self) -> float:
        return self._settings.threshold

    @threshold.setter
    def threshold(self, value: float) -> None:
        self.configure(threshold=float(value))

    # ---- State accessors -----------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._now is not None

    @property
    def now(self) -> Optional[float]:
        return self._now

    @property
    def raw_start_time(self) -> Optional[float]:
        return self._store.start_time

    @property
    def raw_data(self) -> np.ndarray:
        """Snapshot of the retained samples."""
        return self._store.samples.copy()

    @property
    def sq_prefix(self) -> np.ndarray:
        """Snapshot of the sum-of-squares prefix over the retained samples."""
        return self._store.sq_prefix.copy()

    @property
    def rms_points(self) -> Tuple[RmsPoint, ...]:
        return self._envelope.points

    @property
    def next_rms_start_idx(self) -> int:
        return self._envelope.cursor

    @property
    def pruner(self) -> RetentionPruner:
        return self._pruner

    # ---- Streaming -----------------------------------------------------------

    def ingest(self, values: Sequence[float] | np.ndarray | SampleBatch, batch_start_time: Optional[float] = None) -> int:
        """
        Append one batch of samples whose first sample was taken at
        `batch_start_time`. Returns the number of samples appended.

        Only the first batch's timestamp is used to anchor the stream; later
        sample times are derived from their index and the sample rate.

        Malformed batches (no values, non-numeric or non-finite samples, more
        than one dimension, missing or non-finite start time) are ignored and
        leave the detector untouched.
        """
        if isinstance(values, SampleBatch):
            if batch_start_time is None:
                batch_start_time = values.start_time
            values = values.values
        if values is None or batch_start_time is None:
            return 0
        try:
            arr = np.asarray(values, dtype=np.float64)
            start = float(batch_start_time)
        except (TypeError, ValueError, OverflowError):
            logger.debug("Ignoring malformed batch starting at %r", batch_start_time)
            return 0
        if arr.ndim != 1 or arr.size == 0:
            return 0
        if not math.isfinite(start) or not np.all(np.isfinite(arr)):
            logger.debug("Ignoring batch with non-finite start time or samples")
            return 0
        batch_start_time = start

        if self._now is None:
            self._now = float(batch_start_time)
            self._store.anchor(batch_start_time)
            logger.debug("Detector clock initialised at t=%.6f", self._now)
        else:
            self._check_drift(float(batch_start_time))

        appended = self._store.append(arr)
        self._update()
        return appended

    def tick(self, delta: float) -> bool:
        """Advance the clock by `delta` seconds and report the trigger decision."""
        if self._now is None:
            return False
        delta = float(delta)
        # Negative and non-finite deltas leave the clock where it is.
        if math.isfinite(delta) and delta > 0:
            self._now += delta
        self._update()

        level = self.evaluate().triggered
        if self._settings.trigger_mode == "edge":
            fired = level and not self._last_level
            self._last_level = level
            return fired
        return level

    def evaluate(self) -> TapDecision:
        """Apply the sustained-threshold rule at the current clock without advancing it."""
        if self._now is None:
            return TapDecision(triggered=False, qualifying=0, considered=0, now=float("nan"))
        count = self._settings.threshold_count
        recent = self._envelope.recent_at(self._now, count)
        threshold = self._settings.threshold
        qualifying = sum(1 for point in recent if point.v >= threshold)
        return TapDecision(
            triggered=qualifying == count,
            qualifying=qualifying,
            considered=len(recent),
            now=self._now,
        )

    def latest_rms_value(self) -> float:
        if self._now is None:
            return 0.0
        point = self._envelope.latest_at(self._now)
        return point.v if point is not None else 0.0

    def _update(self) -> None:
        settings = self._settings
        self._envelope.advance(self._store, settings.window_size, settings.hop_size)
        self._pruner.prune(
            self._now,
            self._store,
            self._envelope,
            retention_seconds=settings.retention_seconds,
            window_size=settings.window_size,
        )

    def _check_drift(self, batch_start_time: float) -> None:
        start = self._store.start_time
        if start is None:
            return
        expected = self._store.time_of(len(self._store))
        if abs(batch_start_time - expected) > self._settings.hop_duration:
            logger.debug(
                "Batch start %.6f drifts %.6f s from index-derived time %.6f",
                batch_start_time,
                batch_start_time - expected,
                expected,
            )

    # ---- Resets --------------------------------------------------------------

    def reset(self) -> None:
        """Clear RMS progress; raw history, prefix sums and the clock are kept."""
        self._envelope.reset()
        self._last_level = False

    def reset_all(self) -> None:
        """Clear all history and re-arm clock initialisation. The threshold is kept."""
        self._store.clear()
        self._envelope.reset()
        self._now = None
        self._last_level = False


__all__ = ["TapDetector"]
