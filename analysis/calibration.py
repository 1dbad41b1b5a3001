# analysis/calibration.py
"""Threshold calibration layered on a detector's public accessors.

The protocol: reset the detector, tick it every frame for a fixed duration
while polling `latest_rms_value()` and tracking the maximum, then write
``threshold = max * fraction``. If no RMS value was observed the threshold is
left as it was.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Protocol

logger = logging.getLogger(__name__)


class CalibratableDetector(Protocol):
    threshold: float

    def tick(self, delta: float) -> bool:
        ...

    def latest_rms_value(self) -> float:
        ...

    def reset(self) -> None:
        ...

    def reset_all(self) -> None:
        ...


@dataclass(frozen=True)
class CalibrationSettings:
    duration_sec: float = 3.0
    fraction: float = 0.6   # threshold = max_rms * fraction
    full_reset: bool = True  # reset_all() when True, reset() otherwise

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not self.duration_sec > 0:
            raise ValueError("duration_sec must be positive")
        if not 0.0 < self.fraction < 1.0:
            raise ValueError("fraction must be strictly between 0 and 1")


@dataclass(frozen=True)
class CalibrationResult:
    max_rms: float
    threshold: float
    applied: bool
    frames: int
    elapsed_sec: float


class CalibrationSession:
    """
    Frame-driven calibration run.

    Call `start()` once, then `step(delta)` every frame until it returns True.
    The detector keeps receiving samples from its normal ingestion path between
    frames; the session only ticks and observes it.
    """

    def __init__(self, detector: CalibratableDetector, settings: Optional[CalibrationSettings] = None) -> None:
        self._detector = detector
        self._settings = settings or CalibrationSettings()
        self._started = False
        self._result: Optional[CalibrationResult] = None
        self._max_rms = 0.0
        self._elapsed = 0.0
        self._frames = 0

    @property
    def settings(self) -> CalibrationSettings:
        return self._settings

    @property
    def active(self) -> bool:
        return self._started and self._result is None

    @property
    def done(self) -> bool:
        return self._result is not None

    @property
    def max_rms(self) -> float:
        return self._max_rms

    @property
    def elapsed_sec(self) -> float:
        return self._elapsed

    @property
    def progress(self) -> float:
        return min(1.0, self._elapsed / self._settings.duration_sec)

    @property
    def result(self) -> Optional[CalibrationResult]:
        return self._result

    def start(self) -> None:
        if self._started:
            raise RuntimeError("calibration session already started")
        if self._settings.full_reset:
            self._detector.reset_all()
        else:
            self._detector.reset()
        self._started = True
        logger.info("Calibration started (duration=%.2fs, fraction=%.2f)", self._settings.duration_sec, self._settings.fraction)

    def step(self, delta: float) -> bool:
        """Run one frame. Returns True once the calibration has completed."""
        if not self._started:
            raise RuntimeError("calibration session not started")
        if self._result is not None:
            raise RuntimeError("calibration session already finished")

        self._detector.tick(delta)
        value = self._detector.latest_rms_value()
        if value > self._max_rms:
            self._max_rms = value
        self._frames += 1
        self._elapsed += max(0.0, float(delta))

        if self._elapsed >= self._settings.duration_sec:
            self._finish()
            return True
        return False

    def _finish(self) -> None:
        applied = self._max_rms > 0
        if applied:
            self._detector.threshold = self._max_rms * self._settings.fraction
            logger.info("Calibration complete: max_rms=%.6g threshold=%.6g", self._max_rms, self._detector.threshold)
        else:
            logger.warning("Calibration observed no RMS signal; threshold left at %.6g", self._detector.threshold)
        self._result = CalibrationResult(
            max_rms=self._max_rms,
            threshold=self._detector.threshold,
            applied=applied,
            frames=self._frames,
            elapsed_sec=self._elapsed,
        )


def run_calibration(
    detector: CalibratableDetector,
    deltas: Iterable[float],
    settings: Optional[CalibrationSettings] = None,
    *,
    on_frame: Optional[Callable[[float], None]] = None,
) -> CalibrationResult:
    """
    Drive a calibration session from a sequence of frame deltas.

    `on_frame(delta)` runs before each frame's tick, which lets callers feed
    the samples that arrived during that frame. Raises RuntimeError if the
    deltas run out before the duration has elapsed.
    """
    session = CalibrationSession(detector, settings)
    session.start()
    for delta in deltas:
        if on_frame is not None:
            on_frame(delta)
        if session.step(delta):
            return session.result
    raise RuntimeError(
        f"calibration ended after {session.elapsed_sec:.3f}s of {session.settings.duration_sec:.3f}s"
    )


__all__ = ["CalibrationSettings", "CalibrationResult", "CalibrationSession", "run_calibration"]
