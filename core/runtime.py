from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from analysis.calibration import CalibrationResult, CalibrationSession, CalibrationSettings
from daq.decoder import PayloadError, decode_message
from shared.settings import EngineSettings, EngineSettingsStore

from .conditioning import SignalConditioner
from .detection.tap import TapDetector


@dataclass
class RuntimeStats:
    messages: int = 0
    dropped_messages: int = 0
    samples: int = 0
    ticks: int = 0
    triggered_ticks: int = 0
    taps: int = 0


class TapRuntime:
    """
    Owns one TapDetector and serialises every access to it.

    Sample messages typically arrive from a network delivery callback while
    ticks come from a periodic frame driver. Both paths take the same lock, so
    the detector's arrays are never mutated concurrently. Payloads are decoded
    and optionally conditioned before they reach the detector; malformed ones
    are dropped and counted.

    While a calibration session is active, ticks are routed through it and
    report False.
    """

    def __init__(
        self,
        detector: Optional[TapDetector] = None,
        *,
        settings_store: Optional[EngineSettingsStore] = None,
        conditioner: Optional[SignalConditioner] = None,
        channel: int = 0,
        on_tap: Optional[Callable[[float, float], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._channel = int(channel)
        self._conditioner = conditioner
        self._on_tap = on_tap
        self._stats = RuntimeStats()
        self._was_triggered = False
        self._calibration: Optional[CalibrationSession] = None
        self._last_calibration: Optional[CalibrationResult] = None

        initial = settings_store.get() if settings_store is not None else None
        self.detector = detector if detector is not None else TapDetector(initial)
        self._settings_store = settings_store
        self._unsubscribe: Optional[Callable[[], None]] = None
        if settings_store is not None:
            self._unsubscribe = settings_store.subscribe(self._apply_settings)

    @property
    def stats(self) -> RuntimeStats:
        with self._lock:
            return RuntimeStats(**vars(self._stats))

    @property
    def calibrating(self) -> bool:
        with self._lock:
            return self._calibration is not None and self._calibration.active

    @property
    def last_calibration(self) -> Optional[CalibrationResult]:
        with self._lock:
            return self._last_calibration

    def _apply_settings(self, settings: EngineSettings) -> None:
        with self._lock:
            self.detector.apply_settings(settings)
        self.logger.debug("Applied engine settings: %s", settings)

    # ---- Ingestion -----------------------------------------------------------

    def on_message(self, message: Any) -> int:
        """Decode one source message and feed it to the detector. Returns samples ingested."""
        try:
            batch = decode_message(message, self._channel)
        except PayloadError as exc:
            with self._lock:
                self._stats.dropped_messages += 1
            self.logger.warning("Dropped malformed sample message: %s", exc)
            return 0

        with self._lock:
            values = batch.values
            if self._conditioner is not None:
                values = self._conditioner.process(values, self.detector.settings.sample_rate)
            appended = self.detector.ingest(values, batch.start_time)
            self._stats.messages += 1
            self._stats.samples += appended
            return appended

    # ---- Frame driver --------------------------------------------------------

    def tick(self, delta: float) -> bool:
        with self._lock:
            self._stats.ticks += 1
            if self._calibration is not None and self._calibration.active:
                if self._calibration.step(delta):
                    self._last_calibration = self._calibration.result
                    self._calibration = None
                    self._push_threshold()
                return False

            triggered = self.detector.tick(delta)
            if triggered:
                self._stats.triggered_ticks += 1
                if not self._was_triggered:
                    self._stats.taps += 1
                    now = self.detector.now
                    rms = self.detector.latest_rms_value()
                    self.logger.info("Tap at t=%.3f (rms=%.4g, threshold=%.4g)", now, rms, self.detector.threshold)
                    if self._on_tap is not None:
                        self._on_tap(now, rms)
            self._was_triggered = triggered
            return triggered

    def latest_rms_value(self) -> float:
        with self._lock:
            return self.detector.latest_rms_value()

    # ---- Calibration ---------------------------------------------------------

    def begin_calibration(self, settings: Optional[CalibrationSettings] = None) -> CalibrationSession:
        with self._lock:
            session = CalibrationSession(self.detector, settings)
            session.start()
            self._calibration = session
            self._was_triggered = False
            if self._conditioner is not None:
                self._conditioner.reset()
            return session

    def _push_threshold(self) -> None:
        # Keep the shared settings in step with the calibrated threshold.
        if self._settings_store is None:
            return
        threshold = self.detector.threshold
        if self._settings_store.get().threshold != threshold:
            self._settings_store.update(threshold=threshold)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None


__all__ = ["RuntimeStats", "TapRuntime"]
