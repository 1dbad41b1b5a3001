from __future__ import annotations

import logging
import math
import numbers
import threading
from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

TRIGGER_MODES = ("level", "edge")


@dataclass(frozen=True)
class EngineSettings:
    """Tunable parameters of the RMS envelope and tap detector.

    Sizes are in samples, durations in seconds.
    """

    sample_rate: float = 256.0
    window_size: int = 32
    hop_size: int = 8
    threshold: float = 1.0
    threshold_count: int = 3
    retention_seconds: float = 5.0
    trigger_mode: str = "level"

    def validate(self) -> None:
        if not math.isfinite(self.sample_rate) or self.sample_rate <= 0:
            raise ValueError("sample_rate must be positive and finite")
        for name in ("window_size", "hop_size", "threshold_count"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        if not math.isfinite(self.retention_seconds) or self.retention_seconds < 0:
            raise ValueError("retention_seconds must be non-negative and finite")
        if math.isnan(self.threshold):
            raise ValueError("threshold must not be NaN")
        if self.trigger_mode not in TRIGGER_MODES:
            raise ValueError(f"trigger_mode must be one of {TRIGGER_MODES}, got {self.trigger_mode!r}")

    @property
    def window_duration(self) -> float:
        return self.window_size / self.sample_rate

    @property
    def hop_duration(self) -> float:
        return self.hop_size / self.sample_rate

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "EngineSettings":
        """
        Build settings from loosely typed values (config files, environment).

        Unparsable entries fall back to their defaults; unknown keys are
        ignored. The result is validated before it is returned.
        """
        kwargs: Dict[str, Any] = {}
        for entry in fields(cls):
            if entry.name not in values:
                continue
            raw = values[entry.name]
            default = entry.default
            try:
                if isinstance(default, bool):
                    kwargs[entry.name] = bool(int(raw)) if isinstance(raw, str) else bool(raw)
                elif isinstance(default, int):
                    kwargs[entry.name] = int(raw)
                elif isinstance(default, float):
                    kwargs[entry.name] = float(raw)
                else:
                    kwargs[entry.name] = str(raw)
            except (TypeError, ValueError):
                logger.warning("Ignoring unparsable setting %s=%r; using %r", entry.name, raw, default)
        settings = cls(**kwargs)
        settings.validate()
        return settings


class EngineSettingsStore:
    """
    Thread-safe settings container that lets producers and consumers observe
    changes (e.g., a calibration layer rewriting the threshold while the
    runtime applies it to the detector).
    """

    def __init__(self, initial: Optional[EngineSettings] = None) -> None:
        settings = initial or EngineSettings()
        settings.validate()
        self._settings = settings
        self._lock = threading.Lock()
        self._subscribers: Dict[int, Callable[[EngineSettings], None]] = {}
        self._next_token = 0

    def get(self) -> EngineSettings:
        with self._lock:
            return self._settings

    def update(self, **kwargs) -> EngineSettings:
        with self._lock:
            new_settings = replace(self._settings, **kwargs)
            new_settings.validate()
            self._settings = new_settings
            callbacks = list(self._subscribers.values())
        for callback in callbacks:
            try:
                callback(new_settings)
            except Exception as exc:
                logger.debug("Engine settings subscriber callback failed: %s", exc)
                continue
        return new_settings

    def subscribe(self, callback: Callable[[EngineSettings], None], *, replay: bool = True) -> Callable[[], None]:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback
            snapshot = self._settings
        if replay:
            callback(snapshot)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return unsubscribe


__all__ = ["EngineSettings", "EngineSettingsStore", "TRIGGER_MODES"]
