from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Sequence

import numpy as np
from scipy import signal


@dataclass(frozen=True)
class FilterSettings:
    """Pre-envelope filter chain for a single biosignal channel.

    Everything is disabled by default, in which case samples pass through
    untouched and the RMS envelope sees raw magnitudes.
    """

    ac_couple: bool = False
    ac_cutoff_hz: float = 1.0
    notch_enabled: bool = False
    notch_freq_hz: float = 50.0
    notch_q: float = 30.0
    highpass_hz: Optional[float] = None
    highpass_order: int = 2
    lowpass_hz: Optional[float] = None
    lowpass_order: int = 4

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    def any_enabled(self) -> bool:
        return (
            self.ac_couple
            or self.notch_enabled
            or self.lowpass_hz is not None
            or self.highpass_hz is not None
        )

    def validate(self, sample_rate: float) -> None:
        nyquist = sample_rate / 2.0
        if not np.isfinite(sample_rate) or sample_rate <= 0:
            raise ValueError("sample_rate must be positive and finite")
        if self.ac_couple and not (0 < self.ac_cutoff_hz < nyquist):
            raise ValueError("ac_cutoff_hz must be between 0 and Nyquist")
        if self.notch_enabled:
            if not (0 < self.notch_freq_hz < nyquist):
                raise ValueError("notch_freq_hz must be between 0 and Nyquist")
            if not (0 < self.notch_q < np.inf):
                raise ValueError("notch_q must be positive and finite")
        if self.highpass_hz is not None:
            if not (0 < self.highpass_hz < nyquist):
                raise ValueError("highpass_hz must be between 0 and Nyquist")
            if self.highpass_order <= 0:
                raise ValueError("highpass_order must be positive")
        if self.lowpass_hz is not None:
            if not (0 < self.lowpass_hz < nyquist):
                raise ValueError("lowpass_hz must be between 0 and Nyquist")
            if self.lowpass_order <= 0:
                raise ValueError("lowpass_order must be positive")


class _IIRFilter:
    """Stateful IIR section; state carries across batches."""

    def __init__(self, b: np.ndarray, a: np.ndarray) -> None:
        self._b = np.asarray(b, dtype=np.float64)
        self._a = np.asarray(a, dtype=np.float64)
        self._n_states = max(len(self._a), len(self._b)) - 1
        self._zi = np.zeros(self._n_states, dtype=np.float64)
        self._zi_template = signal.lfilter_zi(self._b, self._a) if self._n_states > 0 else self._zi.copy()

    def apply(self, samples: np.ndarray) -> np.ndarray:
        if self._n_states == 0:
            return signal.lfilter(self._b, self._a, samples)
        filtered, self._zi = signal.lfilter(self._b, self._a, samples, zi=self._zi)
        return filtered

    @property
    def dc_gain(self) -> float:
        return float(np.sum(self._b) / np.sum(self._a))

    def prime(self, initial_value: float) -> None:
        """Start from steady state at `initial_value` to avoid a start-up transient."""
        if self._n_states:
            self._zi = self._zi_template * float(initial_value)

    def reset(self) -> None:
        self._zi = np.zeros(self._n_states, dtype=np.float64)


def _build_chain(settings: FilterSettings, sample_rate: float) -> List[_IIRFilter]:
    nyquist = sample_rate / 2.0
    chain: List[_IIRFilter] = []
    if settings.ac_couple:
        b, a = signal.butter(1, settings.ac_cutoff_hz / nyquist, btype="highpass")
        chain.append(_IIRFilter(b, a))
    if settings.notch_enabled:
        b, a = signal.iirnotch(settings.notch_freq_hz / nyquist, settings.notch_q)
        chain.append(_IIRFilter(b, a))
    if settings.highpass_hz is not None:
        b, a = signal.butter(settings.highpass_order, settings.highpass_hz / nyquist, btype="highpass")
        chain.append(_IIRFilter(b, a))
    if settings.lowpass_hz is not None:
        b, a = signal.butter(settings.lowpass_order, settings.lowpass_hz / nyquist, btype="lowpass")
        chain.append(_IIRFilter(b, a))
    return chain


class SignalConditioner:
    """Applies the configured IIR chain while preserving filter state across batches."""

    def __init__(self, settings: Optional[FilterSettings] = None) -> None:
        self._settings = settings or FilterSettings()
        self._sample_rate: Optional[float] = None
        self._chain: List[_IIRFilter] = []

    @property
    def settings(self) -> FilterSettings:
        return self._settings

    def update_settings(self, settings: FilterSettings) -> None:
        self._settings = settings
        # Force rebuild on next batch
        self._sample_rate = None
        self._chain = []

    def describe(self) -> Dict[str, object]:
        return self._settings.to_dict()

    def _ensure_chain(self, sample_rate: float) -> bool:
        if self._chain and self._sample_rate == sample_rate:
            return False
        self._settings.validate(sample_rate)
        self._sample_rate = sample_rate
        self._chain = _build_chain(self._settings, sample_rate)
        return True

    def process(self, values: Sequence[float] | np.ndarray, sample_rate: float) -> np.ndarray:
        samples = np.array(values, dtype=np.float64, copy=True).reshape(-1)
        if not self._settings.any_enabled() or samples.size == 0:
            return samples

        rebuilt = self._ensure_chain(float(sample_rate))
        if rebuilt:
            level = float(samples[0])
            for filt in self._chain:
                filt.prime(level)
                level *= filt.dc_gain

        for filt in self._chain:
            samples = filt.apply(samples)
        return np.asarray(samples, dtype=np.float64)

    def reset(self) -> None:
        for filt in self._chain:
            filt.reset()
        self._sample_rate = None
        self._chain = []


__all__ = ["FilterSettings", "SignalConditioner"]
