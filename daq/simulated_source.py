# daq/simulated_source.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .base_source import BaseSource


@dataclass(frozen=True)
class Burst:
    """A scheduled muscle contraction."""

    start_sec: float
    duration_sec: float
    amplitude: float


class SimulatedEmgSource(BaseSource):
    """
    Simulates a single surface-EMG channel.

    The resting signal is Gaussian noise at `noise_level`. Each burst adds
    band-limited noise shaped by a Hann envelope so contractions ramp in and
    out instead of stepping. Optional mains hum rides on top. All randomness
    comes from one seeded generator, so the same seed gives the same stream.
    """

    @classmethod
    def device_class_name(cls) -> str:
        return "Simulated"

    def __init__(
        self,
        sample_rate: float = 256.0,
        chunk_size: int = 16,
        *,
        start_time: float = 0.0,
        noise_level: float = 0.05,
        bursts: Sequence[Burst] = (),
        line_hum_amp: float = 0.0,
        line_hum_freq: float = 50.0,
        seed: Optional[int] = 0,
    ) -> None:
        super().__init__(sample_rate, chunk_size, start_time=start_time)
        if noise_level < 0:
            raise ValueError("noise_level must be non-negative")
        self._noise_level = float(noise_level)
        self._bursts = tuple(sorted(bursts, key=lambda b: b.start_sec))
        self._line_hum_amp = float(line_hum_amp)
        self._line_hum_freq = float(line_hum_freq)
        self._seed = seed
        self._rng = np.random.default_rng(seed)

    @property
    def bursts(self) -> Sequence[Burst]:
        return self._bursts

    def add_burst(self, start_sec: float, duration_sec: float, amplitude: float) -> None:
        burst = Burst(start_sec=start_sec, duration_sec=duration_sec, amplitude=amplitude)
        self._bursts = tuple(sorted(self._bursts + (burst,), key=lambda b: b.start_sec))

    def reset(self) -> None:
        super().reset()
        self._rng = np.random.default_rng(self._seed)

    def _generate(self, first_sample: int, count: int) -> np.ndarray:
        rate = self.sample_rate
        t = (first_sample + np.arange(count, dtype=np.float64)) / rate
        out = self._rng.normal(0.0, self._noise_level, size=count) if self._noise_level > 0 else np.zeros(count)

        for burst in self._bursts:
            if burst.duration_sec <= 0:
                continue
            phase = (t - burst.start_sec) / burst.duration_sec
            active = (phase >= 0.0) & (phase < 1.0)
            if not np.any(active):
                continue
            envelope = np.sin(np.pi * phase[active]) ** 2
            # Unit-RMS carrier so `amplitude` reads as the burst's peak RMS.
            carrier = self._rng.normal(0.0, 1.0, size=int(np.count_nonzero(active)))
            out[active] += burst.amplitude * envelope * carrier

        if self._line_hum_amp:
            out += self._line_hum_amp * np.sin(2.0 * np.pi * self._line_hum_freq * t)
        return out
