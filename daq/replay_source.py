# daq/replay_source.py
"""Replay a recorded single-channel array as streaming messages."""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .base_source import BaseSource


class ArrayReplaySource(BaseSource):
    """
    Streams a pre-recorded 1D signal in fixed-size chunks.

    The last chunk may be short; after it the source is exhausted and
    `read_message` returns None until `reset()` rewinds playback.
    """

    @classmethod
    def device_class_name(cls) -> str:
        return "Replay"

    def __init__(
        self,
        samples: Sequence[float] | np.ndarray,
        sample_rate: float,
        chunk_size: int = 16,
        *,
        start_time: float = 0.0,
    ) -> None:
        super().__init__(sample_rate, chunk_size, start_time=start_time)
        arr = np.asarray(samples, dtype=np.float64)
        if arr.ndim != 1:
            raise ValueError("samples must be a 1D array")
        self._samples = arr.copy()
        self._samples.setflags(write=False)

    @property
    def n_samples(self) -> int:
        return int(self._samples.shape[0])

    @property
    def exhausted(self) -> bool:
        return self.samples_emitted >= self.n_samples

    def _generate(self, first_sample: int, count: int) -> Optional[np.ndarray]:
        if first_sample >= self.n_samples:
            return None
        return self._samples[first_sample : first_sample + count]
