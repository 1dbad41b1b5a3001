from __future__ import annotations

"""
Base class for synchronous sample sources.

Goals:
- Simple, stable contract for the runtime: messages in the decoder's format.
- Consistent timebase: message timestamps are derived from the sample index,
  so consecutive messages are contiguous in time.
- Deterministic output for tests and offline replays.

Subclasses implement `_generate()` to produce the next block of samples.
"""

import math
from abc import ABC, abstractmethod
from typing import Iterator, Optional

import numpy as np

from .decoder import encode_message


class BaseSource(ABC):
    """
    Abstract base for all sample sources.

    Typical flow:
        source = Driver(sample_rate=256.0, chunk_size=16)
        for message in source.messages(duration_sec=2.0):
            runtime.on_message(message)
    """

    @classmethod
    @abstractmethod
    def device_class_name(cls) -> str:
        """Return the human-friendly category name for this source type."""
        raise NotImplementedError

    def __init__(self, sample_rate: float, chunk_size: int, *, start_time: float = 0.0) -> None:
        if not math.isfinite(sample_rate) or sample_rate <= 0:
            raise ValueError("sample_rate must be positive and finite")
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._sample_rate = float(sample_rate)
        self._chunk_size = int(chunk_size)
        self._start_time = float(start_time)
        self._next_sample = 0

    @property
    def sample_rate(self) -> float:
        return self._sample_rate

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def samples_emitted(self) -> int:
        return self._next_sample

    @property
    def chunk_duration(self) -> float:
        return self._chunk_size / self._sample_rate

    def read_message(self) -> Optional[dict]:
        """Return the next message, or None once the source is exhausted."""
        block = self._generate(self._next_sample, self._chunk_size)
        if block is None or block.size == 0:
            return None
        timestamp = self._start_time + self._next_sample / self._sample_rate
        self._next_sample += int(block.shape[-1])
        return encode_message(block, timestamp)

    def messages(self, duration_sec: Optional[float] = None) -> Iterator[dict]:
        """Yield messages until `duration_sec` of samples were produced or the source ends."""
        limit = None if duration_sec is None else self._next_sample + int(round(duration_sec * self._sample_rate))
        while limit is None or self._next_sample < limit:
            message = self.read_message()
            if message is None:
                return
            yield message

    def reset(self) -> None:
        self._next_sample = 0

    @abstractmethod
    def _generate(self, first_sample: int, count: int) -> Optional[np.ndarray]:
        """Return up to `count` samples starting at absolute index `first_sample`.

        The result is a (channels, samples) or (samples,) float array; None or an
        empty array ends the stream.
        """
        raise NotImplementedError
