from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np


def _freeze_array(array: np.ndarray, *, ndim: int | None = None) -> np.ndarray:
    """Return a read-only, C-contiguous float64 copy of `array`, validating dimensions."""
    arr = np.array(array, dtype=np.float64, copy=True, order="C")
    if ndim is not None and arr.ndim != ndim:
        raise ValueError(f"array must be {ndim}D, got {arr.ndim}D")
    arr.setflags(write=False)
    return arr


# ----------------------------
# Streaming data models
# ----------------------------

@dataclass(frozen=True)
class SampleBatch:
    """One channel's samples from a single delivered message.

    This is the decoded, homogeneous boundary type: by the time a batch exists
    every value is a float and the start time is a finite absolute timestamp.
    """

    values: np.ndarray = field(repr=False)
    start_time: float
    channel: Optional[str] = None

    def __post_init__(self) -> None:
        start = float(self.start_time)
        if not math.isfinite(start):
            raise ValueError("start_time must be finite")
        object.__setattr__(self, "start_time", start)
        object.__setattr__(self, "values", _freeze_array(self.values, ndim=1))

    @property
    def n_samples(self) -> int:
        return int(self.values.shape[0])

    def __len__(self) -> int:
        return self.n_samples


@dataclass(frozen=True)
class RmsPoint:
    """A single envelope sample.

    Attributes:
        t: Window centre in absolute seconds.
        v: RMS magnitude of the window.
    """

    t: float
    v: float


@dataclass(frozen=True)
class TapDecision:
    """Outcome of evaluating the sustained-threshold rule at a given clock time."""

    triggered: bool
    qualifying: int
    considered: int
    now: float


__all__ = [
    "SampleBatch",
    "RmsPoint",
    "TapDecision",
]
