"""
Synthetic signal generation utilities for testing.

These generators produce deterministic, reproducible test signals with known
RMS properties that can be used to validate the envelope and tap detector.

All generators follow a consistent API:
- duration_sec: Signal duration in seconds
- sample_rate: Sample rate in Hz
- Returns: numpy array of float64 samples

Use seeded RNG for reproducibility when noise is involved.
"""
from __future__ import annotations

import math
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np


def make_constant(value: float, duration_sec: float, sample_rate: float) -> np.ndarray:
    """Generate a DC signal. Its RMS over any window is ``abs(value)``."""
    n_samples = int(round(duration_sec * sample_rate))
    return np.full(n_samples, float(value), dtype=np.float64)


def make_sine(
    freq_hz: float,
    amplitude: float,
    duration_sec: float,
    sample_rate: float,
    *,
    phase_rad: float = 0.0,
) -> np.ndarray:
    """Generate a pure sine wave.

    Over a window spanning whole periods the RMS is ``amplitude / sqrt(2)``.

    Example:
        >>> sig = make_sine(8.0, 1.0, 1.0, 256.0)
        >>> sig.shape
        (256,)
    """
    n_samples = int(round(duration_sec * sample_rate))
    t = np.arange(n_samples, dtype=np.float64) / sample_rate
    return amplitude * np.sin(2.0 * math.pi * freq_hz * t + phase_rad)


def make_noise(sigma: float, duration_sec: float, sample_rate: float, *, seed: int = 0) -> np.ndarray:
    """Generate zero-mean Gaussian noise with standard deviation `sigma`."""
    rng = np.random.default_rng(seed)
    n_samples = int(round(duration_sec * sample_rate))
    return rng.normal(0.0, sigma, size=n_samples)


def make_step_bursts(
    duration_sec: float,
    sample_rate: float,
    bursts: Sequence[Tuple[float, float, float]],
    *,
    baseline: float = 0.0,
) -> np.ndarray:
    """Generate a flat baseline with rectangular constant-level bursts.

    Args:
        duration_sec: Total duration in seconds.
        sample_rate: Sample rate in Hz.
        bursts: (start_sec, duration_sec, level) triples.
        baseline: Level outside bursts.

    Returns:
        1D float64 array; RMS inside a burst equals ``abs(level)``.
    """
    signal = make_constant(baseline, duration_sec, sample_rate)
    for start_sec, burst_sec, level in bursts:
        start = int(round(start_sec * sample_rate))
        stop = min(signal.size, int(round((start_sec + burst_sec) * sample_rate)))
        signal[start:stop] = level
    return signal


def split_batches(
    signal: np.ndarray,
    sample_rate: float,
    sizes: Sequence[int],
    *,
    start_time: float = 0.0,
) -> Iterator[Tuple[np.ndarray, float]]:
    """Cut `signal` into consecutive batches, cycling through `sizes`.

    Yields (values, batch_start_time) pairs the way a sample source delivers
    them. Zero-length sizes yield empty batches.
    """
    if not sizes:
        raise ValueError("sizes must not be empty")
    pos = 0
    idx = 0
    while pos < signal.size:
        size = max(0, int(sizes[idx % len(sizes)]))
        idx += 1
        yield signal[pos : pos + size], start_time + pos / sample_rate
        pos += size
        if size == 0 and all(int(s) <= 0 for s in sizes):
            return


def frame_deltas(duration_sec: float, frame_rate: float, *, jitter: Optional[float] = None, seed: int = 0) -> list:
    """Per-frame elapsed-time deltas covering `duration_sec`.

    With `jitter`, each delta is perturbed uniformly by up to ±jitter seconds
    (never below zero), mimicking an irregular render loop.
    """
    n_frames = int(math.ceil(duration_sec * frame_rate))
    base = 1.0 / frame_rate
    if jitter is None:
        return [base] * n_frames
    rng = np.random.default_rng(seed)
    return [max(0.0, base + float(rng.uniform(-jitter, jitter))) for _ in range(n_frames)]
