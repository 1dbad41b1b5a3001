"""
Performance and stability tests.

These tests verify system behavior under extended operation:
1. Raw history and the RMS envelope stay bounded by the retention horizon
2. No memory growth over time once the buffers reach steady state
3. Per-sample cost stays flat as the stream gets longer

Marked with @pytest.mark.slow as they take significant time.
Typically run in nightly CI, not on every commit.
"""
from __future__ import annotations

import gc
import time
import tracemalloc

import numpy as np
import pytest

from core.detection.tap import TapDetector
from core.runtime import TapRuntime
from daq.simulated_source import Burst, SimulatedEmgSource
from shared.settings import EngineSettings, EngineSettingsStore

SAMPLE_RATE = 1024.0
CHUNK = 32


def _stream(detector: TapDetector, n_chunks: int, rng: np.random.Generator, t0: float = 0.0) -> float:
    t = t0
    dt = CHUNK / SAMPLE_RATE
    for _ in range(n_chunks):
        detector.ingest(rng.normal(size=CHUNK), t)
        t += dt
        detector.tick(dt)
    return t


@pytest.mark.slow
class TestMemoryStability:
    """Tests for memory stability over extended operation."""

    def test_buffers_bounded_over_long_stream(self):
        """An hour of samples never grows the retained history past the horizon."""
        settings = EngineSettings(sample_rate=SAMPLE_RATE, window_size=64, hop_size=16, retention_seconds=2.0)
        detector = TapDetector(settings)
        rng = np.random.default_rng(0)
        max_raw = 0
        max_points = 0
        t = 0.0
        for _ in range(120):
            t = _stream(detector, 960, rng, t)
            max_raw = max(max_raw, len(detector.raw_data))
            max_points = max(max_points, len(detector.rms_points))

        assert max_raw <= int(2.0 * SAMPLE_RATE) + 64 + CHUNK + 1
        assert max_points <= int(2.0 * SAMPLE_RATE / 16) + 64 // 16 + 2
        assert detector.pruner.dropped_samples > 0

    def test_no_memory_growth_in_steady_state(self):
        """Repeated ingest/tick cycles should not accumulate allocations."""
        settings = EngineSettings(sample_rate=SAMPLE_RATE, window_size=64, hop_size=16, retention_seconds=1.0)
        detector = TapDetector(settings)
        rng = np.random.default_rng(1)

        # Warm up until the buffers reach their final capacity
        t = _stream(detector, 2000, rng)

        gc.collect()
        tracemalloc.start()
        initial_snapshot = tracemalloc.take_snapshot()

        _stream(detector, 5000, rng, t)

        gc.collect()
        final_snapshot = tracemalloc.take_snapshot()
        tracemalloc.stop()

        stats = final_snapshot.compare_to(initial_snapshot, "lineno")
        growth = sum(stat.size_diff for stat in stats if stat.size_diff > 0)
        # Allow some slack for interpreter caches; leaked samples would be megabytes.
        assert growth < 512 * 1024, f"Memory grew by {growth} bytes"

    def test_runtime_with_simulated_source_stays_bounded(self):
        store = EngineSettingsStore(
            EngineSettings(sample_rate=SAMPLE_RATE, window_size=64, hop_size=16, retention_seconds=1.0)
        )
        runtime = TapRuntime(settings_store=store)
        bursts = [Burst(start_sec=float(s), duration_sec=0.5, amplitude=1.0) for s in range(5, 300, 10)]
        source = SimulatedEmgSource(SAMPLE_RATE, CHUNK, bursts=bursts, seed=2)

        for message in source.messages(duration_sec=300.0):
            runtime.on_message(message)
            runtime.tick(source.chunk_duration)

        det = runtime.detector
        assert len(det.raw_data) <= int(SAMPLE_RATE) + 64 + CHUNK + 1
        assert det.sq_prefix.shape[0] == len(det.raw_data) + 1
        assert runtime.stats.samples == int(300.0 * SAMPLE_RATE)
        runtime.close()


@pytest.mark.slow
class TestThroughput:
    """Tests for timing consistency."""

    def test_cost_per_chunk_is_flat(self):
        """Late chunks should not be slower than early ones; pruning keeps work constant."""
        settings = EngineSettings(sample_rate=SAMPLE_RATE, window_size=64, hop_size=16, retention_seconds=2.0)
        detector = TapDetector(settings)
        rng = np.random.default_rng(3)

        start = time.perf_counter()
        t = _stream(detector, 2000, rng)
        early = time.perf_counter() - start

        t = _stream(detector, 20000, rng, t)

        start = time.perf_counter()
        _stream(detector, 2000, rng, t)
        late = time.perf_counter() - start

        assert late < early * 3.0 + 0.5
