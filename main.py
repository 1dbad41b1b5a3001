"""Headless TapHound demo: simulated EMG in, taps out.

A simulated surface-EMG source streams through the runtime while a fixed-rate
frame loop ticks the detector. The first stretch calibrates the threshold on
a single practice contraction; the remaining bursts should each register as
one tap. Adjust the constants below to experiment with the detector.
"""

from __future__ import annotations

import logging

from analysis.calibration import CalibrationSettings
from core import TapRuntime
from daq.simulated_source import Burst, SimulatedEmgSource
from shared.settings import EngineSettings, EngineSettingsStore

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

SAMPLE_RATE = 256.0   # Hz
CHUNK_SIZE = 12       # Samples per delivered message
FRAME_RATE = 60.0     # Driver ticks per second
RUN_SECONDS = 12.0

CALIBRATION = CalibrationSettings(duration_sec=3.0, fraction=0.6)
BURSTS = (
    Burst(start_sec=1.0, duration_sec=0.8, amplitude=1.0),  # practice contraction
    Burst(start_sec=5.0, duration_sec=0.6, amplitude=1.2),
    Burst(start_sec=7.5, duration_sec=0.6, amplitude=0.9),
    Burst(start_sec=10.0, duration_sec=0.6, amplitude=1.1),
)


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    store = EngineSettingsStore(EngineSettings(sample_rate=SAMPLE_RATE, window_size=32, hop_size=8, threshold_count=3))
    runtime = TapRuntime(settings_store=store)
    source = SimulatedEmgSource(SAMPLE_RATE, CHUNK_SIZE, noise_level=0.05, bursts=BURSTS, seed=7)

    frame_dt = 1.0 / FRAME_RATE
    sample_clock = 0.0
    runtime.begin_calibration(CALIBRATION)
    for frame in range(int(RUN_SECONDS * FRAME_RATE)):
        frame_end = (frame + 1) * frame_dt
        # Deliver every message whose samples were captured during this frame.
        while sample_clock < frame_end:
            message = source.read_message()
            if message is None:
                break
            runtime.on_message(message)
            sample_clock += source.chunk_duration
        runtime.tick(frame_dt)

    stats = runtime.stats
    logging.getLogger(__name__).info(
        "Done: %d taps over %d ticks (%d samples, %d dropped messages, threshold=%.4g)",
        stats.taps,
        stats.ticks,
        stats.samples,
        stats.dropped_messages,
        runtime.detector.threshold,
    )
    runtime.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
