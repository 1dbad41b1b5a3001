import numpy as np
import pytest

from analysis.calibration import (
    CalibrationResult,
    CalibrationSession,
    CalibrationSettings,
    run_calibration,
)
from core.detection import TapDetector
from shared.settings import EngineSettings


def _detector(threshold=5.0) -> TapDetector:
    return TapDetector(
        EngineSettings(sample_rate=4.0, window_size=4, hop_size=4, threshold=threshold, threshold_count=2, retention_seconds=10.0)
    )


class TestCalibrationSettings:
    @pytest.mark.parametrize("fraction", [0.0, 1.0, -0.5, 1.5, float("nan")])
    def test_fraction_must_be_open_unit_interval(self, fraction):
        with pytest.raises(ValueError):
            CalibrationSettings(fraction=fraction)

    @pytest.mark.parametrize("duration", [0.0, -1.0, float("nan")])
    def test_duration_must_be_positive(self, duration):
        with pytest.raises(ValueError):
            CalibrationSettings(duration_sec=duration)


class TestCalibrationSession:
    def test_threshold_is_fraction_of_max(self):
        det = _detector()
        det.ingest([1.0] * 4, 0.0)
        session = CalibrationSession(det, CalibrationSettings(duration_sec=2.0, fraction=0.5, full_reset=True))
        session.start()
        # Full reset discards the samples ingested before calibration.
        assert not det.initialized

        det.ingest([2.0] * 4 + [4.0] * 4 + [1.0] * 4, 0.0)
        done = [session.step(0.5) for _ in range(4)]

        assert done == [False, False, False, True]
        result = session.result
        assert isinstance(result, CalibrationResult)
        assert result.max_rms == pytest.approx(4.0)
        assert result.threshold == pytest.approx(2.0)
        assert result.applied
        assert result.frames == 4
        assert det.threshold == pytest.approx(2.0)
        assert session.done and not session.active

    def test_no_signal_leaves_threshold(self):
        det = _detector(threshold=5.0)
        session = CalibrationSession(det, CalibrationSettings(duration_sec=1.0, fraction=0.6))
        session.start()
        while not session.step(0.25):
            pass
        assert not session.result.applied
        assert session.result.max_rms == 0.0
        assert det.threshold == 5.0

    def test_soft_reset_keeps_samples(self):
        det = _detector()
        det.ingest([3.0] * 8, 0.0)
        session = CalibrationSession(det, CalibrationSettings(duration_sec=2.0, fraction=0.5, full_reset=False))
        session.start()
        assert det.initialized
        assert len(det.raw_data) == 8
        while not session.step(0.5):
            pass
        assert session.result.max_rms == pytest.approx(3.0)
        assert det.threshold == pytest.approx(1.5)

    def test_negative_deltas_do_not_count(self):
        det = _detector()
        session = CalibrationSession(det, CalibrationSettings(duration_sec=1.0, fraction=0.5))
        session.start()
        assert session.step(-10.0) is False
        assert session.elapsed_sec == 0.0
        assert session.progress == 0.0

    def test_lifecycle_errors(self):
        det = _detector()
        session = CalibrationSession(det, CalibrationSettings(duration_sec=0.5, fraction=0.5))
        with pytest.raises(RuntimeError):
            session.step(0.1)
        session.start()
        with pytest.raises(RuntimeError):
            session.start()
        assert session.step(0.5) is True
        with pytest.raises(RuntimeError):
            session.step(0.1)


class TestRunCalibration:
    def test_feeds_samples_between_frames(self):
        det = _detector()
        signal = np.concatenate([np.full(8, 0.5), np.full(8, 2.0), np.full(8, 0.5)])
        batches = iter(np.split(signal, 6))
        clock = {"t": 0.0}

        def feed(delta):
            values = next(batches, None)
            if values is not None:
                det.ingest(values, clock["t"])
                clock["t"] += len(values) / 4.0

        result = run_calibration(det, [1.0] * 8, CalibrationSettings(duration_sec=6.0, fraction=0.5), on_frame=feed)
        assert result.max_rms == pytest.approx(2.0)
        assert det.threshold == pytest.approx(1.0)

    def test_running_out_of_frames_raises(self):
        det = _detector()
        with pytest.raises(RuntimeError):
            run_calibration(det, [0.1, 0.1], CalibrationSettings(duration_sec=1.0, fraction=0.5))
