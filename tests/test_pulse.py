"""
Unit tests for PulseEstimator and FingerDetector.
Run with:  pytest tests/
"""

from __future__ import annotations

import math

import numpy as np

from passive_monitor.pulse import FingerDetector, PulseEstimator

from conftest import sine_frames


# ---------------------------------------------------------------------------
# PulseEstimator tests
# ---------------------------------------------------------------------------

class TestPulseEstimator:

    def test_no_data_returns_sentinel(self):
        est = PulseEstimator(fps=30.0, window_seconds=10.0)
        bpm, conf = est.estimate()
        assert math.isnan(bpm)
        assert conf == 0.0

    def test_fill_ratio_grows(self):
        est = PulseEstimator(fps=10.0, window_seconds=5.0)
        assert est.fill_ratio == 0.0
        est.push_frame(np.full((10, 10, 3), 128, dtype=np.uint8))
        assert est.fill_ratio > 0.0

    def test_reset_clears_buffer(self):
        est = PulseEstimator(fps=10.0, window_seconds=5.0)
        frame = np.full((10, 10, 3), 100, dtype=np.uint8)
        for _ in range(20):
            est.push_frame(frame)
        est.reset()
        assert est.fill_ratio == 0.0
        assert math.isnan(est.estimate()[0])

    def test_flat_signal_has_no_reading(self):
        est = PulseEstimator(fps=10.0, window_seconds=5.0, min_samples=5)
        frame = np.full((8, 8, 3), 80, dtype=np.uint8)
        for _ in range(30):
            est.push_frame(frame)
        bpm, conf = est.estimate()
        assert math.isnan(bpm)
        assert conf == 0.0

    def test_synthetic_sine_detected(self):
        """Feed a pure 1.2 Hz sine (72 BPM) and verify we get a close estimate."""
        fps = 30.0
        est = PulseEstimator(fps=fps, window_seconds=15.0, min_samples=int(2 * fps))
        for frame in sine_frames(fps, 15.0, 1.2):
            est.push_frame(frame)

        bpm, conf = est.estimate()
        assert abs(bpm - 72.0) < 5.0, f"Expected ~72 BPM, got {bpm:.1f}"
        assert conf > 0.5, f"Confidence too low: {conf:.2f}"


# ---------------------------------------------------------------------------
# FingerDetector tests
# ---------------------------------------------------------------------------

class TestFingerDetector:

    def _make_frame(self, r, g, b, noise=0) -> np.ndarray:
        """Create a uniform-colour frame with optional noise."""
        rng = np.random.default_rng(42)
        frame = np.zeros((120, 160, 3), dtype=np.uint8)
        frame[:, :, 2] = np.clip(r + rng.integers(-noise, noise + 1, (120, 160)), 0, 255)
        frame[:, :, 1] = np.clip(g + rng.integers(-noise, noise + 1, (120, 160)), 0, 255)
        frame[:, :, 0] = np.clip(b + rng.integers(-noise, noise + 1, (120, 160)), 0, 255)
        return frame

    def test_finger_dark_reddish(self):
        fd = FingerDetector(brightness_threshold=100, variance_threshold=800)
        assert fd.is_finger(self._make_frame(r=80, g=40, b=30, noise=3)) is True

    def test_no_finger_bright_scene(self):
        fd = FingerDetector()
        assert fd.is_finger(self._make_frame(r=200, g=180, b=160, noise=20)) is False

    def test_no_finger_dark_but_not_red(self):
        fd = FingerDetector()
        assert fd.is_finger(self._make_frame(r=30, g=40, b=50)) is False

    def test_synthetic_frames_count_as_finger(self):
        fd = FingerDetector()
        assert all(fd.is_finger(f) for f in sine_frames(30.0, 1.0, 1.2))
