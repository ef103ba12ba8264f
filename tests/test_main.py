"""
Tests for the run loops in main.py, with the OpenCV window calls stubbed out.
Run with:  pytest tests/
"""

from __future__ import annotations

import asyncio

import pytest

import main
from passive_monitor.haptics import HapticPattern

from conftest import RecordingHaptics


@pytest.fixture
def haptics(monkeypatch):
    haptics = RecordingHaptics()
    monkeypatch.setattr(main, "LogHaptics", lambda bell=False: haptics)
    return haptics


@pytest.fixture
def no_window(monkeypatch):
    monkeypatch.setattr(main.cv2, "namedWindow", lambda *a, **k: None)
    monkeypatch.setattr(main.cv2, "imshow", lambda *a, **k: None)
    monkeypatch.setattr(main.cv2, "destroyAllWindows", lambda: None)
    monkeypatch.setattr(main.cv2, "waitKey", lambda delay: ord("q"))


class TestQuitWhileRecording:

    def test_window_quit_ends_recording_with_stop_pulse(self, make_coordinator, recorder,
                                                        haptics, no_window):
        coordinator = make_coordinator(max_recording_seconds=120.0)
        args = main.parse_args(["--record"])

        asyncio.run(main._run_window(coordinator, args))
        assert len(recorder.starts) == 1
        assert recorder.stops == 1
        assert haptics.patterns == [HapticPattern.SINGLE_SHORT, HapticPattern.DOUBLE_SHORT]

    def test_headless_cancel_ends_recording_with_stop_pulse(self, make_coordinator, recorder,
                                                            haptics):
        coordinator = make_coordinator(max_recording_seconds=120.0)
        args = main.parse_args(["--headless", "--record"])

        async def scenario():
            task = asyncio.create_task(main._run_headless(coordinator, args))
            await asyncio.sleep(0.05)
            assert coordinator.is_recording
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        assert recorder.stops == 1
        assert haptics.patterns == [HapticPattern.SINGLE_SHORT, HapticPattern.DOUBLE_SHORT]
