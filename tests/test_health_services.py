"""
Tests for CameraHeartRateService using an in-memory camera.
Run with:  pytest tests/
"""

from __future__ import annotations

import asyncio
import math
import threading
import time

import numpy as np
import pytest

from passive_monitor.errors import CapabilityCheckError
from passive_monitor.health_services import CameraHeartRateService
from passive_monitor.repository import PassiveDataRepository

from conftest import sine_frames


class FakeCamera:
    """Context-managed camera that replays a fixed list of frames."""

    def __init__(self, frames=None, open_error: Exception | None = None):
        self._frames = list(frames or [])
        self.open_error = open_error
        self.opened = 0
        self.closed = 0

    def __enter__(self):
        if self.open_error is not None:
            raise self.open_error
        self.opened += 1
        return self

    def __exit__(self, *_):
        self.closed += 1

    def read_frame(self):
        return self._frames[0] if self._frames else None

    def frames(self):
        yield from self._frames


class SlowCamera(FakeCamera):
    """Yields a dark frame every *delay* seconds and tracks overlapping opens."""

    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def __enter__(self):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.opened += 1
        return self

    def __exit__(self, *_):
        with self._lock:
            self.active -= 1
            self.closed += 1

    def frames(self):
        for _ in range(100):
            time.sleep(self.delay)
            yield np.zeros((16, 16, 3), dtype=np.uint8)


def bright_frames(n: int):
    for _ in range(n):
        yield np.full((16, 16, 3), 200, dtype=np.uint8)


class TestCapabilityCheck:

    def test_frame_means_supported(self):
        camera = FakeCamera(frames=bright_frames(1))
        service = CameraHeartRateService(PassiveDataRepository(None), lambda: camera)
        assert service.has_heart_rate_capability() is True
        assert camera.closed == 1

    def test_no_frame_means_unsupported(self):
        service = CameraHeartRateService(PassiveDataRepository(None), lambda: FakeCamera())
        assert service.has_heart_rate_capability() is False

    def test_open_failure_raises_check_error(self):
        camera = FakeCamera(open_error=RuntimeError("Cannot open video capture device"))
        service = CameraHeartRateService(PassiveDataRepository(None), lambda: camera)
        with pytest.raises(CapabilityCheckError):
            service.has_heart_rate_capability()


class TestPulseWorker:

    def _run(self, service):
        async def scenario():
            service.register_for_heart_rate_data()
            await asyncio.to_thread(service.join, 10.0)
            await asyncio.sleep(0.05)
            service.unregister_for_heart_rate_data()

        asyncio.run(scenario())

    def test_finger_frames_publish_heart_rate(self):
        repo = PassiveDataRepository(None)
        readings = []
        repo.subscribe_heart_rate(readings.append)
        camera = FakeCamera(frames=sine_frames(30.0, 15.0, 1.2, size=16))
        service = CameraHeartRateService(
            repo, lambda: camera, fps=30.0, window_seconds=15.0, publish_every=30,
        )

        self._run(service)

        assert len(readings) >= 5
        assert abs(repo.latest_heart_rate - 72.0) < 5.0
        assert camera.closed == 1

    def test_open_scene_publishes_nothing(self):
        repo = PassiveDataRepository(None)
        service = CameraHeartRateService(
            repo, lambda: FakeCamera(frames=bright_frames(200)), fps=30.0, publish_every=10,
        )
        self._run(service)
        assert math.isnan(repo.latest_heart_rate)

    def test_camera_failure_ends_worker_quietly(self):
        repo = PassiveDataRepository(None)
        camera = FakeCamera(open_error=RuntimeError("busy"))
        service = CameraHeartRateService(repo, lambda: camera)
        self._run(service)
        assert not service.is_running
        assert math.isnan(repo.latest_heart_rate)

    def test_stale_readings_dropped_after_unregister(self):
        repo = PassiveDataRepository(None)
        service = CameraHeartRateService(repo, lambda: FakeCamera())

        async def scenario():
            service.register_for_heart_rate_data()
            generation = service._generation
            service.unregister_for_heart_rate_data()
            service._deliver(generation, 70.0)

        asyncio.run(scenario())
        assert math.isnan(repo.latest_heart_rate)

    def test_unregister_does_not_wait_for_worker(self):
        camera = SlowCamera(delay=0.5)
        service = CameraHeartRateService(PassiveDataRepository(None), lambda: camera)

        async def scenario():
            service.register_for_heart_rate_data()
            await asyncio.sleep(0.1)
            started = time.monotonic()
            service.unregister_for_heart_rate_data()
            elapsed = time.monotonic() - started
            await asyncio.to_thread(service.join, 5.0)
            return elapsed

        assert asyncio.run(scenario()) < 0.2
        assert camera.closed == 1

    def test_reregister_waits_for_previous_worker(self):
        camera = SlowCamera(delay=0.3)
        service = CameraHeartRateService(PassiveDataRepository(None), lambda: camera)

        async def scenario():
            service.register_for_heart_rate_data()
            await asyncio.sleep(0.1)
            service.unregister_for_heart_rate_data()
            service.register_for_heart_rate_data()
            await asyncio.sleep(0.1)
            service.unregister_for_heart_rate_data()
            await asyncio.to_thread(service.join, 5.0)

        asyncio.run(scenario())
        assert camera.opened == 2
        assert camera.closed == 2
        assert camera.max_active == 1

    def test_unregister_without_register(self):
        service = CameraHeartRateService(PassiveDataRepository(None), lambda: FakeCamera())
        service.unregister_for_heart_rate_data()
        assert not service.is_running
