"""
Shared fakes for the coordinator-level tests.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import numpy as np
import pytest

from passive_monitor.coordinator import PassiveDataCoordinator
from passive_monitor.haptics import Haptics
from passive_monitor.health_services import HeartRateService
from passive_monitor.recorder import recording_filename
from passive_monitor.repository import PassiveDataRepository


def sine_frames(fps: float, seconds: float, target_hz: float, size: int = 4):
    """Finger-like frames whose green channel pulses at *target_hz*."""
    t = np.arange(int(fps * seconds)) / fps
    green = 40 + 5 * np.sin(2 * np.pi * target_hz * t)
    for value in green:
        frame = np.zeros((size, size, 3), dtype=np.uint8)
        frame[:, :, 0] = 30
        frame[:, :, 1] = int(np.clip(value, 0, 255))
        frame[:, :, 2] = 80
        yield frame


class FakeHealthServices(HeartRateService):
    def __init__(self, supported: bool = True, check_error: Exception | None = None):
        self.supported = supported
        self.check_error = check_error
        self.checks = 0
        self.registers = 0
        self.unregisters = 0

    def has_heart_rate_capability(self) -> bool:
        self.checks += 1
        if self.check_error is not None:
            raise self.check_error
        return self.supported

    def register_for_heart_rate_data(self) -> None:
        self.registers += 1

    def unregister_for_heart_rate_data(self) -> None:
        self.unregisters += 1

    def join(self, timeout=None) -> None:
        pass


class FakeRecorder:
    def __init__(self, output_dir: Path = Path("recordings"),
                 start_error: Exception | None = None,
                 stop_error: Exception | None = None):
        self.output_dir = output_dir
        self.start_error = start_error
        self.stop_error = stop_error
        self.starts: list[Path] = []
        self.stop_times: list[float] = []

    @property
    def stops(self) -> int:
        return len(self.stop_times)

    def has_input_device(self) -> bool:
        return True

    def output_path_for(self, started_at):
        return self.output_dir / recording_filename(started_at)

    def start(self, output_path):
        if self.start_error is not None:
            raise self.start_error
        self.starts.append(output_path)

    def stop(self):
        self.stop_times.append(time.monotonic())
        if self.stop_error is not None:
            raise self.stop_error
        return self.starts[-1] if self.starts else None


class RecordingHaptics(Haptics):
    def __init__(self):
        self.patterns = []

    def vibrate(self, pattern) -> None:
        self.patterns.append(pattern)


@pytest.fixture
def health_services():
    return FakeHealthServices()


@pytest.fixture
def repository():
    return PassiveDataRepository(None)


@pytest.fixture
def recorder(tmp_path):
    return FakeRecorder(tmp_path)


@pytest.fixture
def make_coordinator(health_services, repository, recorder):
    created = []

    def factory(initialize=True, **kwargs):
        """Build a coordinator; by default it has already checked capability."""
        kwargs.setdefault("max_recording_seconds", 0.05)
        coordinator = PassiveDataCoordinator(
            kwargs.pop("health_services", health_services),
            kwargs.pop("repository", repository),
            kwargs.pop("recorder", recorder),
            **kwargs,
        )
        created.append(coordinator)
        if initialize:
            asyncio.run(coordinator.initialize())
        return coordinator

    yield factory
    for coordinator in created:
        coordinator.close()
