"""
Exception hierarchy for device and sensor failures.

Every error here is recovered by :class:`~passive_monitor.coordinator.PassiveDataCoordinator`;
none of them is allowed to reach the screen.
"""

from __future__ import annotations


class PassiveMonitorError(Exception):
    """Base class for all passive_monitor errors."""


class CapabilityCheckError(PassiveMonitorError):
    """The heart-rate capability check could not run."""


class RecorderError(PassiveMonitorError):
    """Base class for recording-device failures."""


class DeviceStartError(RecorderError):
    """The recording device could not be prepared or started."""


class DeviceStopError(RecorderError):
    """The recording device failed while stopping or writing its output."""
