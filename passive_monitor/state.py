"""
UI-facing state snapshots.

The coordinator is the only writer.  Every change produces a new frozen
:class:`ScreenState`, so observers can hold on to a snapshot without it
changing underneath them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from passive_monitor.observable import Observable, Subscription

# Heart-rate "no value" marker.  Distinct from 0.0.
NO_READING: float = float("nan")


def has_reading(value: float) -> bool:
    """Return *True* if *value* is a real heart-rate reading."""
    return not math.isnan(value)


class CapabilitySupport(Enum):
    """Result of the one-off heart-rate capability check."""

    UNKNOWN = "unknown"
    SUPPORTED = "supported"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class RecordingSession:
    """An active manual recording."""

    started_at: datetime
    output_path: Path

    def elapsed(self, now: datetime) -> float:
        """Seconds since the session started."""
        return max(0.0, (now - self.started_at).total_seconds())


@dataclass(frozen=True)
class ScreenState:
    """Immutable snapshot of everything the screen renders."""

    capability: CapabilitySupport = CapabilitySupport.UNKNOWN
    heart_rate: float = NO_READING
    monitoring_enabled: bool = False
    recording: Optional[RecordingSession] = None

    @property
    def is_recording(self) -> bool:
        return self.recording is not None

    def same_as(self, other: "ScreenState") -> bool:
        # NaN != NaN, so plain equality would report a change on every clear
        if (has_reading(self.heart_rate) or has_reading(other.heart_rate)) and \
                self.heart_rate != other.heart_rate:
            return False
        return (
            self.capability is other.capability
            and self.monitoring_enabled == other.monitoring_enabled
            and self.recording == other.recording
        )


class StateHolder:
    """
    Single-writer holder of the current :class:`ScreenState`.

    :meth:`update` publishes the new snapshot to observers only when
    something actually changed.
    """

    def __init__(self, initial: ScreenState | None = None) -> None:
        self._value = initial if initial is not None else ScreenState()
        self._changes: Observable[ScreenState] = Observable()

    @property
    def value(self) -> ScreenState:
        return self._value

    def update(self, **changes) -> ScreenState:
        new = replace(self._value, **changes)
        if new.same_as(self._value):
            return self._value
        self._value = new
        self._changes.publish(new)
        return new

    def subscribe(self, observer: Callable[[ScreenState], None]) -> Subscription:
        return self._changes.subscribe(observer)

    def clear_observers(self) -> None:
        self._changes.clear()
