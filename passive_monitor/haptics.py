"""
Haptic feedback for recording transitions.

Two patterns exist:

  • SINGLE_SHORT – one 150 ms buzz, played when a recording starts.
  • DOUBLE_SHORT – two 150 ms buzzes 100 ms apart, played when it stops.

:class:`HapticFeedback` watches coordinator snapshots and plays exactly one
pattern per *confirmed* recording transition, so deadline stops buzz the
same way as user stops and a start that failed on the device stays silent.
"""

from __future__ import annotations

import logging
import sys
from enum import Enum
from typing import Tuple

from passive_monitor.state import ScreenState

logger = logging.getLogger(__name__)


class HapticPattern(Enum):
    """Pulse patterns as (off, on, off, on, ...) waveforms in milliseconds."""

    SINGLE_SHORT = (0, 150)
    DOUBLE_SHORT = (0, 150, 100, 150)

    @property
    def timings(self) -> Tuple[int, ...]:
        return self.value

    @property
    def pulses(self) -> int:
        return len(self.value) // 2


class Haptics:
    """Base vibration backend.  Subclasses drive real hardware."""

    def vibrate(self, pattern: HapticPattern) -> None:
        raise NotImplementedError


class LogHaptics(Haptics):
    """Logs each pattern; optionally rings the terminal bell once per pulse."""

    def __init__(self, bell: bool = False, stream=None) -> None:
        self.bell = bell
        self.stream = stream if stream is not None else sys.stdout

    def vibrate(self, pattern: HapticPattern) -> None:
        logger.info("Haptic %s %s", pattern.name, list(pattern.timings))
        if self.bell:
            self.stream.write("\a" * pattern.pulses)
            self.stream.flush()


class HapticFeedback:
    """
    Observer that converts recording transitions into haptic pulses.

    Subscribe :meth:`on_state` to the coordinator.  The first snapshot seen
    is taken as the baseline.
    """

    def __init__(self, haptics: Haptics, initial: ScreenState | None = None) -> None:
        self.haptics = haptics
        self._was_recording = initial.is_recording if initial is not None else False

    def on_state(self, state: ScreenState) -> None:
        if state.is_recording == self._was_recording:
            return
        self._was_recording = state.is_recording
        if state.is_recording:
            self.haptics.vibrate(HapticPattern.SINGLE_SHORT)
        else:
            self.haptics.vibrate(HapticPattern.DOUBLE_SHORT)
