"""
Watch-face screen.

Renders the coordinator's :class:`~passive_monitor.state.ScreenState` onto a
round OpenCV canvas and turns key presses into user intents:

  • ``h`` – toggle passive heart-rate monitoring.
  • ``r`` – start a recording (after the permission check) or stop it.
  • ``q`` / ESC – quit.

The screen subscribes to the coordinator while it is alive and plays
haptic pulses through :class:`~passive_monitor.haptics.HapticFeedback`.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

import cv2
import numpy as np

from passive_monitor.coordinator import PassiveDataCoordinator
from passive_monitor.haptics import HapticFeedback, Haptics
from passive_monitor.observable import Subscription
from passive_monitor.state import CapabilitySupport, ScreenState, has_reading

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Colour palette (BGR)
# ---------------------------------------------------------------------------
_GREEN  = (0, 220,  80)
_RED    = (0,  50, 220)
_YELLOW = (0, 210, 210)
_WHITE  = (255, 255, 255)
_GREY   = (140, 140, 140)
_BLACK  = (0, 0, 0)
_DARK   = (30, 30, 30)

KEY_ESC = 27


def heart_rate_text(state: ScreenState) -> str:
    if has_reading(state.heart_rate):
        return f"{state.heart_rate:.0f} bpm"
    return "--"


def status_text(state: ScreenState) -> str:
    """One-line summary; each screen mode gets a distinct wording."""
    if state.capability is CapabilitySupport.UNKNOWN:
        return "Starting..."
    if state.capability is CapabilitySupport.UNSUPPORTED:
        return "Heart rate not supported"
    if state.is_recording:
        return "Recording"
    if state.monitoring_enabled:
        return "Monitoring on"
    return "Monitoring off"


def record_button_text(state: ScreenState, now: datetime, max_seconds: float) -> str:
    if state.recording is None:
        return f"Manual Record ({max_seconds / 60:.0f} min)"
    remaining = max(0, int(max_seconds - state.recording.elapsed(now)))
    return f"Stop  {remaining // 60:d}:{remaining % 60:02d}"


class Screen:
    """
    Presentation surface for the coordinator.

    Parameters
    ----------
    coordinator:
        State owner that receives the intents.
    haptics:
        Vibration backend for recording start/stop pulses.
    request_permission:
        Called before each recording start; returning *False* blocks it.
    size:
        Canvas side length in pixels.
    clock:
        Current time, for the recording countdown.
    """

    WINDOW = "Passive Monitor"

    def __init__(
        self,
        coordinator: PassiveDataCoordinator,
        haptics: Haptics,
        request_permission: Callable[[], bool] = lambda: True,
        size: int = 320,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.coordinator = coordinator
        self.request_permission = request_permission
        self.size = size
        self._clock = clock

        self._feedback = HapticFeedback(haptics, coordinator.state)
        self._subscription: Optional[Subscription] = coordinator.subscribe(
            self._feedback.on_state,
        )

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def on_toggle(self) -> None:
        self.coordinator.toggle_monitoring()

    def on_record_button(self) -> None:
        if self.coordinator.is_recording:
            self.coordinator.stop_recording()
        elif self.request_permission():
            self.coordinator.start_recording()
        else:
            logger.info("Recording permission not granted.")

    def handle_key(self, key: int) -> bool:
        """Apply a key press.  Returns *False* when the user asked to quit."""
        if key in (ord("q"), KEY_ESC):
            return False
        if key == ord("h"):
            self.on_toggle()
        elif key == ord("r"):
            self.on_record_button()
        return True

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self) -> np.ndarray:
        """Draw the current state onto a fresh BGR canvas."""
        state = self.coordinator.state
        s = self.size
        canvas = np.zeros((s, s, 3), dtype=np.uint8)
        centre = (s // 2, s // 2)
        cv2.circle(canvas, centre, s // 2 - 2, _DARK, -1, cv2.LINE_AA)

        supported = state.capability is CapabilitySupport.SUPPORTED
        if state.is_recording:
            ring = _RED
        elif supported and state.monitoring_enabled:
            ring = _GREEN
        else:
            ring = _GREY
        cv2.circle(canvas, centre, s // 2 - 2, ring, 2, cv2.LINE_AA)

        self._text(canvas, status_text(state), int(s * 0.25), 0.5, _WHITE)

        hr_colour = _GREEN if has_reading(state.heart_rate) else _GREY
        self._text(canvas, heart_rate_text(state), int(s * 0.48), 1.2, hr_colour, 2)

        if state.capability is CapabilitySupport.UNSUPPORTED:
            toggle, toggle_colour = "HR unavailable", _GREY
        else:
            toggle = "[h] HR: ON" if state.monitoring_enabled else "[h] HR: OFF"
            toggle_colour = _GREEN if state.monitoring_enabled else _YELLOW
        self._text(canvas, toggle, int(s * 0.62), 0.5, toggle_colour)

        button = record_button_text(
            state, self._clock(), self.coordinator.max_recording_seconds,
        )
        self._button(canvas, f"[r] {button}", int(s * 0.78),
                     _RED if state.is_recording else _DARK)
        return canvas

    def _text(
        self,
        canvas: np.ndarray,
        text: str,
        baseline: int,
        scale: float,
        colour: Tuple[int, int, int],
        thickness: int = 1,
    ) -> None:
        (tw, _), _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, scale, thickness)
        x = max(0, (self.size - tw) // 2)
        cv2.putText(canvas, text, (x, baseline), cv2.FONT_HERSHEY_SIMPLEX,
                    scale, _BLACK, thickness + 2, cv2.LINE_AA)
        cv2.putText(canvas, text, (x, baseline), cv2.FONT_HERSHEY_SIMPLEX,
                    scale, colour, thickness, cv2.LINE_AA)

    def _button(
        self,
        canvas: np.ndarray,
        label: str,
        baseline: int,
        fill: Tuple[int, int, int],
    ) -> None:
        (tw, th), _ = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, 0.45, 1)
        x0 = max(4, (self.size - tw) // 2 - 10)
        x1 = min(self.size - 4, x0 + tw + 20)
        cv2.rectangle(canvas, (x0, baseline - th - 8), (x1, baseline + 8), fill, -1)
        cv2.rectangle(canvas, (x0, baseline - th - 8), (x1, baseline + 8), _WHITE, 1)
        self._text(canvas, label, baseline, 0.45, _WHITE)


def status_lines(state: ScreenState, now: datetime, max_seconds: float) -> List[str]:
    """Plain-text rendering used by headless mode."""
    return [
        status_text(state),
        f"HR {heart_rate_text(state)}",
        record_button_text(state, now, max_seconds),
    ]
