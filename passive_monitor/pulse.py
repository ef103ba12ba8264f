"""
Camera pulse estimation (rPPG).

A fingertip pressed on the lens turns the frame into a dark, flat, reddish
field whose green channel brightness rises and falls with each heartbeat.

Algorithm
---------
1. :class:`FingerDetector` gates frames: only a covered lens is analysed.
2. :class:`PulseEstimator` keeps a rolling window of mean green intensity,
   removes the DC level, band-passes it (Butterworth, 45 – 240 BPM by
   default) and takes the dominant FFT peak, refined by parabolic
   interpolation between neighbouring bins.

References
----------
- Verkruysse W. et al., "Remote plethysmographic imaging using ambient light."
  Opt Express, 2008.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Tuple

import numpy as np
from scipy.signal import butter, sosfilt

from passive_monitor.state import NO_READING

logger = logging.getLogger(__name__)


class FingerDetector:
    """
    Heuristic: is the camera lens covered by a finger?

    Parameters
    ----------
    brightness_threshold:
        Maximum mean pixel brightness (0 – 255) of a covered lens.
    variance_threshold:
        Maximum spatial variance of the green channel.
    red_dominance:
        Minimum ``mean_red / mean_green`` ratio for skin tone.
    """

    def __init__(
        self,
        brightness_threshold: float = 100.0,
        variance_threshold: float = 800.0,
        red_dominance: float = 1.05,
    ) -> None:
        self.brightness_threshold = brightness_threshold
        self.variance_threshold = variance_threshold
        self.red_dominance = red_dominance

    def is_finger(self, frame: np.ndarray) -> bool:
        """Return *True* if the BGR *frame* looks like a finger on the lens."""
        pixels = frame.reshape(-1, 3).astype(np.float64)
        mean_b, mean_g, mean_r = pixels.mean(axis=0)
        brightness = (mean_b + mean_g + mean_r) / 3.0
        variance = float(pixels[:, 1].var())

        return bool(
            brightness < self.brightness_threshold
            and variance < self.variance_threshold
            and mean_r / (mean_g + 1e-6) >= self.red_dominance
        )


class PulseEstimator:
    """
    Rolling heart-rate estimator over mean green intensity.

    Parameters
    ----------
    fps:
        Sample rate of pushed frames.  Must match the camera rate.
    window_seconds:
        Length of the rolling analysis window.
    bpm_low, bpm_high:
        Pass band of the Butterworth filter, in BPM.
    filter_order:
        Butterworth order.
    min_samples:
        Samples needed before an estimate is produced.  Defaults to 2 × fps.
    """

    def __init__(
        self,
        fps: float = 30.0,
        window_seconds: float = 12.0,
        bpm_low: float = 45.0,
        bpm_high: float = 240.0,
        filter_order: int = 4,
        min_samples: int | None = None,
    ) -> None:
        self.fps = fps
        self.window_seconds = window_seconds
        self.bpm_low = bpm_low
        self.bpm_high = bpm_high
        self.filter_order = filter_order
        self.min_samples = min_samples if min_samples is not None else int(2 * fps)

        self._samples: Deque[float] = deque(maxlen=int(fps * window_seconds))
        self._sos = self._design_filter()

    @property
    def fill_ratio(self) -> float:
        """How full the rolling window is (0 – 1)."""
        return len(self._samples) / self._samples.maxlen

    def push_frame(self, frame: np.ndarray) -> None:
        """Append the mean green intensity of a BGR *frame*."""
        self._samples.append(float(np.mean(frame[:, :, 1])))

    def reset(self) -> None:
        self._samples.clear()

    def estimate(self) -> Tuple[float, float]:
        """
        Return ``(bpm, confidence)``.

        *confidence* is the share of in-band spectral power at the peak
        (0 – 1).  Returns ``(NO_READING, 0.0)`` until ``min_samples`` frames
        have been pushed.
        """
        if len(self._samples) < self.min_samples:
            return NO_READING, 0.0

        signal = np.asarray(self._samples, dtype=np.float64)
        filtered = sosfilt(self._sos, signal - signal.mean())

        freqs = np.fft.rfftfreq(len(filtered), d=1.0 / self.fps) * 60.0
        power = np.abs(np.fft.rfft(filtered)) ** 2
        in_band = (freqs >= self.bpm_low) & (freqs <= self.bpm_high)
        if not in_band.any():
            return NO_READING, 0.0

        band_freqs = freqs[in_band]
        band_power = power[in_band]
        total = float(band_power.sum())
        if total <= 0.0:
            return NO_READING, 0.0

        peak = int(np.argmax(band_power))
        bpm = float(band_freqs[peak])
        if 0 < peak < len(band_power) - 1:
            left, centre, right = band_power[peak - 1:peak + 2]
            denom = left - 2.0 * centre + right
            if denom != 0:
                offset = 0.5 * (left - right) / denom
                bpm += offset * float(band_freqs[1] - band_freqs[0])

        return bpm, float(band_power[peak] / total)

    def _design_filter(self) -> np.ndarray:
        nyq = self.fps / 2.0
        low = max(1e-4, min((self.bpm_low / 60.0) / nyq, 0.999))
        high = max(low + 1e-4, min((self.bpm_high / 60.0) / nyq, 0.999))
        return butter(self.filter_order, [low, high], btype="bandpass", output="sos")
