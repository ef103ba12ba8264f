"""
Manual audio recorder.

Captures the default (or a chosen) input device through
:class:`sounddevice.InputStream` and writes a 16-bit PCM WAV file with
:func:`scipy.io.wavfile.write` when the recording is stopped.

Files are named ``Manual-<yyyy-MM-dd-HH-mm-ss>.wav`` after the session start
time so that recordings sort chronologically.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import numpy as np
from scipy.io import wavfile

from passive_monitor.errors import DeviceStartError, DeviceStopError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Try importing sounddevice (raises OSError when PortAudio is missing)
# ---------------------------------------------------------------------------
try:
    import sounddevice as sd
    _SOUNDDEVICE_AVAILABLE = True
except (ImportError, OSError):
    sd = None
    _SOUNDDEVICE_AVAILABLE = False
    logger.warning("sounddevice/PortAudio not available – recording disabled.")

FILENAME_PREFIX = "Manual"
TIMESTAMP_FORMAT = "%Y-%m-%d-%H-%M-%S"
AUDIO_DTYPE = "int16"


def recording_filename(started_at: datetime, extension: str = "wav") -> str:
    """Return ``Manual-<timestamp>.<extension>`` for a session start time."""
    return f"{FILENAME_PREFIX}-{started_at.strftime(TIMESTAMP_FORMAT)}.{extension}"


class AudioRecorder:
    """
    Start/stop microphone capture to a timestamped WAV file.

    Parameters
    ----------
    output_dir:
        Directory that receives the recordings.  Created on first start.
    sample_rate:
        Capture rate in Hz.
    channels:
        Number of input channels (1 = mono).
    device:
        sounddevice device index or name; ``None`` uses the system default.
    """

    extension = "wav"

    def __init__(
        self,
        output_dir: Path | str = "recordings",
        sample_rate: int = 44100,
        channels: int = 1,
        device: int | str | None = None,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device

        self._stream = None
        self._path: Optional[Path] = None
        self._blocks: List[np.ndarray] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_capturing(self) -> bool:
        return self._stream is not None

    def output_path_for(self, started_at: datetime) -> Path:
        return self.output_dir / recording_filename(started_at, self.extension)

    def has_input_device(self) -> bool:
        """
        Permission-style check: is there any input device we may record from?
        """
        if sd is None:
            return False
        try:
            sd.query_devices(self.device, kind="input")
        except Exception as exc:                        # noqa: BLE001
            logger.info("No usable input device: %s", exc)
            return False
        return True

    def start(self, output_path: Path) -> None:
        """
        Open the input stream and begin buffering audio for *output_path*.

        Raises
        ------
        DeviceStartError
            PortAudio is missing, the device is busy/absent, or a capture is
            already running.
        """
        if self._stream is not None:
            raise DeviceStartError(f"Already recording to {self._path}")
        if sd is None:
            raise DeviceStartError("sounddevice/PortAudio is not available")

        with self._lock:
            self._blocks = []
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype=AUDIO_DTYPE,
                device=self.device,
                callback=self._on_block,
            )
        except Exception as exc:                        # noqa: BLE001
            raise DeviceStartError(f"Could not open audio input: {exc}") from exc
        try:
            stream.start()
        except Exception as exc:                        # noqa: BLE001
            try:
                stream.close()
            except Exception as close_exc:              # noqa: BLE001
                logger.debug("Closing failed input stream: %s", close_exc)
            raise DeviceStartError(f"Could not start audio capture: {exc}") from exc

        self._stream = stream
        self._path = Path(output_path)
        logger.info(
            "Audio capture started – %s (%d Hz, %d ch)",
            self._path, self.sample_rate, self.channels,
        )

    def stop(self) -> Optional[Path]:
        """
        Stop the stream and write the WAV file.

        Returns the written path, or *None* when nothing was being recorded.
        The recorder is always left idle, even when :class:`DeviceStopError`
        is raised.
        """
        stream, path = self._stream, self._path
        self._stream, self._path = None, None
        if stream is None:
            return None

        try:
            stream.stop()
            stream.close()
        except Exception as exc:                        # noqa: BLE001
            raise DeviceStopError(f"Could not stop audio capture: {exc}") from exc
        finally:
            with self._lock:
                blocks, self._blocks = self._blocks, []

        if blocks:
            audio = np.concatenate(blocks, axis=0)
        else:
            audio = np.zeros((0, self.channels), dtype=AUDIO_DTYPE)
        try:
            wavfile.write(str(path), self.sample_rate, audio)
        except (OSError, ValueError) as exc:
            raise DeviceStopError(f"Could not write {path}: {exc}") from exc

        logger.info(
            "Audio capture stopped – %s (%.1f s)",
            path, len(audio) / float(self.sample_rate),
        )
        return path

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _on_block(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        # Runs on the PortAudio thread
        if status:
            logger.debug("Input stream status: %s", status)
        with self._lock:
            self._blocks.append(indata.copy())
