"""
Camera access for the pulse source.

Uses picamera2 on Raspberry Pi OS and falls back to OpenCV
``VideoCapture`` (any webcam) everywhere else.  Frames are always BGR
``uint8`` arrays.
"""

from __future__ import annotations

import logging
from typing import Generator, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Try importing picamera2 (only available on Raspberry Pi OS)
# ---------------------------------------------------------------------------
try:
    from picamera2 import Picamera2
    _PICAMERA2_AVAILABLE = True
except ImportError:
    _PICAMERA2_AVAILABLE = False
    logger.debug("picamera2 not found – using OpenCV VideoCapture.")

# Consecutive failed reads before frames() gives up
MAX_EMPTY_READS = 10


class Camera:
    """
    Context-managed frame source.

    Parameters
    ----------
    resolution:
        (width, height) of captured frames.
    fps:
        Requested frame rate.
    camera_index:
        OpenCV device index when picamera2 is unavailable.
    """

    def __init__(
        self,
        resolution: Tuple[int, int] = (640, 480),
        fps: int = 30,
        camera_index: int = 0,
    ) -> None:
        self.resolution = resolution
        self.fps = fps
        self.camera_index = camera_index

        self._cam = None
        self._use_picamera2 = _PICAMERA2_AVAILABLE

    @property
    def backend(self) -> str:
        return "picamera2" if self._use_picamera2 else "opencv"

    @property
    def is_open(self) -> bool:
        return self._cam is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """
        Start the camera.

        Raises
        ------
        RuntimeError
            If the capture device cannot be opened.
        """
        if self._use_picamera2:
            self._cam = self._open_picamera2()
        else:
            self._cam = self._open_opencv()
        logger.info(
            "Camera opened – backend=%s resolution=%s fps=%d",
            self.backend, self.resolution, self.fps,
        )

    def close(self) -> None:
        if self._cam is None:
            return
        if self._use_picamera2:
            self._cam.stop()
            self._cam.close()
        else:
            self._cam.release()
        self._cam = None
        logger.info("Camera closed.")

    def __enter__(self) -> "Camera":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Frame acquisition
    # ------------------------------------------------------------------

    def read_frame(self) -> np.ndarray | None:
        """Capture one BGR frame, or *None* if the read failed."""
        if self._cam is None:
            raise RuntimeError("Camera is not open.  Call open() first.")

        if self._use_picamera2:
            frame = self._cam.capture_array("main")
            if frame is None:
                return None
            if frame.ndim == 3 and frame.shape[2] == 4:
                frame = frame[:, :, :3]
            return cv2.cvtColor(frame, cv2.COLOR_RGB2BGR)

        ok, frame = self._cam.read()
        if not ok:
            logger.warning("VideoCapture.read() returned False.")
            return None
        return frame

    def frames(self) -> Generator[np.ndarray, None, None]:
        """Yield frames until the camera closes or reads keep failing."""
        empty = 0
        while self._cam is not None:
            frame = self.read_frame()
            if frame is None:
                empty += 1
                if empty >= MAX_EMPTY_READS:
                    logger.error(
                        "Camera returned %d consecutive empty frames – stopping.",
                        MAX_EMPTY_READS,
                    )
                    break
                continue
            empty = 0
            yield frame

    # ------------------------------------------------------------------
    # Backends
    # ------------------------------------------------------------------

    def _open_picamera2(self):
        cam = Picamera2()
        w, h = self.resolution
        config = cam.create_video_configuration(
            main={"size": (w, h), "format": "RGB888"},
            buffer_count=4,
        )
        cam.configure(config)
        frame_duration = int(1_000_000 / self.fps)   # microseconds
        try:
            cam.set_controls({"FrameDurationLimits": (frame_duration, frame_duration)})
        except Exception as exc:                         # noqa: BLE001
            logger.warning("Could not set FrameDurationLimits: %s", exc)
        cam.start()
        # Let auto-exposure settle
        for _ in range(8):
            cam.capture_array("main")
        return cam

    def _open_opencv(self):
        cap = cv2.VideoCapture(self.camera_index)
        if not cap.isOpened():
            raise RuntimeError(
                f"Cannot open video capture device index={self.camera_index}"
            )
        w, h = self.resolution
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
        cap.set(cv2.CAP_PROP_FPS, self.fps)
        return cap
