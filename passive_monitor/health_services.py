"""
Heart-rate services.

:class:`HeartRateService` is the seam the coordinator talks to: a capability
check plus register / unregister for background heart-rate updates.
Neither call is assumed to be idempotent; the coordinator issues exactly one
per flag change.

:class:`CameraHeartRateService` implements it with the camera pulse source.
A worker thread reads frames, estimates BPM and hands every reading to the
event loop with ``loop.call_soon_threadsafe``, where it is written to the
:class:`~passive_monitor.repository.PassiveDataRepository`.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable, Optional

import cv2
import numpy as np

from passive_monitor.camera import Camera
from passive_monitor.errors import CapabilityCheckError
from passive_monitor.pulse import FingerDetector, PulseEstimator
from passive_monitor.repository import PassiveDataRepository
from passive_monitor.state import has_reading

logger = logging.getLogger(__name__)


class HeartRateService:
    """Interface for a heart-rate capable sensor backend."""

    def has_heart_rate_capability(self) -> bool:
        raise NotImplementedError

    def register_for_heart_rate_data(self) -> None:
        raise NotImplementedError

    def unregister_for_heart_rate_data(self) -> None:
        raise NotImplementedError


class CameraHeartRateService(HeartRateService):
    """
    Passive heart-rate monitoring from a finger held on the camera lens.

    Parameters
    ----------
    repository:
        Receives each new reading via ``store_latest_heart_rate``.
    camera_factory:
        Zero-argument callable returning a context-managed camera
        (see :class:`~passive_monitor.camera.Camera`).
    fps:
        Frame rate the estimator assumes.
    window_seconds:
        Rolling analysis window of the estimator.
    publish_every:
        Publish an estimate every N analysed frames.  Defaults to ``fps``
        (about once per second).
    roi_fraction:
        Side of the centred square analysed, as a fraction of the shorter
        frame dimension.
    loop:
        Event loop receiving readings.  Defaults to the loop running when
        :meth:`register_for_heart_rate_data` is called.
    """

    join_timeout = 2.0

    def __init__(
        self,
        repository: PassiveDataRepository,
        camera_factory: Callable[[], Camera] = Camera,
        fps: float = 30.0,
        window_seconds: float = 12.0,
        publish_every: int | None = None,
        roi_fraction: float = 0.35,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.repository = repository
        self.camera_factory = camera_factory
        self.fps = fps
        self.window_seconds = window_seconds
        self.publish_every = publish_every if publish_every else max(1, int(fps))
        self.roi_fraction = roi_fraction

        self._loop = loop
        self._worker: Optional[threading.Thread] = None
        self._stopping: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._generation = 0

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    # ------------------------------------------------------------------
    # HeartRateService
    # ------------------------------------------------------------------

    def has_heart_rate_capability(self) -> bool:
        """
        Open the camera and read one frame.

        Raises
        ------
        CapabilityCheckError
            If the camera cannot be opened or read.
        """
        try:
            with self.camera_factory() as cam:
                frame = cam.read_frame()
        except (RuntimeError, OSError, cv2.error) as exc:
            raise CapabilityCheckError(f"Camera check failed: {exc}") from exc
        return frame is not None

    def register_for_heart_rate_data(self) -> None:
        if self.is_running:
            logger.warning("Pulse source already registered.")
            return
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        self._generation += 1
        self._stop_event = threading.Event()
        self._worker = threading.Thread(
            target=self._run,
            args=(self._stop_event, self._generation, self._stopping),
            name="pulse-source",
            daemon=True,
        )
        self._worker.start()
        logger.info("Registered for camera heart-rate data.")

    def unregister_for_heart_rate_data(self) -> None:
        """
        Signal the worker to stop and return without waiting for it.

        The worker releases the camera after its current frame; use
        :meth:`join` (off the event loop) to wait for that.
        """
        worker, self._worker = self._worker, None
        self._generation += 1
        if worker is None:
            logger.debug("Pulse source was not registered.")
            return
        self._stop_event.set()
        self._stopping = worker
        logger.info("Unregistered from camera heart-rate data.")

    def join(self, timeout: float | None = None) -> None:
        """
        Wait for the running worker, or the one last unregistered, to finish.

        Blocks; call it from a worker thread (``asyncio.to_thread``), not
        from the event loop.
        """
        worker = self._worker or self._stopping
        if worker is not None:
            worker.join(timeout)
            if worker.is_alive():
                logger.warning("Pulse source still running after %.1f s.", timeout or 0.0)

    # ------------------------------------------------------------------
    # Worker thread
    # ------------------------------------------------------------------

    def _run(
        self,
        stop: threading.Event,
        generation: int,
        previous: Optional[threading.Thread],
    ) -> None:
        if previous is not None:
            # The camera is free only once the previous worker has exited
            previous.join(self.join_timeout)
            if previous.is_alive():
                logger.warning("Previous pulse source still holds the camera.")
        estimator = PulseEstimator(fps=self.fps, window_seconds=self.window_seconds)
        detector = FingerDetector()
        analysed = 0
        try:
            with self.camera_factory() as cam:
                for frame in cam.frames():
                    if stop.is_set():
                        break
                    patch = self._roi(frame)
                    if not detector.is_finger(patch):
                        if analysed:
                            estimator.reset()
                            analysed = 0
                        continue

                    estimator.push_frame(patch)
                    analysed += 1
                    if analysed % self.publish_every:
                        continue
                    bpm, confidence = estimator.estimate()
                    if has_reading(bpm):
                        logger.debug("Pulse %.1f BPM (conf %.2f)", bpm, confidence)
                        self._loop.call_soon_threadsafe(self._deliver, generation, bpm)
        except (RuntimeError, OSError, cv2.error) as exc:
            logger.error("Pulse source stopped: %s", exc)

    def _deliver(self, generation: int, bpm: float) -> None:
        # Runs on the event loop
        if generation != self._generation:
            return
        self.repository.store_latest_heart_rate(bpm)

    def _roi(self, frame: np.ndarray) -> np.ndarray:
        h, w = frame.shape[:2]
        side = max(1, int(min(w, h) * self.roi_fraction))
        x0, y0 = (w - side) // 2, (h - side) // 2
        return frame[y0:y0 + side, x0:x0 + side]
