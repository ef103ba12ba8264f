"""
State coordinator for the passive heart-rate screen.

:class:`PassiveDataCoordinator` is the single owner of everything the screen
shows (capability support, monitoring flag, latest reading, recording
session) and the only caller of the recorder and of the repository
mutators.  All methods run on one asyncio event loop; the repository
streams and the recording deadline are its only asynchronous inputs.

Recording session state machine::

    Idle ──start_recording()──► Active ──stop_recording() / deadline──► Idle

A second start while Active is rejected.  The deadline is an
``asyncio.TimerHandle`` bound to the session it was armed for and cancelled
on every stop, so it can never stop a later session or fire twice.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from passive_monitor.errors import DeviceStartError, DeviceStopError
from passive_monitor.health_services import HeartRateService
from passive_monitor.observable import Subscription
from passive_monitor.recorder import AudioRecorder
from passive_monitor.repository import PassiveDataRepository
from passive_monitor.state import (
    NO_READING,
    CapabilitySupport,
    RecordingSession,
    ScreenState,
    StateHolder,
)

logger = logging.getLogger(__name__)

MAX_RECORDING_SECONDS = 120.0


class PassiveDataCoordinator:
    """
    Parameters
    ----------
    health_services:
        Capability check and register / unregister for heart-rate updates.
    repository:
        Persisted enabled flag and latest heart rate.
    recorder:
        Recording device with ``output_path_for``, ``start`` and ``stop``.
    max_recording_seconds:
        Recording deadline.  A session still active after this long is
        stopped exactly as if the user had pressed stop.
    clock:
        Returns the current time; used for session start times.
    """

    def __init__(
        self,
        health_services: HeartRateService,
        repository: PassiveDataRepository,
        recorder: AudioRecorder,
        max_recording_seconds: float = MAX_RECORDING_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if max_recording_seconds <= 0:
            raise ValueError("max_recording_seconds must be positive")
        self.health_services = health_services
        self.repository = repository
        self.recorder = recorder
        self.max_recording_seconds = max_recording_seconds
        self._clock = clock

        enabled = repository.passive_data_enabled
        self._state = StateHolder(ScreenState(
            heart_rate=repository.latest_heart_rate if enabled else NO_READING,
            monitoring_enabled=enabled,
        ))
        self._checked = False
        self._deadline: Optional[asyncio.TimerHandle] = None
        self._closed = False

        # Nothing is registered until initialize() has seen SUPPORTED.  A flag
        # left on by a previous run is re-registered there.
        self._registered = False
        self._subscriptions = [
            repository.subscribe_enabled(self._on_enabled),
            repository.subscribe_heart_rate(self._on_heart_rate),
        ]

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> ScreenState:
        return self._state.value

    @property
    def is_recording(self) -> bool:
        return self._state.value.is_recording

    @property
    def deadline_armed(self) -> bool:
        return self._deadline is not None

    def subscribe(self, observer: Callable[[ScreenState], None]) -> Subscription:
        return self._state.subscribe(observer)

    # ------------------------------------------------------------------
    # Capability
    # ------------------------------------------------------------------

    async def initialize(self) -> CapabilitySupport:
        """
        Check heart-rate capability once.

        The check runs in the default executor.  Any failure is reported as
        :attr:`CapabilitySupport.UNSUPPORTED`, which also switches monitoring
        off for this session (the persisted flag is left alone).  When
        SUPPORTED and monitoring is on, heart-rate updates are registered.
        """
        if self._checked:
            return self.state.capability
        self._checked = True

        loop = asyncio.get_running_loop()
        try:
            supported = await loop.run_in_executor(
                None, self.health_services.has_heart_rate_capability,
            )
        except Exception as exc:                        # noqa: BLE001
            logger.warning("Capability check failed, treating as unsupported: %s", exc)
            supported = False

        capability = (
            CapabilitySupport.SUPPORTED if supported else CapabilitySupport.UNSUPPORTED
        )
        logger.info("Heart-rate capability: %s", capability.value)
        if capability is CapabilitySupport.SUPPORTED:
            self._state.update(capability=capability)
            if self.state.monitoring_enabled:
                self._register()
        else:
            self._state.update(
                capability=capability, monitoring_enabled=False, heart_rate=NO_READING,
            )
            self._unregister()
        return capability

    # ------------------------------------------------------------------
    # Passive monitoring
    # ------------------------------------------------------------------

    def set_monitoring_enabled(self, enabled: bool) -> bool:
        """
        Persist the monitoring flag.

        Returns *False* if enabling was refused because heart rate is not
        supported on this device.
        """
        if enabled and self.state.capability is CapabilitySupport.UNSUPPORTED:
            logger.warning("Heart rate not supported; not enabling monitoring.")
            return False
        self.repository.set_passive_data_enabled(enabled)
        if not enabled:
            # Disabled: wipe the last value
            self.repository.store_latest_heart_rate(NO_READING)
        return True

    def toggle_monitoring(self) -> bool:
        return self.set_monitoring_enabled(not self.state.monitoring_enabled)

    def _on_enabled(self, enabled: bool) -> None:
        if enabled == self.state.monitoring_enabled:
            return
        self._state.update(monitoring_enabled=enabled)
        if enabled:
            # Before the check answers, initialize() registers instead
            if self.state.capability is CapabilitySupport.SUPPORTED:
                self._register()
        else:
            self._unregister()
            self._state.update(heart_rate=NO_READING)

    def _on_heart_rate(self, bpm: float) -> None:
        if not self.state.monitoring_enabled:
            bpm = NO_READING
        self._state.update(heart_rate=bpm)

    def _register(self) -> None:
        if self._registered:
            return
        self._registered = True
        self.health_services.register_for_heart_rate_data()

    def _unregister(self) -> None:
        if not self._registered:
            return
        self._registered = False
        self.health_services.unregister_for_heart_rate_data()

    # ------------------------------------------------------------------
    # Manual recording
    # ------------------------------------------------------------------

    def start_recording(self) -> bool:
        """
        Start a recording session and arm the deadline.

        Returns *False* if a session is already active or the recorder could
        not start; in the latter case no session exists afterwards.
        """
        if self.is_recording:
            logger.debug("start_recording ignored: already recording.")
            return False

        loop = asyncio.get_running_loop()
        started_at = self._clock()
        output_path = self.recorder.output_path_for(started_at)
        try:
            self.recorder.start(output_path)
        except DeviceStartError as exc:
            logger.warning("Recording not started: %s", exc)
            return False

        session = RecordingSession(started_at=started_at, output_path=output_path)
        self._deadline = loop.call_later(
            self.max_recording_seconds, self._on_deadline, session,
        )
        self._state.update(recording=session)
        logger.info(
            "Recording started – %s (max %.0f s)", output_path, self.max_recording_seconds,
        )
        return True

    def stop_recording(self) -> bool:
        """Stop the active session.  Returns *False* if there was none."""
        return self._stop("user")

    def _on_deadline(self, session: RecordingSession) -> None:
        self._deadline = None
        if self.state.recording is not session:
            return
        logger.info("Recording reached %.0f s limit.", self.max_recording_seconds)
        self._stop("deadline")

    def _stop(self, reason: str) -> bool:
        session = self.state.recording
        if session is None:
            logger.debug("stop_recording ignored: not recording.")
            return False

        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None
        try:
            self.recorder.stop()
        except DeviceStopError as exc:
            logger.warning("Recorder did not stop cleanly: %s", exc)
        finally:
            self._state.update(recording=None)
        logger.info("Recording stopped (%s) – %s", reason, session.output_path)
        return True

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Cancel the deadline, stop recording and drop all subscriptions."""
        if self._closed:
            return
        self._closed = True
        self._stop("shutdown")
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []
        self._unregister()
        self._state.clear_observers()
