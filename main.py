#!/usr/bin/env python3
"""
Passive Monitor – main entry point.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --data-file PATH        Persisted monitoring state (default: passive_data.json)
    --recordings-dir PATH   Where manual recordings go (default: recordings)
    --max-duration FLOAT    Recording limit in seconds (default: 120)
    --resolution WxH        Camera resolution (default: 640x480)
    --fps INT               Camera frame rate (default: 30)
    --window FLOAT          Pulse analysis window in seconds (default: 12)
    --camera-index INT      OpenCV camera index (fallback, default: 0)
    --enable / --disable    Set passive monitoring before the screen starts
    --record                Start one manual recording at launch
    --headless              No window; log state changes to stdout
    --verbose               Debug logging

Keyboard shortcuts (when a window is open)
------------------------------------------
    h        – toggle passive heart-rate monitoring
    r        – start / stop a manual recording
    q / ESC  – quit
"""

from __future__ import annotations

import argparse
import asyncio
import functools
import logging
import sys
from datetime import datetime

# Must be set before cv2 is imported so Qt5 uses X11/XWayland instead of
# looking for a Wayland plugin that is not bundled with pip-installed opencv.
import os
os.environ.setdefault("QT_QPA_PLATFORM", "xcb")

import cv2

from passive_monitor.camera import Camera
from passive_monitor.config import MonitorConfig
from passive_monitor.coordinator import PassiveDataCoordinator
from passive_monitor.haptics import HapticFeedback, LogHaptics
from passive_monitor.health_services import CameraHeartRateService
from passive_monitor.recorder import AudioRecorder
from passive_monitor.repository import PassiveDataRepository
from passive_monitor.screen import Screen, status_lines
from passive_monitor.state import ScreenState

logger = logging.getLogger("passive_monitor")

FRAME_INTERVAL = 1.0 / 30


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    defaults = MonitorConfig()
    parser = argparse.ArgumentParser(
        description="Passive heart-rate screen with manual audio recording",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--data-file", default=str(defaults.data_file),
                        help="JSON file for the persisted monitoring state ('' = memory only)")
    parser.add_argument("--recordings-dir", default=str(defaults.recordings_dir),
                        help="Directory for manual recordings")
    parser.add_argument("--max-duration", type=float,
                        default=defaults.max_recording_seconds,
                        help="Maximum recording length in seconds")
    parser.add_argument("--sample-rate", type=int, default=defaults.sample_rate,
                        help="Audio sample rate in Hz")
    parser.add_argument("--channels", type=int, default=defaults.channels,
                        help="Audio input channels")
    parser.add_argument("--resolution", default="%dx%d" % defaults.resolution,
                        help="Camera resolution, e.g. 640x480")
    parser.add_argument("--fps", type=int, default=defaults.fps,
                        help="Camera frame rate")
    parser.add_argument("--window", type=float, default=defaults.window_seconds,
                        help="Pulse analysis window in seconds")
    parser.add_argument("--camera-index", type=int, default=defaults.camera_index,
                        help="OpenCV VideoCapture index (fallback)")
    monitoring = parser.add_mutually_exclusive_group()
    monitoring.add_argument("--enable", dest="monitoring", action="store_const",
                            const=True, default=None,
                            help="Turn passive monitoring on at start")
    monitoring.add_argument("--disable", dest="monitoring", action="store_const",
                            const=False, help="Turn passive monitoring off at start")
    parser.add_argument("--record", action="store_true",
                        help="Start a manual recording at launch")
    parser.add_argument("--headless", action="store_true",
                        help="No display window; log state changes only")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def build(config: MonitorConfig) -> PassiveDataCoordinator:
    repository = PassiveDataRepository(config.data_file)
    camera_factory = functools.partial(
        Camera,
        resolution=config.resolution,
        fps=config.fps,
        camera_index=config.camera_index,
    )
    health_services = CameraHeartRateService(
        repository,
        camera_factory=camera_factory,
        fps=float(config.fps),
        window_seconds=config.window_seconds,
    )
    recorder = AudioRecorder(
        config.recordings_dir,
        sample_rate=config.sample_rate,
        channels=config.channels,
    )
    return PassiveDataCoordinator(
        health_services,
        repository,
        recorder,
        max_recording_seconds=config.max_recording_seconds,
    )


async def _run_headless(coordinator: PassiveDataCoordinator, args: argparse.Namespace) -> None:
    feedback = HapticFeedback(LogHaptics(bell=True), coordinator.state)

    def log_state(state: ScreenState) -> None:
        ts = datetime.now().strftime("%H:%M:%S")
        lines = status_lines(state, datetime.now(), coordinator.max_recording_seconds)
        print(f"[{ts}] " + " | ".join(lines))

    subscriptions = [
        coordinator.subscribe(feedback.on_state),
        coordinator.subscribe(log_state),
    ]
    try:
        if args.record:
            if coordinator.recorder.has_input_device():
                coordinator.start_recording()
            else:
                logger.warning("No input device; --record ignored.")
        log_state(coordinator.state)
        while True:
            await asyncio.sleep(3600)
    finally:
        # Close while still subscribed so an open recording ends with its pulse
        coordinator.close()
        for subscription in subscriptions:
            subscription.cancel()


async def _run_window(coordinator: PassiveDataCoordinator, args: argparse.Namespace) -> None:
    screen = Screen(
        coordinator,
        LogHaptics(bell=True),
        request_permission=coordinator.recorder.has_input_device,
    )
    cv2.namedWindow(Screen.WINDOW, cv2.WINDOW_AUTOSIZE)
    try:
        if args.record:
            screen.on_record_button()
        while True:
            cv2.imshow(Screen.WINDOW, screen.render())
            key = cv2.waitKey(1) & 0xFF
            if not screen.handle_key(key):
                logger.info("Quit requested by user.")
                break
            await asyncio.sleep(FRAME_INTERVAL)
    finally:
        coordinator.close()
        screen.close()
        cv2.destroyAllWindows()


async def _main(config: MonitorConfig, args: argparse.Namespace) -> None:
    coordinator = build(config)
    try:
        await coordinator.initialize()
        if args.monitoring is not None:
            coordinator.set_monitoring_enabled(args.monitoring)
        if args.headless:
            await _run_headless(coordinator, args)
        else:
            await _run_window(coordinator, args)
    finally:
        coordinator.close()
        # Let the pulse worker release the camera before the loop goes away
        await asyncio.to_thread(
            coordinator.health_services.join, CameraHeartRateService.join_timeout,
        )


def run(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
        datefmt="%H:%M:%S",
    )
    try:
        config = MonitorConfig.from_args(args)
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    logger.info("Starting passive monitor.  Recordings go to %s", config.recordings_dir)
    try:
        asyncio.run(_main(config, args))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    return 0


def main() -> int:
    return run(parse_args())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
