"""
Runtime configuration.

:class:`MonitorConfig` carries every tunable with its default.  ``main.py``
exposes each field as a command-line option and builds the config with
:meth:`MonitorConfig.from_args`.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple


@dataclass
class MonitorConfig:
    # Persistence / output
    data_file: Optional[Path] = Path("passive_data.json")
    recordings_dir: Path = Path("recordings")

    # Manual recording
    max_recording_seconds: float = 120.0
    sample_rate: int = 44100
    channels: int = 1

    # Camera pulse source
    resolution: Tuple[int, int] = (640, 480)
    fps: int = 30
    window_seconds: float = 12.0
    camera_index: int = 0

    def validate(self) -> None:
        """Raise :class:`ValueError` on an unusable setting."""
        if self.max_recording_seconds <= 0:
            raise ValueError("max recording duration must be positive")
        if self.sample_rate <= 0 or self.channels <= 0:
            raise ValueError("sample rate and channel count must be positive")
        if self.fps <= 0 or self.window_seconds <= 0:
            raise ValueError("fps and analysis window must be positive")
        if min(self.resolution) <= 0:
            raise ValueError(f"invalid resolution {self.resolution}")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "MonitorConfig":
        config = cls(
            data_file=Path(args.data_file) if args.data_file else None,
            recordings_dir=Path(args.recordings_dir),
            max_recording_seconds=args.max_duration,
            sample_rate=args.sample_rate,
            channels=args.channels,
            resolution=parse_resolution(args.resolution),
            fps=args.fps,
            window_seconds=args.window,
            camera_index=args.camera_index,
        )
        config.validate()
        return config


def parse_resolution(text: str) -> Tuple[int, int]:
    """Parse ``"WxH"`` into ``(W, H)``."""
    try:
        width, height = (int(v) for v in text.lower().split("x"))
    except ValueError:
        raise ValueError(f"invalid resolution {text!r}, use WxH e.g. 640x480") from None
    return width, height
