"""
Persisted passive-monitoring data.

Stores two values in a small JSON document:

  • ``passive_data_enabled`` – whether the user switched passive heart-rate
    monitoring on.  Survives restarts so monitoring can be re-registered.
  • ``latest_heart_rate`` – the most recent reading, or NaN when there is
    none.

Every write is published to the matching observable, including writes that
do not change the value.  Consumers that must react only to *changes*
(register / unregister) are responsible for de-duplicating.
"""

from __future__ import annotations

import json
import logging
import math
import os
from pathlib import Path
from typing import Callable

from passive_monitor.observable import Observable, Subscription
from passive_monitor.state import NO_READING

logger = logging.getLogger(__name__)

_ENABLED_KEY = "passive_data_enabled"
_HEART_RATE_KEY = "latest_heart_rate"


class PassiveDataRepository:
    """
    JSON-file backed store for the enabled flag and latest heart rate.

    Parameters
    ----------
    path:
        Location of the JSON document.  ``None`` keeps everything in memory
        (used by tests and ``--data-file ''``).
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path) if path else None
        self._enabled = False
        self._heart_rate = NO_READING
        self._enabled_changes: Observable[bool] = Observable()
        self._heart_rate_changes: Observable[float] = Observable()
        self._load()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def passive_data_enabled(self) -> bool:
        return self._enabled

    @property
    def latest_heart_rate(self) -> float:
        return self._heart_rate

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_passive_data_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)
        self._save()
        self._enabled_changes.publish(self._enabled)

    def store_latest_heart_rate(self, bpm: float) -> None:
        self._heart_rate = float(bpm)
        self._save()
        self._heart_rate_changes.publish(self._heart_rate)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe_enabled(self, observer: Callable[[bool], None]) -> Subscription:
        return self._enabled_changes.subscribe(observer)

    def subscribe_heart_rate(self, observer: Callable[[float], None]) -> Subscription:
        return self._heart_rate_changes.subscribe(observer)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            enabled = data.get(_ENABLED_KEY, False)
            heart_rate = float(data.get(_HEART_RATE_KEY, NO_READING))
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            logger.warning("Ignoring unreadable data file %s: %s", self.path, exc)
            return
        self._enabled = enabled is True
        self._heart_rate = heart_rate if math.isfinite(heart_rate) else NO_READING
        logger.info(
            "Loaded passive data from %s – enabled=%s heart_rate=%s",
            self.path, self._enabled, self._heart_rate,
        )

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        payload = {_ENABLED_KEY: self._enabled, _HEART_RATE_KEY: self._heart_rate}
        tmp.write_text(json.dumps(payload), encoding="utf-8")
        os.replace(tmp, self.path)
