# -*- coding: utf-8 -*-

import logging
from datetime import datetime
from typing import Callable, List, Optional

from .models import Reading
from .store import MeasurementLog
from .timeutil import local_date, now_ts


class MeasurementStoreManager:
    """
    Keeps the durable log restricted to today's readings (in ``tz``).

    Not crash-atomic: load, purge, append and write are separate steps.
    Only one writer may exist; the scheduler guarantees that.
    """

    def __init__(
        self,
        log_store: MeasurementLog,
        tz,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.log_store = log_store
        self.tz = tz
        self.clock = clock or (lambda: now_ts(tz))
        self.log = logger or logging.getLogger("librelinkup")

    def _today_only(self, readings: List[Reading]) -> List[Reading]:
        today = local_date(self.clock(), self.tz)
        kept = [r for r in readings if local_date(r.timestamp, self.tz) == today]
        dropped = len(readings) - len(kept)
        if dropped:
            self.log.info("[store] purged %d reading(s) from previous days", dropped)
        return kept

    def previous_reading(self, before: Optional[datetime] = None) -> Optional[Reading]:
        readings = self._today_only(self.log_store.load())
        if before is not None:
            readings = [r for r in readings if r.timestamp < before]
        return readings[-1] if readings else None

    def record_reading(self, reading: Reading) -> None:
        readings = self._today_only(self.log_store.load())
        if local_date(reading.timestamp, self.tz) != local_date(self.clock(), self.tz):
            self.log.info("[store] reading %s is not from today, not stored", reading.timestamp.isoformat())
        elif readings and readings[-1].timestamp == reading.timestamp:
            self.log.debug("[store] reading %s already stored", reading.timestamp.isoformat())
        else:
            readings.append(reading)
        self.log_store.save(readings)
