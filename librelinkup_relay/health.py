# -*- coding: utf-8 -*-

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from .timeutil import iso_dt


@dataclass
class HealthState:
    start_epoch: float = 0.0

    last_fetch_start: Optional[datetime] = None
    last_fetch_ok: Optional[datetime] = None
    last_fetch_fail: Optional[datetime] = None

    fetch_ok_count: int = 0
    fetch_err_count: int = 0
    last_error: str = ""

    last_fetch_duration_ms: Optional[int] = None

    last_cloud_ts: str = ""
    last_cloud_lag_s: Optional[float] = None

    next_delay_s: Optional[float] = None
    relogin_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uptime_s": int(time.time() - self.start_epoch) if self.start_epoch else 0,
            "fetch": {
                "ok": self.last_error == "",
                "last_start": iso_dt(self.last_fetch_start),
                "last_ok": iso_dt(self.last_fetch_ok),
                "last_fail": iso_dt(self.last_fetch_fail),
                "duration_ms": self.last_fetch_duration_ms,
                "ok_count": self.fetch_ok_count,
                "err_count": self.fetch_err_count,
                "last_error": self.last_error,
            },
            "cloud": {
                "ts": self.last_cloud_ts,
                "lag_s": self.last_cloud_lag_s,
            },
            "schedule": {
                "next_delay_s": self.next_delay_s,
            },
            "auth": {
                "relogin_count": self.relogin_count,
            },
        }
