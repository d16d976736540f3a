# -*- coding: utf-8 -*-

import enum
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from .auth import (
    DEFAULT_MAX_CONTINUATIONS,
    DEFAULT_MAX_REDIRECTS,
    CredentialProvider,
    establish_session,
)
from .client import LibreLinkUpClient
from .errors import AuthError, NoDataError, RelayError
from .fetcher import fetch_latest
from .health import HealthState
from .measurements import MeasurementStoreManager
from .models import Reading, Session, SubjectProfile
from .resolver import resolve_subject
from .snapshot import PublishedSnapshot, SnapshotHolder, build_snapshot
from .store import SessionStore
from .timeutil import now_ts
from .trend import SINCE_LAST_WINDOW, since_last_trend


@dataclass(frozen=True)
class ScheduleConfig:
    interval_s: float = 60.0        # upstream sampling period
    offset_s: float = 3.0           # publication jitter allowance
    min_delay_s: float = 1.0        # below this the target counts as missed
    fallback_delay_s: float = 30.0  # used when the target was missed
    retry_delay_s: float = 60.0     # used after failures / no reading


def compute_next_delay(last_ts: datetime, now: datetime, cfg: ScheduleConfig = ScheduleConfig()) -> float:
    """
    Seconds until the next poll, anchored on the last reading's own timestamp.

    target = last_ts + interval + offset. If that is (nearly) in the past the
    fallback delay is used so a stalled sensor never turns into a busy loop.
    """
    target = last_ts + timedelta(seconds=cfg.interval_s + cfg.offset_s)
    delay = (target - now).total_seconds()
    if delay < cfg.min_delay_s:
        return cfg.fallback_delay_s
    return delay


# -----------------------------
# One fetch cycle
# -----------------------------

class FetchCycle:
    """Session -> subject -> latest reading -> log -> snapshot."""

    def __init__(
        self,
        client: LibreLinkUpClient,
        session_store: SessionStore,
        measurements: MeasurementStoreManager,
        snapshots: SnapshotHolder,
        credentials: CredentialProvider,
        tz,
        health: Optional[HealthState] = None,
        since_last_window: timedelta = SINCE_LAST_WINDOW,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        max_continuations: int = DEFAULT_MAX_CONTINUATIONS,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.client = client
        self.session_store = session_store
        self.measurements = measurements
        self.snapshots = snapshots
        self.credentials = credentials
        self.tz = tz
        self.health = health or HealthState(start_epoch=time.time())
        self.since_last_window = since_last_window
        self.max_redirects = max_redirects
        self.max_continuations = max_continuations
        self.clock = clock or (lambda: now_ts(tz))
        self.log = logger or logging.getLogger("librelinkup")
        self.listeners: List[Callable[[PublishedSnapshot], None]] = []

    def ensure_session(self) -> Session:
        session = self.session_store.load_session()
        if session is not None:
            self.log.debug("[auth] using cached token")
            # region is sticky across restarts
            self.client.api_base = session.api_base
            return session

        self.log.info("[auth] no valid token => asking for credentials")
        creds = self.credentials()
        return establish_session(
            self.client,
            creds.email,
            creds.password,
            store=self.session_store,
            max_redirects=self.max_redirects,
            max_continuations=self.max_continuations,
            logger=self.log,
        )

    def ensure_subject(self, session: Session) -> SubjectProfile:
        profile = self.session_store.load_subject()
        if profile is not None:
            self.log.debug("[resolve] using cached patientId %s", profile.subject_id)
            return profile
        return resolve_subject(self.client, session, store=self.session_store, logger=self.log)

    def invalidate_session(self) -> None:
        self.session_store.clear_session()
        self.health.relogin_count += 1

    def _publish(self, snapshot: PublishedSnapshot) -> None:
        self.snapshots.publish(snapshot)
        for listener in self.listeners:
            try:
                listener(snapshot)
            except Exception as ex:
                self.log.warning("[publish] listener failed: %s", ex)

    def run(self) -> Optional[Reading]:
        session = self.ensure_session()
        profile = self.ensure_subject(session)

        reading = fetch_latest(self.client, session, profile.subject_id, self.tz, logger=self.log)
        if reading is None:
            self._publish(build_snapshot(self.snapshots.current, profile, self.tz))
            return None

        previous = self.measurements.previous_reading(before=reading.timestamp)
        trend = since_last_trend(previous, reading, self.since_last_window)
        if previous is not None:
            gap_min = (reading.timestamp - previous.timestamp).total_seconds() / 60
            self.log.debug("[trend] %.1f min since last stored reading, since-last=%s", gap_min, trend)

        self.measurements.record_reading(reading)

        self.health.last_cloud_ts = reading.timestamp.isoformat()
        self.health.last_cloud_lag_s = (self.clock() - reading.timestamp).total_seconds()

        self._publish(build_snapshot(self.snapshots.current, profile, self.tz, reading, trend))
        self.log.info(
            "[fetch] %s mg/dL (%.1f mmol/L) trend=%s at %s",
            reading.value_mgdl,
            self.snapshots.current.mmol_view["value"],
            reading.trend_arrow,
            reading.timestamp.isoformat(),
        )
        return reading


# -----------------------------
# Scheduler
# -----------------------------

class State(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


class PollScheduler:
    """
    Runs one FetchCycle at a time and arms the next one from its outcome.

    Every cycle-level error ends in the retry delay; only KeyboardInterrupt
    (and non-Exception signals) escape.
    """

    def __init__(
        self,
        cycle: FetchCycle,
        config: ScheduleConfig = ScheduleConfig(),
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.cycle = cycle
        self.config = config
        self.clock = clock or cycle.clock
        self.log = logger or logging.getLogger("librelinkup")
        self.state = State.IDLE
        self._stop = threading.Event()
        self.after_cycle: List[Callable[[HealthState], None]] = []

    def trigger(self) -> float:
        """Run one cycle (IDLE -> RUNNING -> IDLE) and return the next delay."""
        if self.state is State.RUNNING:
            raise RuntimeError("a fetch cycle is already running")
        self.state = State.RUNNING

        health = self.cycle.health
        health.last_fetch_start = self.clock()
        t0 = time.monotonic()
        try:
            reading = self.cycle.run()
        except AuthError as ex:
            self.log.error("[sched] auth failed: %s", ex)
            self.cycle.invalidate_session()
            delay = self._failed(ex)
        except NoDataError as ex:
            self.log.warning("[sched] no data: %s", ex)
            delay = self._failed(ex)
        except RelayError as ex:
            self.log.error("[sched] cycle failed: %s", ex)
            delay = self._failed(ex)
        except Exception as ex:
            self.log.exception("[sched] unexpected error in cycle: %s", ex)
            delay = self._failed(ex)
        else:
            health.last_fetch_ok = self.clock()
            health.fetch_ok_count += 1
            health.last_error = ""
            if reading is None:
                self.log.warning("[sched] no reading => retry in %ss", self.config.retry_delay_s)
                delay = self.config.retry_delay_s
            else:
                delay = compute_next_delay(reading.timestamp, self.clock(), self.config)
        finally:
            health.last_fetch_duration_ms = int((time.monotonic() - t0) * 1000)
            self.state = State.IDLE

        health.next_delay_s = delay
        self.log.info("[sched] next fetch in %.1fs", delay)
        for hook in self.after_cycle:
            try:
                hook(health)
            except Exception as ex:
                self.log.warning("[sched] after-cycle hook failed: %s", ex)
        return delay

    def _failed(self, ex: BaseException) -> float:
        health = self.cycle.health
        health.last_fetch_fail = self.clock()
        health.fetch_err_count += 1
        health.last_error = str(ex)[:300]
        return self.config.retry_delay_s

    def run_forever(self) -> None:
        self.log.info(
            "[sched] interval=%ss offset=%ss fallback=%ss retry=%ss",
            self.config.interval_s,
            self.config.offset_s,
            self.config.fallback_delay_s,
            self.config.retry_delay_s,
        )
        while not self._stop.is_set():
            delay = self.trigger()
            self._stop.wait(delay)

    def stop(self) -> None:
        self._stop.set()
