from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List
from zoneinfo import ZoneInfo

import pytest

from librelinkup_relay.auth import StaticCredentialProvider
from librelinkup_relay.client import LibreLinkUpClient
from librelinkup_relay.health import HealthState
from librelinkup_relay.measurements import MeasurementStoreManager
from librelinkup_relay.models import Reading, Session
from librelinkup_relay.scheduler import (
    FetchCycle,
    PollScheduler,
    ScheduleConfig,
    State,
    compute_next_delay,
)
from librelinkup_relay.snapshot import SnapshotHolder
from librelinkup_relay.store import MeasurementLog, SessionStore

from .conftest import NOW, FakeHttp, connections_payload, graph_payload, login_ok

CFG = ScheduleConfig(interval_s=60, offset_s=3, min_delay_s=1, fallback_delay_s=30, retry_delay_s=60)


# -----------------------------
# Delay computation
# -----------------------------

def test_delay_anchored_on_reading_timestamp() -> None:
    now = datetime(2025, 1, 5, 12, 0, 0, tzinfo=timezone.utc)
    assert compute_next_delay(now - timedelta(seconds=20), now, CFG) == pytest.approx(43.0)


def test_delay_with_recent_reading_stays_positive() -> None:
    now = datetime(2025, 1, 5, 12, 0, 0, tzinfo=timezone.utc)
    assert compute_next_delay(now - timedelta(seconds=58), now, CFG) == pytest.approx(5.0)


def test_missed_target_clamps_to_fallback() -> None:
    now = datetime(2025, 1, 5, 12, 0, 0, tzinfo=timezone.utc)
    tight = ScheduleConfig(interval_s=50, offset_s=3, min_delay_s=1, fallback_delay_s=30)

    assert compute_next_delay(now - timedelta(seconds=58), now, tight) == 30
    assert compute_next_delay(now - timedelta(minutes=10), now, CFG) == 30
    # inside the safety floor also counts as missed
    assert compute_next_delay(now - timedelta(seconds=62.5), now, CFG) == 30


# -----------------------------
# Cycle + scheduler
# -----------------------------

class Env:
    def __init__(self, tmp_path: Path, http: FakeHttp, tz: ZoneInfo) -> None:
        self.http = http
        self.client = LibreLinkUpClient(session=http)
        self.session_store = SessionStore(tmp_path)
        self.log = MeasurementLog(tmp_path)
        self.snapshots = SnapshotHolder()
        self.health = HealthState()
        self.prompts = 0

        def _creds():
            self.prompts += 1
            return StaticCredentialProvider("a@b.c", "pw")()

        self.cycle = FetchCycle(
            client=self.client,
            session_store=self.session_store,
            measurements=MeasurementStoreManager(self.log, tz, clock=lambda: NOW),
            snapshots=self.snapshots,
            credentials=_creds,
            tz=tz,
            health=self.health,
            clock=lambda: NOW,
        )
        self.scheduler = PollScheduler(self.cycle, CFG)


@pytest.fixture
def env(tmp_path: Path, http: FakeHttp, tz: ZoneInfo) -> Env:
    return Env(tmp_path, http, tz)


def test_first_cycle_logs_in_resolves_and_publishes(env: Env) -> None:
    env.http.add(login_ok()).add(connections_payload()).add(graph_payload(ts="1/5/2025 10:34:30 PM", value=126))

    delay = env.scheduler.trigger()

    # reading at 22:34:30, now 22:35:00 -> 22:35:33
    assert delay == pytest.approx(33.0)
    assert env.scheduler.state is State.IDLE
    assert env.prompts == 1
    snap = env.snapshots.current
    assert snap.patient_info["patientId"] == "patient-1"
    assert snap.sensor_info["deviceModelName"] == "Freestyle Libre 3"
    assert snap.mgdl_view["value"] == 126
    assert snap.mmol_view["value"] == 7.0
    assert snap.mgdl_view["sinceLastTrend"] is None
    assert len(env.log.load()) == 1
    assert env.health.fetch_ok_count == 1


def test_second_cycle_uses_cache_and_since_last_trend(env: Env, session: Session) -> None:
    env.session_store.save_session(session)
    env.http.add(connections_payload())
    env.http.add(graph_payload(ts="1/5/2025 10:30:00 PM", value=120))
    env.http.add(graph_payload(ts="1/5/2025 10:31:00 PM", value=128))

    env.scheduler.trigger()
    env.scheduler.trigger()

    assert env.prompts == 0
    urls = [c.url for c in env.http.calls]
    assert urls[0] == "https://api-de.libreview.io/llu/connections"
    assert sum(u.endswith("/llu/connections") for u in urls) == 1
    assert env.snapshots.current.mgdl_view["sinceLastTrend"] == {"code": 5, "glyph": "⬆️"}
    assert [r.value_mgdl for r in env.log.load()] == [120, 128]


def test_no_reading_uses_retry_delay_and_keeps_profile(env: Env, session: Session) -> None:
    env.session_store.save_session(session)
    env.http.add(connections_payload()).add({"status": 0, "data": {"connection": {}}})

    assert env.scheduler.trigger() == CFG.retry_delay_s
    assert env.snapshots.current.patient_info is not None
    assert env.snapshots.current.mgdl_view is None


def test_no_connections_is_soft_failure(env: Env, session: Session) -> None:
    env.session_store.save_session(session)
    env.http.add({"status": 0, "data": []})

    assert env.scheduler.trigger() == CFG.retry_delay_s
    assert env.session_store.load_session() == session
    assert env.health.fetch_err_count == 1


def test_upstream_failure_uses_retry_delay(env: Env, session: Session) -> None:
    env.session_store.save_session(session)
    env.http.add(connections_payload()).add({}, status_code=502)

    assert env.scheduler.trigger() == CFG.retry_delay_s
    assert "HTTP 502" in env.health.last_error
    assert env.scheduler.state is State.IDLE


def test_auth_error_clears_session(env: Env, session: Session) -> None:
    env.session_store.save_session(session)
    env.http.add(connections_payload()).add({"message": "expired"}, status_code=401)

    assert env.scheduler.trigger() == CFG.retry_delay_s
    assert env.session_store.load_session() is None
    assert env.session_store.load_subject() is None
    assert env.health.relogin_count == 1

    env.http.add(login_ok()).add(connections_payload()).add(graph_payload())
    env.scheduler.trigger()
    assert env.prompts == 1


def test_unexpected_exception_is_contained(env: Env) -> None:
    def _boom():
        raise KeyError("surprise")

    env.cycle.run = _boom
    assert env.scheduler.trigger() == CFG.retry_delay_s
    assert env.scheduler.state is State.IDLE


def test_cycles_never_overlap(env: Env) -> None:
    env.scheduler.state = State.RUNNING
    with pytest.raises(RuntimeError):
        env.scheduler.trigger()


def test_after_cycle_hook_sees_delay(env: Env) -> None:
    seen: List[float] = []
    env.scheduler.after_cycle.append(lambda h: seen.append(h.next_delay_s))
    env.cycle.run = lambda: None

    env.scheduler.trigger()

    assert seen == [CFG.retry_delay_s]


def test_run_forever_stops(env: Env) -> None:
    calls: List[int] = []

    def _run():
        calls.append(1)
        env.scheduler.stop()
        return Reading(NOW, 100, 3)

    env.cycle.run = _run
    env.scheduler.run_forever()

    assert calls == [1]


def test_repeated_sample_is_stored_once_and_keeps_trend(env: Env, session: Session) -> None:
    env.session_store.save_session(session)
    env.http.add(connections_payload())
    env.http.add(graph_payload(ts="1/5/2025 10:30:00 PM", value=120))
    env.http.add(graph_payload(ts="1/5/2025 10:31:00 PM", value=128))
    env.http.add(graph_payload(ts="1/5/2025 10:31:00 PM", value=128))

    env.scheduler.trigger()
    env.scheduler.trigger()
    delay = env.scheduler.trigger()

    # compared against 22:30, not against itself
    assert env.snapshots.current.mgdl_view["sinceLastTrend"] == {"code": 5, "glyph": "⬆️"}
    assert [r.value_mgdl for r in env.log.load()] == [120, 128]
    # 22:31 + 63 s is already past at 22:35
    assert delay == CFG.fallback_delay_s
