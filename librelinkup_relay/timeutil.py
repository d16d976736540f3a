# -*- coding: utf-8 -*-

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import StartupFatalError

LIBREVIEW_TS_FORMAT = "%m/%d/%Y %I:%M:%S %p"


def load_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as ex:
        raise StartupFatalError(f"unknown time zone {name!r}") from ex


def now_ts(tz) -> datetime:
    return datetime.now(tz)


def iso_utc(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def iso_dt(dt: Optional[datetime]) -> str:
    return dt.isoformat() if dt else ""


def parse_iso(s: str) -> datetime:
    # fromisoformat() only learned "Z" in 3.11
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        raise ValueError(f"timestamp without offset: {s!r}")
    return dt


def parse_libreview_ts(ts: str, tz) -> Optional[datetime]:
    """
    Parse the LibreView wall-clock stamp, e.g. "1/9/2026 10:41:01 AM".

    The cloud sends the follower's local time without offset; the result is
    pinned to ``tz``. 12 AM maps to hour 0 and 12 PM to hour 12 (%I/%p).
    """
    if not ts:
        return None
    try:
        dt = datetime.strptime(ts.strip(), LIBREVIEW_TS_FORMAT)
    except ValueError:
        return None
    return dt.replace(tzinfo=tz)


def local_date(dt: datetime, tz) -> date:
    return dt.astimezone(tz).date()
