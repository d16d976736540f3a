# -*- coding: utf-8 -*-

import logging
from typing import Optional

from .client import LibreLinkUpClient
from .errors import UpstreamError, UpstreamStatusError
from .models import Reading, Session
from .timeutil import parse_libreview_ts


def fetch_latest(
    client: LibreLinkUpClient,
    session: Session,
    subject_id: str,
    tz,
    logger: Optional[logging.Logger] = None,
) -> Optional[Reading]:
    """Latest glucoseMeasurement from /graph, or None if the cloud has none yet."""
    log = logger or logging.getLogger("librelinkup")

    raw = client.get_graph(subject_id, session.token, session.account_id)
    if raw.get("status") != 0:
        raise UpstreamStatusError(raw.get("status"), "graph")

    conn = ((raw.get("data") or {}).get("connection") or {})
    gm = conn.get("glucoseMeasurement")
    if not gm:
        log.warning("[fetch] no latest measurement from server")
        return None

    ts_str = gm.get("Timestamp") or ""
    ts = parse_libreview_ts(ts_str, tz)
    if ts is None:
        raise UpstreamError(f"unparseable measurement timestamp {ts_str!r}")

    try:
        value = int(gm["ValueInMgPerDl"])
        trend = int(gm.get("TrendArrow") or 0)
    except (KeyError, TypeError, ValueError) as ex:
        raise UpstreamError(f"malformed glucoseMeasurement: {ex}") from ex

    color = gm.get("MeasurementColor")
    return Reading(
        timestamp=ts,
        value_mgdl=value,
        trend_arrow=trend,
        color_code=int(color) if isinstance(color, (int, float)) else None,
    )
