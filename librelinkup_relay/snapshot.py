# -*- coding: utf-8 -*-
"""
Published view of the last cycle.

A PublishedSnapshot is frozen and the holder only ever swaps the reference,
so the HTTP thread always sees one consistent cycle without locking.
"""

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from .models import Reading, SubjectProfile
from .timeutil import iso_utc
from .trend import arrow_glyph, color_name, device_model_name, to_mmol


@dataclass(frozen=True)
class PublishedSnapshot:
    patient_info: Optional[Mapping[str, Any]] = None
    sensor_info: Optional[Mapping[str, Any]] = None
    mgdl_view: Optional[Mapping[str, Any]] = None
    mmol_view: Optional[Mapping[str, Any]] = None


EMPTY_SNAPSHOT = PublishedSnapshot()


class SnapshotHolder:
    def __init__(self, initial: PublishedSnapshot = EMPTY_SNAPSHOT):
        self._current = initial

    @property
    def current(self) -> PublishedSnapshot:
        return self._current

    def publish(self, snapshot: PublishedSnapshot) -> None:
        self._current = snapshot


def _frozen(d: Dict[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(d))


def patient_view(profile: SubjectProfile) -> Mapping[str, Any]:
    return _frozen({
        "firstName": profile.first_name,
        "lastName": profile.last_name,
        "patientId": profile.subject_id,
    })


def sensor_view(profile: SubjectProfile, tz) -> Optional[Mapping[str, Any]]:
    sensor = profile.sensor
    if sensor is None:
        return None
    activated = datetime.fromtimestamp(sensor.activation_epoch, tz=tz)
    return _frozen({
        "serialNumber": sensor.serial_number,
        "activationTime": activated.isoformat(),
        "activationEpoch": sensor.activation_epoch,
        "deviceModelName": device_model_name(sensor.device_type_code),
    })


def _since_last(code: Optional[int]) -> Optional[Dict[str, Any]]:
    if code is None:
        return None
    return {"code": code, "glyph": arrow_glyph(code)}


def reading_views(reading: Reading, since_last: Optional[int]):
    """Return (mg/dL view, mmol/L view) for one reading."""
    common = {
        "timestamp": iso_utc(reading.timestamp),
        "trendCode": reading.trend_arrow,
        "trendGlyph": arrow_glyph(reading.trend_arrow),
        "sinceLastTrend": _since_last(since_last),
        "colorCode": reading.color_code,
        "colorName": color_name(reading.color_code),
    }
    mgdl = _frozen({**common, "value": reading.value_mgdl, "unit": "mg/dL"})
    mmol = _frozen({**common, "value": to_mmol(reading.value_mgdl), "unit": "mmol/L"})
    return mgdl, mmol


def build_snapshot(
    previous: PublishedSnapshot,
    profile: SubjectProfile,
    tz,
    reading: Optional[Reading] = None,
    since_last: Optional[int] = None,
) -> PublishedSnapshot:
    """New snapshot from ``previous``; reading views are kept when ``reading`` is None."""
    snap = dataclasses.replace(
        previous,
        patient_info=patient_view(profile),
        sensor_info=sensor_view(profile, tz),
    )
    if reading is not None:
        mgdl, mmol = reading_views(reading, since_last)
        snap = dataclasses.replace(snap, mgdl_view=mgdl, mmol_view=mmol)
    return snap


def view_to_json(view: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    if view is None:
        return None
    return {k: (dict(v) if isinstance(v, Mapping) else v) for k, v in view.items()}
