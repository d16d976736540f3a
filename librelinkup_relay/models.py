# -*- coding: utf-8 -*-

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from .timeutil import iso_utc, parse_iso


@dataclass(frozen=True)
class Session:
    token: str
    user_id: str
    account_id: str       # sha256_hex(user_id), sent as Account-Id
    api_base: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "userId": self.user_id,
            "accountIdHash": self.account_id,
            "apiBase": self.api_base,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Session":
        # KeyError/TypeError on a malformed record; SessionStore handles it
        token = str(d["token"])
        user_id = str(d["userId"])
        account_id = str(d["accountIdHash"])
        api_base = str(d["apiBase"])
        if not (token and user_id and account_id and api_base):
            raise ValueError("incomplete session record")
        return cls(token=token, user_id=user_id, account_id=account_id, api_base=api_base)


@dataclass(frozen=True)
class SensorDescriptor:
    serial_number: str
    activation_epoch: int
    device_type_code: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {"sn": self.serial_number, "a": self.activation_epoch, "pt": self.device_type_code}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SensorDescriptor":
        pt = d.get("pt")
        return cls(
            serial_number=str(d.get("sn") or ""),
            activation_epoch=int(d.get("a") or 0),
            device_type_code=int(pt) if pt is not None else None,
        )


@dataclass(frozen=True)
class SubjectProfile:
    subject_id: str
    first_name: str
    last_name: str
    sensor: Optional[SensorDescriptor] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patientId": self.subject_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "sensor": self.sensor.to_dict() if self.sensor else None,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SubjectProfile":
        subject_id = str(d["patientId"])
        if not subject_id:
            raise ValueError("empty patientId")
        sensor = d.get("sensor")
        return cls(
            subject_id=subject_id,
            first_name=str(d.get("firstName") or ""),
            last_name=str(d.get("lastName") or ""),
            sensor=SensorDescriptor.from_dict(sensor) if isinstance(sensor, dict) else None,
        )


@dataclass(frozen=True)
class Reading:
    timestamp: datetime   # aware
    value_mgdl: int
    trend_arrow: int
    color_code: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Timestamp": iso_utc(self.timestamp),
            "ValueInMgPerDl": self.value_mgdl,
            "TrendArrow": self.trend_arrow,
            "MeasurementColor": self.color_code,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Reading":
        color = d.get("MeasurementColor")
        return cls(
            timestamp=parse_iso(str(d["Timestamp"])),
            value_mgdl=int(d["ValueInMgPerDl"]),
            trend_arrow=int(d["TrendArrow"]),
            color_code=int(color) if color is not None else None,
        )
