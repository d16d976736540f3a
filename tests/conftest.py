"""Shared fixtures: a scripted stand-in for requests.Session plus store helpers."""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

import pytest

from librelinkup_relay.client import LibreLinkUpClient
from librelinkup_relay.models import SensorDescriptor, Session, SubjectProfile
from librelinkup_relay.store import MeasurementLog, SessionStore

TZ = ZoneInfo("Europe/Berlin")
NOW = datetime(2025, 1, 5, 22, 35, 0, tzinfo=TZ)


class FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = json.dumps(payload)
        self.content = self.text.encode("utf-8")

    def json(self) -> Any:
        return self._payload


@dataclass
class Call:
    method: str
    url: str
    headers: Dict[str, str]
    body: Any


@dataclass
class FakeHttp:
    """Pops one scripted response per request, in order."""

    responses: List[FakeResponse] = field(default_factory=list)
    calls: List[Call] = field(default_factory=list)

    def add(self, payload: Any, status_code: int = 200) -> "FakeHttp":
        self.responses.append(FakeResponse(payload, status_code))
        return self

    def request(self, method, url, headers=None, json=None, timeout=None, verify=True):
        self.calls.append(Call(method, url, dict(headers or {}), json))
        if not self.responses:
            raise AssertionError(f"unexpected request {method} {url}")
        return self.responses.pop(0)


def login_ok(user_id: str = "user-1", token: str = "tok-1") -> Dict[str, Any]:
    return {
        "status": 0,
        "data": {
            "user": {"id": user_id, "country": "DE"},
            "authTicket": {"token": token, "expires": 1999999999},
        },
    }


def graph_payload(ts: str = "1/5/2025 10:33:54 PM", value: int = 120, arrow: int = 3, color: Optional[int] = 1):
    gm: Dict[str, Any] = {
        "FactoryTimestamp": "1/5/2025 9:33:54 PM",
        "Timestamp": ts,
        "ValueInMgPerDl": value,
        "TrendArrow": arrow,
    }
    if color is not None:
        gm["MeasurementColor"] = color
    return {"status": 0, "data": {"connection": {"glucoseMeasurement": gm}}}


def connections_payload() -> Dict[str, Any]:
    return {
        "status": 0,
        "data": [
            {
                "patientId": "patient-1",
                "firstName": "Ada",
                "lastName": "Lovelace",
                "sensor": {"sn": "0M0008ABCD", "a": 1735900000, "pt": 4},
            },
            {"patientId": "patient-2", "firstName": "Other", "lastName": "Person"},
        ],
    }


@pytest.fixture
def tz() -> ZoneInfo:
    return TZ


@pytest.fixture
def http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def client(http: FakeHttp) -> LibreLinkUpClient:
    return LibreLinkUpClient(session=http, logger=logging.getLogger("librelinkup.test"))


@pytest.fixture
def session_store(tmp_path: Path) -> SessionStore:
    return SessionStore(tmp_path)


@pytest.fixture
def measurement_log(tmp_path: Path) -> MeasurementLog:
    return MeasurementLog(tmp_path)


@pytest.fixture
def session() -> Session:
    return Session(token="tok-1", user_id="user-1", account_id="hash-1", api_base="https://api-de.libreview.io")


@pytest.fixture
def profile() -> SubjectProfile:
    return SubjectProfile(
        subject_id="patient-1",
        first_name="Ada",
        last_name="Lovelace",
        sensor=SensorDescriptor(serial_number="0M0008ABCD", activation_epoch=1735900000, device_type_code=4),
    )
