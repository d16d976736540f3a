# -*- coding: utf-8 -*-
"""
Whole-document JSON persistence.

Both stores follow the same contract: read the full file, write the full
file. A missing file is the empty default; a corrupt one is logged and
treated as the empty default as well (never fatal).
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import PersistenceParseError
from .models import Reading, Session, SubjectProfile

SESSION_FILE = "session.json"
MEASUREMENTS_FILE = "latestMeasurements.json"


class JsonDocument:
    def __init__(self, path: Path, logger: Optional[logging.Logger] = None):
        self.path = Path(path)
        self.log = logger or logging.getLogger("librelinkup")

    def _parse(self) -> Any:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError as ex:
            raise PersistenceParseError(f"{self.path.name}: {ex}") from ex

    def read(self, default: Any) -> Any:
        try:
            data = self._parse()
        except PersistenceParseError as ex:
            self.log.warning("[store] could not parse %s, resetting", ex)
            return default
        if data is None or type(data) is not type(default):
            return default
        return data

    def write(self, obj: Any) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(obj, indent=2, ensure_ascii=False), encoding="utf-8")


# -----------------------------
# Session + resolved subject
# -----------------------------

class SessionStore:
    def __init__(self, data_dir: Path, logger: Optional[logging.Logger] = None):
        self.log = logger or logging.getLogger("librelinkup")
        self.doc = JsonDocument(Path(data_dir) / SESSION_FILE, logger=self.log)

    def _load(self) -> Dict[str, Any]:
        return self.doc.read(default={})

    def load_session(self) -> Optional[Session]:
        d = self._load()
        if not d.get("session"):
            return None
        try:
            return Session.from_dict(d["session"])
        except (KeyError, TypeError, ValueError) as ex:
            self.log.warning("[store] malformed session record (%s), will re-login", ex)
            return None

    def save_session(self, session: Session) -> None:
        d = self._load()
        d["session"] = session.to_dict()
        # a new login may belong to another account
        d.pop("subject", None)
        self.doc.write(d)

    def clear_session(self) -> None:
        self.doc.write({})

    def load_subject(self) -> Optional[SubjectProfile]:
        d = self._load()
        if not d.get("subject"):
            return None
        try:
            return SubjectProfile.from_dict(d["subject"])
        except (KeyError, TypeError, ValueError) as ex:
            self.log.warning("[store] malformed subject record (%s), will resolve again", ex)
            return None

    def save_subject(self, profile: SubjectProfile) -> None:
        d = self._load()
        d["subject"] = profile.to_dict()
        self.doc.write(d)


# -----------------------------
# Same-day measurement log
# -----------------------------

class MeasurementLog:
    def __init__(self, data_dir: Path, logger: Optional[logging.Logger] = None):
        self.log = logger or logging.getLogger("librelinkup")
        self.doc = JsonDocument(Path(data_dir) / MEASUREMENTS_FILE, logger=self.log)

    def load(self) -> List[Reading]:
        out: List[Reading] = []
        for item in self.doc.read(default=[]):
            try:
                out.append(Reading.from_dict(item))
            except (AttributeError, KeyError, TypeError, ValueError) as ex:
                self.log.warning("[store] dropping unreadable log entry %r: %s", item, ex)
        return out

    def save(self, readings: List[Reading]) -> None:
        self.doc.write([r.to_dict() for r in readings])
