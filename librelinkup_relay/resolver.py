# -*- coding: utf-8 -*-

import logging
from typing import Optional

from .client import LibreLinkUpClient
from .errors import NoConnectionsError, UpstreamStatusError
from .models import SensorDescriptor, Session, SubjectProfile
from .store import SessionStore


def resolve_subject(
    client: LibreLinkUpClient,
    session: Session,
    store: Optional[SessionStore] = None,
    logger: Optional[logging.Logger] = None,
) -> SubjectProfile:
    """
    Look up the first shared connection and cache it.

    Callers check ``store.load_subject()`` first; once cached, upstream
    profile or sensor changes are not seen until the cache is cleared.
    """
    log = logger or logging.getLogger("librelinkup")

    resp = client.get_connections(session.token, session.account_id)
    if resp.get("status") != 0:
        raise UpstreamStatusError(resp.get("status"), "/llu/connections")

    connections = resp.get("data") or []
    if not connections:
        raise NoConnectionsError("no connections shared with this account")

    first = connections[0]
    sensor = first.get("sensor")
    profile = SubjectProfile(
        subject_id=str(first.get("patientId") or ""),
        first_name=str(first.get("firstName") or ""),
        last_name=str(first.get("lastName") or ""),
        sensor=SensorDescriptor.from_dict(sensor) if isinstance(sensor, dict) else None,
    )
    if not profile.subject_id:
        raise NoConnectionsError("first connection has no patientId")

    log.info("[resolve] patient %s %s, id=%s", profile.first_name, profile.last_name, profile.subject_id)
    if len(connections) > 1:
        log.debug("[resolve] %d connections, using the first", len(connections))

    if store is not None:
        store.save_subject(profile)
    return profile
