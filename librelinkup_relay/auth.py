# -*- coding: utf-8 -*-

import getpass
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .client import LibreLinkUpClient, region_to_base_url
from .errors import AuthError
from .models import Session
from .store import SessionStore

STATUS_OK = 0
STATUS_CONTINUE = 4

DEFAULT_MAX_REDIRECTS = 3
DEFAULT_MAX_CONTINUATIONS = 5


def sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def _short(data: Dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=False)[:300]


# -----------------------------
# Credential providers
# -----------------------------

@dataclass(frozen=True)
class Credentials:
    email: str
    password: str


CredentialProvider = Callable[[], Credentials]


class StaticCredentialProvider:
    def __init__(self, email: str, password: str):
        self._creds = Credentials(email=email, password=password)

    def __call__(self) -> Credentials:
        return self._creds


class ConsoleCredentialProvider:
    """Blocking prompt on the controlling terminal."""

    def __init__(self, input_fn=input, password_fn=getpass.getpass):
        self._input = input_fn
        self._password = password_fn

    def __call__(self) -> Credentials:
        email = self._input("LibreView Email: ").strip()
        password = self._password("LibreView Password: ")
        return Credentials(email=email, password=password)


# -----------------------------
# Login flow
# -----------------------------

def establish_session(
    client: LibreLinkUpClient,
    email: str,
    password: str,
    store: Optional[SessionStore] = None,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
    max_continuations: int = DEFAULT_MAX_CONTINUATIONS,
    logger: Optional[logging.Logger] = None,
) -> Session:
    """
    Run login -> region redirect(s) -> continuation step(s) until status 0.

    Redirects switch ``client.api_base`` for good. Both loops are bounded;
    exceeding a bound is reported as AuthError rather than retried.
    """
    log = logger or logging.getLogger("librelinkup")

    data = client.post_login(email, password)

    redirects = 0
    while (data.get("data") or {}).get("redirect"):
        region = str((data.get("data") or {}).get("region") or "").strip()
        if not region:
            raise AuthError("redirect=true but no region specified", payload=data)
        if region_to_base_url(region).rstrip("/") == client.api_base:
            raise AuthError(f"redirect loop: already on region {region!r}", payload=data)
        redirects += 1
        if redirects > max_redirects:
            raise AuthError(f"too many region redirects (>{max_redirects})", payload=data)
        log.info("[auth] redirect requested: region=%s", region)
        client.set_region(region)
        data = client.post_login(email, password)

    steps = 0
    while data.get("status") == STATUS_CONTINUE:
        steps += 1
        if steps > max_continuations:
            raise AuthError(f"too many continuation steps (>{max_continuations})", status=STATUS_CONTINUE, payload=data)
        d = data.get("data") or {}
        step_type = (d.get("step") or {}).get("type")
        token = (d.get("authTicket") or {}).get("token")
        if not step_type or not token:
            raise AuthError("missing step type or token for status=4", status=STATUS_CONTINUE, payload=data)
        data = client.post_continue(str(step_type), str(token))

    status = data.get("status")
    if status != STATUS_OK:
        log.debug("[auth] login response: %s", _short(data))
        raise AuthError(f"login flow did not reach status=0 (got {status})", status=status, payload=data)

    d = data.get("data") or {}
    token = str((d.get("authTicket") or {}).get("token") or "")
    user_id = str((d.get("user") or {}).get("id") or "")
    if not token or not user_id:
        raise AuthError("login response missing user id/token", status=status, payload=data)

    session = Session(token=token, user_id=user_id, account_id=sha256_hex(user_id), api_base=client.api_base)
    if store is not None:
        store.save_session(session)

    log.info("[auth] login ok, user_id=%s api_base=%s", user_id, session.api_base)
    return session
