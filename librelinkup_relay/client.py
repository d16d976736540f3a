# -*- coding: utf-8 -*-

import logging
from typing import Any, Dict, Optional

import requests

from .errors import AuthError, UpstreamError

DEFAULT_API_BASE = "https://api.libreview.io"

AUTH_PATH = "/llu/auth/login"
CONTINUE_TEMPLATE = "/auth/continue/{step}"
CONNECTIONS_PATH = "/llu/connections"
GRAPH_TEMPLATE = "/llu/connections/{patient_id}/graph"

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0",
    "Content-Type": "application/json",
    "Accept": "application/json",
    "product": "llu.ios",
    "Pragma": "no-cache",
    "Cache-Control": "no-cache",
}


def region_to_base_url(region: str) -> str:
    """Map a redirect region (e.g. "de", "fr") onto its API host."""
    if not region:
        return DEFAULT_API_BASE
    return f"https://api-{region.strip().lower()}.libreview.io"


class LibreLinkUpClient:
    """
    Thin HTTP layer over the LibreLinkUp API.

    ``api_base`` is the region context: the auth flow rewrites it on a
    redirect and every later call goes to the new host.
    """

    def __init__(
        self,
        api_base: str = DEFAULT_API_BASE,
        client_version: str = "4.16.0",
        timeout_s: int = 15,
        verify_tls: bool = True,
        connection_close: bool = False,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.client_version = client_version
        self.timeout_s = timeout_s
        self.verify_tls = verify_tls
        self.connection_close = connection_close
        self.session = session or requests.Session()
        self.log = logger or logging.getLogger("librelinkup")

    def set_region(self, region: str) -> str:
        self.api_base = region_to_base_url(region).rstrip("/")
        self.log.info("[auth] api_base => %s", self.api_base)
        return self.api_base

    def _headers(self, token: Optional[str] = None, account_id: Optional[str] = None) -> Dict[str, str]:
        h = dict(DEFAULT_HEADERS)
        h["version"] = self.client_version
        if self.connection_close:
            h["Connection"] = "close"
        if token:
            h["Authorization"] = f"Bearer {token}"
        if account_id:
            h["Account-Id"] = account_id
        return h

    def _request(self, method: str, path: str, headers: Dict[str, str], json_body: Any = None) -> Dict[str, Any]:
        url = self.api_base + path
        self.log.debug("[http] %s %s", method, url)
        try:
            r = self.session.request(
                method,
                url,
                headers=headers,
                json=json_body,
                timeout=self.timeout_s,
                verify=self.verify_tls,
            )
        except requests.RequestException as ex:
            raise UpstreamError(f"{method} {path} failed: {ex}") from ex

        self.log.debug("[http] status=%s len=%s", r.status_code, len(r.content))

        if r.status_code == 401:
            raise AuthError(f"unauthorized on {path}", status=401)
        if r.status_code >= 400:
            raise UpstreamError(f"{method} {path} => HTTP {r.status_code}")

        try:
            data = r.json()
        except ValueError:
            raise UpstreamError(f"{path} response is not JSON (body={r.text[:200]!r})")
        if not isinstance(data, dict):
            raise UpstreamError(f"{path} response is not a JSON object")
        return data

    # --- auth ---

    def post_login(self, email: str, password: str) -> Dict[str, Any]:
        self.log.info("[auth] logging in at %s%s", self.api_base, AUTH_PATH)
        return self._request("POST", AUTH_PATH, self._headers(), {"email": email, "password": password})

    def post_continue(self, step: str, token: str) -> Dict[str, Any]:
        path = CONTINUE_TEMPLATE.format(step=step)
        self.log.info("[auth] additional step => %s", path)
        return self._request("POST", path, self._headers(token=token), {})

    # --- data ---

    def get_connections(self, token: str, account_id: str) -> Dict[str, Any]:
        return self._request("GET", CONNECTIONS_PATH, self._headers(token, account_id))

    def get_graph(self, patient_id: str, token: str, account_id: str) -> Dict[str, Any]:
        h = self._headers(token, account_id)
        h["patientid"] = patient_id
        return self._request("GET", GRAPH_TEMPLATE.format(patient_id=patient_id), h)
