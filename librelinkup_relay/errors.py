# -*- coding: utf-8 -*-

from typing import Any, Dict, Optional


class RelayError(Exception):
    """Base class for everything the relay raises on purpose."""


class AuthError(RelayError):
    """Login flow could not produce a usable session (or the token was rejected)."""

    def __init__(self, reason: str, status: Optional[int] = None, payload: Optional[Dict[str, Any]] = None):
        self.reason = reason
        self.status = status
        self.payload = payload
        msg = reason if status is None else f"{reason} (status={status})"
        super().__init__(msg)


class UpstreamError(RelayError):
    """Transport failure, unexpected HTTP code or malformed payload."""


class UpstreamStatusError(UpstreamError):
    def __init__(self, status: Any, endpoint: str = ""):
        self.status = status
        self.endpoint = endpoint
        super().__init__(f"{endpoint or 'upstream'} => status={status}")


class NoDataError(RelayError):
    """Soft signal: nothing to do this cycle, retry later."""


class NoConnectionsError(NoDataError):
    pass


class PersistenceParseError(RelayError):
    pass


class StartupFatalError(RelayError):
    pass
