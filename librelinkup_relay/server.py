# -*- coding: utf-8 -*-
"""Read-only HTTPS surface over the last published snapshot."""

import logging
import ssl
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, HTTPException

from .errors import StartupFatalError
from .health import HealthState
from .snapshot import SnapshotHolder, view_to_json


def create_app(snapshots: SnapshotHolder, health: Optional[HealthState] = None) -> FastAPI:
    app = FastAPI(title="LibreLinkUp relay")

    def _view(name: str, what: str) -> Dict[str, Any]:
        # one attribute read = one consistent snapshot
        view = getattr(snapshots.current, name)
        if view is None:
            raise HTTPException(404, f"No {what} available")
        return view_to_json(view)

    @app.get("/patient-info")
    def patient_info():
        return _view("patient_info", "patient info")

    @app.get("/sensor-info")
    def sensor_info():
        return _view("sensor_info", "sensor info")

    @app.get("/measurement-mgdl")
    def measurement_mgdl():
        return _view("mgdl_view", "mg/dL measurement")

    @app.get("/measurement-mmol")
    def measurement_mmol():
        return _view("mmol_view", "mmol measurement")

    @app.get("/health")
    def health_info():
        return health.to_dict() if health else {}

    return app


def build_server(
    app: FastAPI,
    host: str,
    port: int,
    tls_cert: Optional[str],
    tls_key: Optional[str],
    use_tls: bool = True,
) -> uvicorn.Server:
    ssl_kwargs: Dict[str, Any] = {}
    if use_tls:
        for label, p in (("certificate", tls_cert), ("key", tls_key)):
            if not p or not Path(p).is_file():
                raise StartupFatalError(f"TLS {label} not found: {p!r}")
        # uvicorn only loads the chain inside the server thread
        try:
            ssl.create_default_context(ssl.Purpose.CLIENT_AUTH).load_cert_chain(tls_cert, tls_key)
        except (ssl.SSLError, OSError) as ex:
            raise StartupFatalError(f"TLS material unusable ({tls_cert}, {tls_key}): {ex}") from ex
        ssl_kwargs = {"ssl_certfile": tls_cert, "ssl_keyfile": tls_key}

    config = uvicorn.Config(app, host=host, port=port, log_level="warning", **ssl_kwargs)
    return uvicorn.Server(config)


def start_in_thread(
    server: uvicorn.Server,
    logger: Optional[logging.Logger] = None,
    startup_timeout_s: float = 10.0,
) -> threading.Thread:
    """Run the server on a daemon thread and wait until it is listening."""
    log = logger or logging.getLogger("librelinkup")
    t = threading.Thread(target=server.run, name="query-server", daemon=True)
    t.start()

    where = f"{server.config.host}:{server.config.port}"
    deadline = time.monotonic() + startup_timeout_s
    while not server.started:
        if not t.is_alive():
            raise StartupFatalError(f"query server failed to start on {where}")
        if time.monotonic() > deadline:
            server.should_exit = True
            raise StartupFatalError(f"query server did not start on {where} within {startup_timeout_s}s")
        time.sleep(0.05)

    scheme = "https" if server.config.ssl_certfile else "http"
    log.info("[http] serving on %s://%s", scheme, where)
    return t
