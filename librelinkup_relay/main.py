#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import argparse
import logging
import sys
import time
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

from .auth import (
    DEFAULT_MAX_CONTINUATIONS,
    DEFAULT_MAX_REDIRECTS,
    ConsoleCredentialProvider,
    StaticCredentialProvider,
)
from .client import DEFAULT_API_BASE, LibreLinkUpClient
from .errors import StartupFatalError
from .health import HealthState
from .logsetup import setup_logger
from .measurements import MeasurementStoreManager
from .mqtt import MqttPublisher
from .scheduler import FetchCycle, PollScheduler, ScheduleConfig
from .server import build_server, create_app, start_in_thread
from .snapshot import SnapshotHolder
from .store import MeasurementLog, SessionStore
from .timeutil import load_zone


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="LibreLinkUp relay: follow one CGM account, keep today's readings, serve the latest view over HTTPS."
    )

    # credentials (prompted interactively when missing)
    p.add_argument("--email", default="", help="LibreLinkUp email (prompted if omitted)")
    p.add_argument("--password", default="", help="LibreLinkUp password (prompted if omitted)")

    # logging
    p.add_argument("--debug", action="store_true", help="Shortcut for --log-level DEBUG")
    p.add_argument("--log-level", default="INFO", help="Log level: DEBUG, INFO, WARNING, ERROR (default INFO)")

    # API tweaks
    p.add_argument("--api-base", default=DEFAULT_API_BASE, help="Initial API base URL (region redirects override it)")
    p.add_argument("--client-version", default="4.16.0", help="LibreLinkUp app version header")
    p.add_argument("--timeout", type=int, default=15, help="HTTP timeout seconds")
    p.add_argument("--no-verify-tls", action="store_true", help="Disable upstream TLS verification (not recommended)")
    p.add_argument("--connection-close", action="store_true", help="Send Connection: close header")
    p.add_argument("--max-redirects", type=int, default=DEFAULT_MAX_REDIRECTS, help="Max region redirects per login")
    p.add_argument("--max-continuations", type=int, default=DEFAULT_MAX_CONTINUATIONS,
                   help="Max continuation steps (terms, consent) per login")

    # scheduling
    p.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    p.add_argument("--interval", type=float, default=60.0, help="Sensor sampling interval seconds (default 60)")
    p.add_argument("--fetch-offset", type=float, default=3.0, help="Seconds added after the expected sample (default 3)")
    p.add_argument("--min-delay", type=float, default=1.0, help="Smallest delay accepted before falling back (default 1)")
    p.add_argument("--fallback-delay", type=float, default=30.0, help="Delay when the expected sample is overdue (default 30)")
    p.add_argument("--retry-delay", type=float, default=60.0, help="Delay after a failed or empty cycle (default 60)")
    p.add_argument("--trend-window-min", type=float, default=24.0,
                   help="Max minutes between readings for the since-last trend (default 24)")

    # storage / time
    p.add_argument("--tz", default="Europe/Berlin", help="Zone of the LibreView timestamps and of 'today' (default Europe/Berlin)")
    p.add_argument("--data-dir", default=".", help="Directory for session.json and latestMeasurements.json")

    # query server
    p.add_argument("--host", default="0.0.0.0", help="Bind address of the query server")
    p.add_argument("--port", type=int, default=8443, help="Port of the query server (default 8443)")
    p.add_argument("--tls-cert", default="", help="TLS certificate file")
    p.add_argument("--tls-key", default="", help="TLS private key file")
    p.add_argument("--no-tls", action="store_true", help="Serve plain HTTP (local testing only)")
    p.add_argument("--no-server", action="store_true", help="Do not start the query server")

    # MQTT
    p.add_argument("--mqtt-publish", action="store_true", help="Mirror snapshots to MQTT")
    p.add_argument("--mqtt-host", default="localhost", help="MQTT host")
    p.add_argument("--mqtt-port", type=int, default=1883, help="MQTT port")
    p.add_argument("--mqtt-user", default="", help="MQTT username")
    p.add_argument("--mqtt-password", default="", help="MQTT password")
    p.add_argument("--mqtt-keepalive", type=int, default=30, help="MQTT keepalive seconds (default 30)")
    p.add_argument("--mqtt-base-topic", default="librelinkup", help="Base topic (default librelinkup)")
    p.add_argument("--master-id", default="MASTER", help="Master id segment (default MASTER)")
    p.add_argument("--mqtt-retain", action="store_true", help="MQTT retain flag for snapshot topics")
    p.add_argument("--mqtt-qos", type=int, default=0, choices=[0, 1, 2], help="MQTT QoS (0/1/2)")
    p.add_argument("--mqtt-publish-health", action="store_true", help="Publish health JSON to .../health")
    p.add_argument("--mqtt-health-retain", action="store_true", help="Retain health topic")

    return p


def schedule_config(args: argparse.Namespace) -> ScheduleConfig:
    return ScheduleConfig(
        interval_s=args.interval,
        offset_s=args.fetch_offset,
        min_delay_s=args.min_delay,
        fallback_delay_s=args.fallback_delay,
        retry_delay_s=args.retry_delay,
    )


def run(args: argparse.Namespace) -> int:
    tz = load_zone(args.tz)

    if args.debug and (args.log_level or "").upper() == "INFO":
        args.log_level = "DEBUG"
    logger = setup_logger(args.log_level, tz)

    data_dir = Path(args.data_dir)
    session_store = SessionStore(data_dir, logger=logger)
    measurements = MeasurementStoreManager(MeasurementLog(data_dir, logger=logger), tz, logger=logger)
    snapshots = SnapshotHolder()
    health = HealthState(start_epoch=time.time())

    client = LibreLinkUpClient(
        api_base=args.api_base,
        client_version=args.client_version,
        timeout_s=args.timeout,
        verify_tls=not args.no_verify_tls,
        connection_close=args.connection_close,
        logger=logger,
    )

    if args.email and args.password:
        credentials = StaticCredentialProvider(args.email, args.password)
    else:
        credentials = ConsoleCredentialProvider()

    cycle = FetchCycle(
        client=client,
        session_store=session_store,
        measurements=measurements,
        snapshots=snapshots,
        credentials=credentials,
        tz=tz,
        health=health,
        since_last_window=timedelta(minutes=args.trend_window_min),
        max_redirects=args.max_redirects,
        max_continuations=args.max_continuations,
        logger=logger,
    )
    scheduler = PollScheduler(cycle, schedule_config(args), logger=logger)

    if not args.no_server and not args.once:
        server = build_server(
            create_app(snapshots, health),
            host=args.host,
            port=args.port,
            tls_cert=args.tls_cert,
            tls_key=args.tls_key,
            use_tls=not args.no_tls,
        )
        start_in_thread(server, logger=logger)

    mqtt_pub: Optional[MqttPublisher] = None
    if args.mqtt_publish:
        mqtt_pub = MqttPublisher(
            host=args.mqtt_host,
            port=args.mqtt_port,
            user=args.mqtt_user,
            password=args.mqtt_password,
            keepalive=args.mqtt_keepalive,
            base_topic=args.mqtt_base_topic,
            master_id=args.master_id,
            tz=tz,
            retain=args.mqtt_retain,
            qos=args.mqtt_qos,
            logger=logger,
        )
        mqtt_pub.connect()
        cycle.listeners.append(mqtt_pub.publish_snapshot)
        if args.mqtt_publish_health:
            scheduler.after_cycle.append(
                lambda h: mqtt_pub.publish_health(h, retain=args.mqtt_health_retain)
            )

    try:
        if args.once:
            scheduler.trigger()
            logger.info("done")
            return 0 if health.last_error == "" else 1
        scheduler.run_forever()
    except KeyboardInterrupt:
        logger.info("interrupted, shutting down")
        scheduler.stop()
    finally:
        if mqtt_pub:
            mqtt_pub.close()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return run(args)
    except StartupFatalError as ex:
        logging.getLogger("librelinkup").critical("startup failed: %s", ex)
        return 1


if __name__ == "__main__":
    sys.exit(main())
