# -*- coding: utf-8 -*-

import json
import logging
import time
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from .errors import StartupFatalError
from .health import HealthState
from .snapshot import PublishedSnapshot, view_to_json
from .timeutil import now_ts

SNAPSHOT_TOPICS = (
    ("patient", "patient_info"),
    ("sensor", "sensor_info"),
    ("mgdl", "mgdl_view"),
    ("mmol", "mmol_view"),
)


def json_dumps_compact(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


class MqttPublisher:
    """
    Persistent MQTT connection mirroring each snapshot.

    ``<base>/<master>/status`` carries online/offline (with LWT),
    ``<base>/<master>/{patient,sensor,mgdl,mmol}`` the snapshot views and
    ``<base>/<master>/health`` the health state.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        keepalive: int,
        base_topic: str,
        master_id: str,
        tz,
        retain: bool = False,
        qos: int = 0,
        client: Optional[mqtt.Client] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.keepalive = keepalive
        self.base_topic = (base_topic or "").strip("/")
        self.master_id = (master_id or "").strip("/")
        self.tz = tz
        self.retain = retain
        self.qos = qos
        self.log = logger or logging.getLogger("librelinkup")

        self._connected = False
        self.reconnects = 0

        self.client = client or mqtt.Client(mqtt.CallbackAPIVersion.VERSION1)
        if user:
            self.client.username_pw_set(user, password=password)

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        self.topic_status = self.topic("status")
        self.topic_health = self.topic("health")

        lwt_payload = json_dumps_compact({
            "state": "offline",
            "ts_local": now_ts(self.tz).isoformat(),
            "reason": "lwt",
        })
        self.client.will_set(self.topic_status, payload=lwt_payload, qos=0, retain=True)

    def topic(self, suffix: str) -> str:
        return f"{self.base_topic}/{self.master_id}/{suffix}"

    def _on_connect(self, client, userdata, flags, rc):
        self._connected = (rc == 0)
        self.log.debug("[mqtt] on_connect rc=%s connected=%s", rc, self._connected)

        if self._connected:
            try:
                self.publish_json(self.topic_status, {
                    "state": "online",
                    "ts_local": now_ts(self.tz).isoformat(),
                }, retain=True, qos=0)
            except Exception as ex:
                self.log.warning("[mqtt] failed to publish online status: %s", ex)

    def _on_disconnect(self, client, userdata, rc):
        self._connected = False
        self.log.debug("[mqtt] on_disconnect rc=%s", rc)

    def _wait_connected(self, timeout_s: float = 5.0) -> bool:
        t0 = time.time()
        while not self._connected and (time.time() - t0) < timeout_s:
            time.sleep(0.05)
        return self._connected

    def connect(self):
        self.log.info("[mqtt] connect %s:%s user=%r", self.host, self.port, self.user)
        try:
            self.client.connect(self.host, self.port, keepalive=self.keepalive)
        except OSError as ex:
            raise StartupFatalError(f"MQTT connect to {self.host}:{self.port} failed: {ex}") from ex
        self.client.loop_start()

        if not self._wait_connected():
            raise StartupFatalError("MQTT connect timeout (no CONNACK within 5s)")

    def ensure_connected(self):
        if self._connected:
            return
        self.reconnects += 1
        self.log.warning("[mqtt] not connected -> reconnecting (count=%s)", self.reconnects)

        self.client.reconnect()

        if not self._wait_connected():
            raise RuntimeError("MQTT reconnect timeout")

    def publish(self, topic: str, payload: str, retain: bool, qos: int):
        self.ensure_connected()
        self.log.debug("[mqtt] publish topic=%s retain=%s qos=%s bytes=%s", topic, retain, qos, len(payload))
        info = self.client.publish(topic, payload=payload, qos=qos, retain=retain)
        info.wait_for_publish(timeout=10)

    def publish_json(self, topic: str, obj: Dict[str, Any], retain: bool, qos: int):
        self.publish(topic, json_dumps_compact(obj), retain=retain, qos=qos)

    def publish_snapshot(self, snapshot: PublishedSnapshot):
        for suffix, attr in SNAPSHOT_TOPICS:
            view = view_to_json(getattr(snapshot, attr))
            if view is not None:
                self.publish_json(self.topic(suffix), view, retain=self.retain, qos=self.qos)

    def publish_health(self, health: HealthState, retain: bool = True, qos: int = 0):
        payload = health.to_dict()
        payload["ts_local"] = now_ts(self.tz).isoformat()
        payload["mqtt"] = {"connected": self._connected, "reconnects": self.reconnects}
        self.publish_json(self.topic_health, payload, retain=retain, qos=qos)

    def close(self):
        if self._connected:
            try:
                self.publish_json(self.topic_status, {
                    "state": "offline",
                    "ts_local": now_ts(self.tz).isoformat(),
                    "reason": "shutdown",
                }, retain=True, qos=0)
            except (OSError, RuntimeError, ValueError) as ex:
                self.log.debug("[mqtt] offline status not sent: %s", ex)

        self.client.loop_stop()
        self.client.disconnect()
        self._connected = False
