"""MQTT sink mirroring a monitor session to a broker.

Once attached to a MeasurementStore, every appended measurement is published
as retained JSON on ``<base_topic>/<device>``. Session notices (paired,
device not found) and the sink's own online/offline status go to
``<base_topic>/status``, so home automation systems can follow both.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from typing import Any

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion
from paho.mqtt.properties import Properties
from paho.mqtt.reasoncodes import ReasonCode

from src.bpm_ble.session import SessionNotice
from src.measurement_store import MeasurementStore
from src.models import Measurement

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 1883
DEFAULT_BASE_TOPIC = "bpm/blood_pressure"

# Measurements and status are retained so late subscribers see the last value
PUBLISH_QOS = 1


def topic_segment(name: str) -> str:
    """Make a device model or name usable as a single topic level."""
    return name.replace("&", "and").replace(" ", "_").replace("/", "_")


class MQTTPublisher:
    """Publish measurements and session notices of one monitor."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        username: str | None = None,
        password: str | None = None,
        base_topic: str = DEFAULT_BASE_TOPIC,
        device: str | None = None,
    ):
        """Initialize publisher.

        Args:
            host: Broker hostname/IP
            port: Broker port
            username: Optional username (password may be empty)
            password: Optional password
            base_topic: Topic prefix for measurement and status messages
            device: Device model used as the measurement topic level
        """
        self.host = host
        self.port = port
        self.base_topic = base_topic.rstrip("/")
        self.device = device

        self._client = mqtt.Client(callback_api_version=CallbackAPIVersion.VERSION2)
        if username:
            self._client.username_pw_set(username, password)
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect

        # Set from paho's network thread
        self._connected = threading.Event()
        self._last_error: str | None = None

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    @property
    def measurement_topic(self) -> str:
        if self.device:
            return f"{self.base_topic}/{topic_segment(self.device)}"
        return self.base_topic

    @property
    def status_topic(self) -> str:
        return f"{self.base_topic}/status"

    def _on_connect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _flags: mqtt.ConnectFlags,
        reason_code: ReasonCode,
        _properties: Properties | None = None,
    ) -> None:
        if reason_code.is_failure:
            self._last_error = str(reason_code)
            logger.error(f"Broker {self.host}:{self.port} refused connection: {reason_code}")
            return

        self._last_error = None
        self._connected.set()
        logger.info(f"Connected to MQTT broker {self.host}:{self.port}")

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: mqtt.DisconnectFlags,
        reason_code: ReasonCode,
        _properties: Properties | None = None,
    ) -> None:
        self._connected.clear()
        if reason_code.is_failure:
            logger.warning(f"Lost MQTT broker connection: {reason_code}")
        else:
            logger.info("Disconnected from MQTT broker")

    def connect(self, timeout: float = 10.0) -> bool:
        """Connect and start paho's network loop.

        Returns:
            True once the broker accepted the connection within ``timeout``
        """
        try:
            self._client.connect(self.host, self.port, keepalive=60)
        except (OSError, ValueError) as e:
            self._last_error = str(e)
            logger.error(f"Cannot reach MQTT broker {self.host}:{self.port}: {e}")
            return False

        self._client.loop_start()
        if self._connected.wait(timeout):
            return True

        logger.error(f"No CONNACK from {self.host}:{self.port} after {timeout}s ({self._last_error})")
        self._client.loop_stop()
        return False

    def disconnect(self) -> None:
        """Stop the network loop and close the connection."""
        try:
            self._client.disconnect()
            self._client.loop_stop()
        except OSError as e:
            logger.warning(f"MQTT disconnect failed: {e}")
        self._connected.clear()

    def attach(self, store: MeasurementStore) -> None:
        """Publish every measurement appended to ``store`` from now on."""
        store.add_listener(self.publish_measurement)

    def detach(self, store: MeasurementStore) -> None:
        store.remove_listener(self.publish_measurement)

    def _publish(self, topic: str, payload: dict) -> bool:
        if not self.is_connected:
            logger.debug(f"Not connected, dropping message for {topic}")
            return False

        try:
            info = self._client.publish(topic, json.dumps(payload), qos=PUBLISH_QOS, retain=True)
        except (OSError, ValueError) as e:
            logger.error(f"Publishing to {topic} failed: {e}")
            return False

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error(f"Publishing to {topic} failed: {mqtt.error_string(info.rc)}")
            return False
        return True

    def publish_measurement(self, measurement: Measurement) -> bool:
        """Publish one measurement on the measurement topic."""
        payload = measurement.to_dict()
        payload["device"] = self.device
        payload["published_at"] = datetime.now().isoformat()

        published = self._publish(self.measurement_topic, payload)
        if published:
            logger.info(f"Published {measurement.systolic}/{measurement.diastolic} mmHg to MQTT")
        return published

    def publish_status(self, status: str, message: str | None = None) -> bool:
        """Publish a status message (e.g. "online", "offline")."""
        return self._publish(
            self.status_topic,
            {
                "status": status,
                "device": self.device,
                "message": message,
                "timestamp": datetime.now().isoformat(),
            },
        )

    def publish_notice(self, notice: SessionNotice, message: str) -> bool:
        """Forward a session notice as a status message."""
        return self.publish_status(notice.value, message)
