from __future__ import annotations

import json
import logging
import ssl
import threading
from typing import Any, Mapping, Sequence
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

from sofar_bridge.config import MqttConfig
from sofar_bridge.exceptions import ConfigError, ExporterConnectionError
from sofar_bridge.logging_utils import TRACE_LEVEL
from sofar_bridge.ports import DiscoveryField, MessageHandler
from sofar_bridge.units import classify_unit

PUBLISH_TIMEOUT_S = 1.0
MANUFACTURER = "Sofar"

_TLS_SCHEMES = {"ssl", "tls", "mqtts"}
_DEFAULT_PORTS = {"tcp": 1883, "mqtt": 1883, "ssl": 8883, "tls": 8883, "mqtts": 8883}


def parse_broker_url(url: str) -> tuple[str, int, bool]:
    """Split ``tcp://host:port`` style broker URLs into host, port and TLS flag."""
    if "://" not in url:
        url = f"tcp://{url}"
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        raise ValueError(f"Unsupported MQTT URL scheme: {parts.scheme}")
    if not parts.hostname:
        raise ValueError(f"MQTT URL has no host: {url}")
    port = parts.port or _DEFAULT_PORTS[scheme]
    return parts.hostname, port, scheme in _TLS_SCHEMES


def discovery_document(
    field: DiscoveryField, state_topic: str, device_id: int
) -> dict[str, Any]:
    device_class, state_class = classify_unit(field.unit)
    return {
        "name": field.name,
        "unique_id": f"{device_id}_{field.name}",
        "device_class": device_class,
        "state_class": state_class,
        "state_topic": state_topic,
        "unit_of_measurement": field.unit,
        "value_template": f"{{{{ value_json.{field.name}|int * {field.factor} }}}}",
        "availability_topic": state_topic,
        "availability_template": "{{ value_json.availability }}",
        "device": {
            "identifiers": [f"{device_id}_Solar_Inverter"],
            "manufacturer": MANUFACTURER,
            "name": f"{MANUFACTURER} {device_id} Inverter",
        },
    }


class MqttExporter:
    def __init__(self, config: MqttConfig, client: mqtt.Client | None = None) -> None:
        self.config = config
        try:
            self.host, self.port, tls_enabled = parse_broker_url(config.url)
        except ValueError as exc:
            raise ConfigError(f"Invalid MQTT url for [{config.name}]: {exc}") from exc
        self.client = client or mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            protocol=mqtt.MQTTv311,
        )
        self.logger = logging.getLogger(self.__class__.__name__)
        self._connected = threading.Event()
        self._connack = threading.Event()
        self._connect_reason: Any = None

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        if config.username:
            self.client.username_pw_set(config.username, config.password)
        if tls_enabled:
            self.client.tls_set(cert_reqs=ssl.CERT_REQUIRED)

        # paho's network thread reconnects with exponential backoff.
        self.client.reconnect_delay_set(min_delay=1, max_delay=120)

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    @property
    def discovery_enabled(self) -> bool:
        return self.config.discovery_enabled

    @property
    def discovery_prefix(self) -> str:
        return self.config.discovery_prefix

    def topic(self, suffix: str) -> str:
        return f"{self.config.state_prefix}/{suffix}"

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        self._connect_reason = reason_code
        self._connack.set()
        if reason_code == 0:
            self._connected.set()
            self.logger.info("Connected to MQTT broker %s:%s", self.host, self.port)
        else:
            self._connected.clear()
            self.logger.error("Failed to connect to MQTT broker, reason: %s", reason_code)

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        self._connected.clear()
        if reason_code == 0:
            self.logger.info("Disconnected from MQTT broker (clean)")
        else:
            self.logger.warning(
                "Connection to MQTT broker lost, reason: %s. Will attempt to reconnect.",
                reason_code,
            )

    def connect(self) -> None:
        """Connect and wait for the broker to acknowledge.

        Raises:
            ExporterConnectionError: the broker is unreachable, refused the
                connection, or did not answer within the connect timeout.
        """
        self.logger.info("Connecting to MQTT broker %s:%s", self.host, self.port)
        try:
            self.client.connect(self.host, self.port, keepalive=60)
        except (OSError, ValueError) as exc:
            raise ExporterConnectionError(
                f"MQTT connection to {self.host}:{self.port} failed: {exc}"
            ) from exc
        self.client.loop_start()
        self._connack.wait(self.config.connect_timeout_s)
        if not self._connected.is_set():
            self.client.loop_stop()
            reason = "timed out" if self._connect_reason is None else self._connect_reason
            raise ExporterConnectionError(
                f"MQTT connection to {self.host}:{self.port} failed: {reason}"
            )

    def close(self) -> None:
        self.client.loop_stop()
        self.client.disconnect()
        self.logger.info("Disconnected from MQTT broker")

    def _publish(self, topic: str, payload: str, retain: bool) -> bool:
        self.logger.log(TRACE_LEVEL, "Publishing to %s (retain=%s): %s", topic, retain, payload)
        try:
            info = self.client.publish(topic, payload=payload, qos=0, retain=retain)
            info.wait_for_publish(timeout=PUBLISH_TIMEOUT_S)
        except (RuntimeError, ValueError, OSError) as exc:
            self.logger.error("Error publishing to MQTT topic %s: %s", topic, exc)
            return False
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.error(
                "Error publishing to MQTT topic %s: %s", topic, mqtt.error_string(info.rc)
            )
            return False
        if not info.is_published():
            self.logger.error(
                "Timed out after %ss publishing to MQTT topic %s", PUBLISH_TIMEOUT_S, topic
            )
            return False
        return True

    def publish_discovery(
        self,
        namespace: str,
        state_topic: str,
        device_id: int,
        fields: Sequence[DiscoveryField],
    ) -> None:
        """Publish one retained Home Assistant discovery document per field.

        Failures are logged and never raised; discovery is best effort.
        """
        full_state_topic = self.topic(state_topic)
        published = 0
        for field in fields:
            topic = f"{namespace}/{device_id}_{field.name}/config"
            document = discovery_document(field, full_state_topic, device_id)
            if self._publish(topic, json.dumps(document), retain=True):
                published += 1
        self.logger.info(
            "Published %s of %s discovery documents under %s",
            published,
            len(fields),
            namespace,
        )

    def publish_state(self, topic: str, envelope: Mapping[str, Any]) -> bool:
        full_topic = self.topic(topic)
        self.logger.debug("Publishing state to %s", full_topic)
        return self._publish(full_topic, json.dumps(dict(envelope)), retain=False)

    def subscribe(self, topic: str, handler: MessageHandler) -> None:
        full_topic = self.topic(topic)
        self.client.message_callback_add(full_topic, handler)
        self.client.subscribe(full_topic, qos=0)
        self.logger.debug("Subscribed to %s", full_topic)
