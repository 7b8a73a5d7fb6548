"""Poll the inverter and fan each cycle's result out to the exporters.

One cycle is: query the device (up to ``MAX_QUERY_ATTEMPTS`` immediate
attempts), build a publish envelope, hand it to every exporter, then wait
for the read interval. A cycle whose attempts all fail still publishes an
``offline`` envelope carrying only the availability flag and timestamp, so
consumers can tell "unreachable" apart from "all values zero".
"""

from __future__ import annotations

import logging
import threading
import time
from types import MappingProxyType
from typing import Any, Callable, Mapping, Sequence

from sofar_bridge.config import InverterConfig
from sofar_bridge.ports import Device, Exporter, Measurements
from sofar_bridge.schema import validate_envelope

MAX_QUERY_ATTEMPTS = 3
AVAILABILITY_KEY = "availability"
TIMESTAMP_KEY = "LastTimestamp"
ONLINE = "online"
OFFLINE = "offline"

PublishEnvelope = Mapping[str, Any]


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def build_envelope(measurements: Measurements | None, timestamp_ms: int) -> PublishEnvelope:
    if measurements is None:
        payload: dict[str, Any] = {AVAILABILITY_KEY: OFFLINE, TIMESTAMP_KEY: timestamp_ms}
    else:
        payload = dict(measurements)
        payload[AVAILABILITY_KEY] = ONLINE
        payload[TIMESTAMP_KEY] = timestamp_ms
    return MappingProxyType(payload)


def state_topic(logger_serial: int) -> str:
    """State topic relative to an exporter's prefix."""
    return f"{logger_serial}/state"


class Orchestrator:
    def __init__(
        self,
        config: InverterConfig,
        device: Device,
        exporters: Sequence[Exporter] = (),
        stop_event: threading.Event | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.config = config
        self.device = device
        self.exporters = tuple(exporters)
        self.stop_event = stop_event or threading.Event()
        self.clock = clock
        self.state_topic = state_topic(config.logger_serial)
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def stop(self) -> None:
        self.stop_event.set()

    def publish_discovery(self) -> None:
        discovery_exporters = [exporter for exporter in self.exporters if exporter.discovery_enabled]
        if not discovery_exporters:
            return
        fields = self.device.discovery_fields()
        for exporter in discovery_exporters:
            self.logger.info("Sending MQTT discovery records to %s", exporter.discovery_prefix)
            try:
                exporter.publish_discovery(
                    exporter.discovery_prefix,
                    self.state_topic,
                    self.config.logger_serial,
                    fields,
                )
            except Exception:
                self.logger.exception("Exporter %r failed to publish discovery", exporter)

    def poll(self) -> Measurements | None:
        for attempt in range(MAX_QUERY_ATTEMPTS):
            try:
                return self.device.query()
            except Exception as exc:
                # At night the inverter is switched off and every read times out.
                self.logger.warning(
                    "Failed to perform measurements on attempt %s/%s: %s",
                    attempt + 1,
                    MAX_QUERY_ATTEMPTS,
                    exc,
                )
        return None

    def publish(self, envelope: PublishEnvelope) -> None:
        for exporter in self.exporters:
            try:
                exporter.publish_state(self.state_topic, envelope)
            except Exception:
                self.logger.exception("Exporter %r failed to publish state", exporter)

    def run_cycle(self) -> PublishEnvelope:
        if self.config.loop_logging:
            self.logger.info("Performing measurements")
        measurements = self.poll()
        envelope = build_envelope(measurements, self.clock())
        schema_errors = validate_envelope(envelope)
        if schema_errors:
            self.logger.warning("State validation failed with %s errors.", len(schema_errors))
            self.logger.debug("State validation errors: %s", schema_errors)
        self.publish(envelope)
        return envelope

    def run(self) -> None:
        """Publish discovery once, then poll until ``stop()`` is called."""
        self.publish_discovery()
        self.logger.info(
            "Polling inverter %s every %s seconds.",
            self.config.logger_serial,
            self.config.read_interval_s,
        )
        while not self.stopped:
            self.run_cycle()
            if self.stopped:
                break
            self.stop_event.wait(self.config.read_interval_s)
        self.logger.info("Polling stopped.")
