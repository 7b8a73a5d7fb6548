"""Capabilities shared between the orchestrator, devices and exporters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol, Sequence

MeasurementValue = int | float | str
Measurements = dict[str, MeasurementValue]
MessageHandler = Callable[..., None]


@dataclass(frozen=True)
class DiscoveryField:
    """Physical semantics of one measurement.

    ``factor`` is kept as text because it is written verbatim into the
    Home Assistant value template.
    """

    name: str
    unit: str
    factor: str = "1"


class Device(Protocol):
    def query(self) -> Measurements:
        """Read one measurement set, raising ``DeviceError`` on failure."""
        ...

    def discovery_fields(self) -> list[DiscoveryField]:
        ...


class Exporter(Protocol):
    discovery_enabled: bool
    discovery_prefix: str

    def publish_discovery(
        self,
        namespace: str,
        state_topic: str,
        device_id: int,
        fields: Sequence[DiscoveryField],
    ) -> None:
        ...

    def publish_state(self, topic: str, envelope: Mapping[str, Any]) -> bool:
        ...

    def subscribe(self, topic: str, handler: MessageHandler) -> None:
        ...

    def close(self) -> None:
        ...
