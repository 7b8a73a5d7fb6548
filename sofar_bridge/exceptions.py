"""Exception hierarchy for the Sofar bridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for every error raised by the bridge."""


class ConfigError(BridgeError):
    """Configuration is missing a required field or cannot be parsed."""

    def __init__(self, message: str, missing_field: str | None = None) -> None:
        self.missing_field = missing_field
        super().__init__(message)


class ExporterConnectionError(BridgeError):
    """An exporter could not establish its initial connection."""


class DeviceError(BridgeError):
    """A device query failed."""
