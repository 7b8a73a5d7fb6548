"""Map physical unit strings to Home Assistant sensor classes."""

from __future__ import annotations

# First match wins: "Wh" must precede "W", and "VA"/"VAR" must precede "V"/"A".
_DEVICE_CLASS_SUFFIXES: tuple[tuple[str, str], ...] = (
    ("Wh", "energy"),
    ("W", "power"),
    ("Hz", "frequency"),
    ("VA", "apparent_power"),
    ("VAR", "reactive_power"),
    ("V", "voltage"),
    ("A", "current"),
    # No resistance class exists in Home Assistant.
    ("Ω", "voltage"),
    ("℃", "temperature"),
    ("°C", "temperature"),
    ("min", "duration"),
)


def unit_to_device_class(unit: str) -> str:
    for suffix, device_class in _DEVICE_CLASS_SUFFIXES:
        if unit.endswith(suffix):
            return device_class
    return ""


def unit_to_state_class(unit: str) -> str:
    if unit.endswith("Wh"):
        return "total"
    return "measurement"


def classify_unit(unit: str) -> tuple[str, str]:
    """Return the ``(device_class, state_class)`` pair for ``unit``.

    >>> classify_unit("kWh")
    ('energy', 'total')
    >>> classify_unit("kVAR")
    ('reactive_power', 'measurement')
    """
    return unit_to_device_class(unit), unit_to_state_class(unit)
