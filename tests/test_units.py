"""Tests for unit to Home Assistant class mapping."""
from __future__ import annotations

import pytest

from sofar_bridge.units import classify_unit, unit_to_device_class, unit_to_state_class


@pytest.mark.parametrize(
    ("unit", "expected"),
    [
        ("kWh", ("energy", "total")),
        ("Wh", ("energy", "total")),
        ("kW", ("power", "measurement")),
        ("W", ("power", "measurement")),
        ("Hz", ("frequency", "measurement")),
        ("kVA", ("apparent_power", "measurement")),
        ("kVAR", ("reactive_power", "measurement")),
        ("V", ("voltage", "measurement")),
        ("A", ("current", "measurement")),
        ("kΩ", ("voltage", "measurement")),
        ("℃", ("temperature", "measurement")),
        ("°C", ("temperature", "measurement")),
        ("min", ("duration", "measurement")),
        ("foo", ("", "measurement")),
        ("", ("", "measurement")),
    ],
)
def test_classify_unit(unit, expected):
    assert classify_unit(unit) == expected


class TestSuffixPriority:
    """Compound units must not fall through to their shorter suffixes."""

    def test_energy_is_not_power(self):
        assert unit_to_device_class("MWh") == "energy"

    def test_apparent_power_is_not_current(self):
        assert unit_to_device_class("VA") == "apparent_power"

    def test_reactive_power_is_not_voltage(self):
        assert unit_to_device_class("VAR") == "reactive_power"

    def test_only_energy_is_total(self):
        assert unit_to_state_class("kWh") == "total"
        assert unit_to_state_class("kW") == "measurement"
        assert unit_to_state_class("Ah") == "measurement"
