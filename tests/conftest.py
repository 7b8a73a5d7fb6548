"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import pytest

from sofar_bridge.config import INVERTER_ENV, MQTT_ENV, InverterConfig, MqttConfig


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    """Remove every recognised environment variable and run from a temp dir."""
    for env, _ in (*INVERTER_ENV.values(), *MQTT_ENV.values()):
        monkeypatch.delenv(env, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def inverter_config():
    return InverterConfig(
        port="192.168.1.50:8899",
        logger_serial=2345678901,
        read_interval_s=60,
        loop_logging=True,
        attr_allow_list=frozenset(),
        attr_deny_list=frozenset(),
        baudrate=2400,
        unit_id=1,
        timeout_s=5.0,
    )


@pytest.fixture
def mqtt_config():
    return MqttConfig(
        name="default",
        url="tcp://broker.local:1883",
        username="sofar",
        password="secret",
        send_discovery=True,
        discovery_prefix="homeassistant/sensor/Sofar",
        state_prefix="Sofar",
        client_id="sofar",
        connect_timeout_s=0.1,
    )
