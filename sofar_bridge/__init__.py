"""Sofar inverter to MQTT bridge."""

from sofar_bridge.config import AppConfig, load_config
from sofar_bridge.device import ModbusDevice
from sofar_bridge.mqtt_client import MqttExporter
from sofar_bridge.orchestrator import Orchestrator, build_envelope
from sofar_bridge.units import classify_unit

__all__ = [
    "AppConfig",
    "ModbusDevice",
    "MqttExporter",
    "Orchestrator",
    "build_envelope",
    "classify_unit",
    "load_config",
]
