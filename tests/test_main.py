"""Tests for process startup, shutdown and the end-to-end publish path."""
from __future__ import annotations

from dataclasses import replace
from unittest.mock import Mock, patch

import pytest

from sofar_bridge.config import AppConfig
from sofar_bridge.exceptions import ExporterConnectionError
from sofar_bridge.main import build_parser, connect_exporters, main
from sofar_bridge.mqtt_client import MqttExporter
from sofar_bridge.orchestrator import Orchestrator
from sofar_bridge.ports import DiscoveryField


@pytest.fixture
def bridge_env(monkeypatch):
    monkeypatch.setenv("INVERTER_PORT", "192.168.1.50:502")
    monkeypatch.setenv("LOGGER_SERIAL_NUMBER", "2345678901")
    monkeypatch.setenv("MQTT_URL", "tcp://broker.local:1883")
    monkeypatch.setenv("MQTT_HA_DISCOVERY", "true")


@pytest.fixture
def fake_device():
    device = Mock()
    device.query.return_value = {"Pac": 1500}
    device.discovery_fields.return_value = [DiscoveryField("Pac", "kW", "0.01")]
    return device


def test_parser_defaults():
    args = build_parser().parse_args([])

    assert args.config == "config.cfg"
    assert args.log_level == "INFO"
    assert args.verbose == 0
    assert args.once is False


def test_missing_required_config_exits_non_zero():
    with patch("sofar_bridge.main.MqttExporter") as exporter_cls:
        assert main(["--once"]) == 1

    exporter_cls.assert_not_called()


def test_exporter_connection_failure_exits_non_zero(bridge_env):
    with patch.object(
        MqttExporter, "connect", side_effect=ExporterConnectionError("refused")
    ), patch("sofar_bridge.main.ModbusDevice") as device_cls:
        assert main(["--once"]) == 1

    device_cls.assert_not_called()


def test_connect_exporters_closes_on_failure(mqtt_config):
    first, second = Mock(), Mock()
    second.connect.side_effect = ExporterConnectionError("refused")
    config = AppConfig(inverter=Mock(), mqtt=(mqtt_config, mqtt_config))

    with patch("sofar_bridge.main.MqttExporter", side_effect=[first, second]):
        with pytest.raises(ExporterConnectionError):
            connect_exporters(config)

    first.close.assert_called_once()


def test_once_publishes_discovery_and_one_state(bridge_env, fake_device):
    exporter = Mock()
    exporter.discovery_enabled = True
    exporter.discovery_prefix = "homeassistant/sensor/Sofar"

    with patch("sofar_bridge.main.MqttExporter", return_value=exporter), \
         patch("sofar_bridge.main.ModbusDevice", return_value=fake_device):
        assert main(["--once"]) == 0

    exporter.connect.assert_called_once()
    exporter.publish_discovery.assert_called_once()
    [call] = exporter.publish_state.call_args_list
    assert call.args[0] == "2345678901/state"
    assert call.args[1]["Pac"] == 1500
    exporter.close.assert_called_once()
    fake_device.close.assert_called_once()


def test_device_construction_failure_closes_exporters(bridge_env):
    exporter = Mock()

    with patch("sofar_bridge.main.MqttExporter", return_value=exporter), \
         patch("sofar_bridge.main.ModbusDevice", side_effect=OSError("no such port")):
        with pytest.raises(OSError):
            main(["--once"])

    exporter.close.assert_called_once()


def test_config_file_not_utf8_exits_non_zero(bridge_env, tmp_path):
    path = tmp_path / "bridge.cfg"
    path.write_bytes(b"[inverter]\nport = \xff\xfe\n")

    with patch("sofar_bridge.main.MqttExporter") as exporter_cls:
        assert main(["--config", str(path), "--once"]) == 1

    exporter_cls.assert_not_called()


def test_config_file_overrides_environment(bridge_env, fake_device, tmp_path):
    path = tmp_path / "bridge.cfg"
    path.write_text("[inverter]\nlogger_serial = 42\n", encoding="utf-8")
    exporter = Mock()
    exporter.discovery_enabled = False

    with patch("sofar_bridge.main.MqttExporter", return_value=exporter), \
         patch("sofar_bridge.main.ModbusDevice", return_value=fake_device):
        assert main(["--config", str(path), "--once"]) == 0

    assert exporter.publish_state.call_args.args[0] == "42/state"


def test_discovery_count_across_exporters(inverter_config, mqtt_config, fake_device):
    fields = [DiscoveryField("Pac", "kW", "0.01"), DiscoveryField("Etotal", "kWh", "0.1")]
    fake_device.discovery_fields.return_value = fields
    clients = [Mock(), Mock(), Mock()]
    for client in clients:
        client.publish.return_value.rc = 0
        client.publish.return_value.is_published.return_value = True
    disabled = replace(mqtt_config, send_discovery=False)
    exporters = [
        MqttExporter(mqtt_config, client=clients[0]),
        MqttExporter(mqtt_config, client=clients[1]),
        MqttExporter(disabled, client=clients[2]),
    ]
    orchestrator = Orchestrator(inverter_config, fake_device, exporters)

    orchestrator.publish_discovery()
    orchestrator.run_cycle()

    retained = [
        call for client in clients for call in client.publish.call_args_list
        if call.kwargs["retain"]
    ]
    not_retained = [
        call for client in clients for call in client.publish.call_args_list
        if not call.kwargs["retain"]
    ]
    assert len(retained) == len(fields) * 2
    assert len(not_retained) == len(exporters)
    assert {call.args[0] for call in not_retained} == {"Sofar/2345678901/state"}
