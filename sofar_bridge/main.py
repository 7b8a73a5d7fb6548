from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading

from sofar_bridge.config import AppConfig, load_config
from sofar_bridge.device import ModbusDevice
from sofar_bridge.exceptions import ConfigError, ExporterConnectionError
from sofar_bridge.logging_utils import configure_logging, resolve_log_level
from sofar_bridge.mqtt_client import MqttExporter
from sofar_bridge.orchestrator import Orchestrator

logger = logging.getLogger("sofar_bridge")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sofar inverter to MQTT bridge")
    parser.add_argument(
        "--config",
        default="config.cfg",
        help="Path to CFG configuration file (optional; environment variables are used otherwise)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging (-v) or trace logging (-vv)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Publish discovery and a single measurement cycle, then exit",
    )
    return parser


def connect_exporters(config: AppConfig) -> list[MqttExporter]:
    """Connect every configured broker; any failure aborts startup."""
    exporters: list[MqttExporter] = []
    try:
        for mqtt_config in config.mqtt:
            exporter = MqttExporter(mqtt_config)
            exporter.connect()
            exporters.append(exporter)
    except Exception:
        close_exporters(exporters)
        raise
    return exporters


def close_exporters(exporters: list[MqttExporter]) -> None:
    for exporter in exporters:
        exporter.close()


def install_signal_handlers(stop_event: threading.Event) -> None:
    def _handle(signum: int, frame: object) -> None:
        logger.info("Received %s, shutting down.", signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGTERM, _handle)
    signal.signal(signal.SIGINT, _handle)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(resolve_log_level(args.verbose, args.log_level))

    try:
        config = load_config(args.config)
        logger.debug("Inverter config: %s", config.inverter)
        for mqtt_config in config.mqtt:
            logger.debug("MQTT config: %s", mqtt_config)
        logger.info("MQTT brokers configured: %s", len(config.mqtt))
        exporters = connect_exporters(config)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 1
    except ExporterConnectionError as exc:
        logger.error("%s", exc)
        return 1

    stop_event = threading.Event()
    device = None
    try:
        device = ModbusDevice(config.inverter)
        orchestrator = Orchestrator(config.inverter, device, exporters, stop_event=stop_event)
        if args.once:
            orchestrator.publish_discovery()
            orchestrator.run_cycle()
        else:
            install_signal_handlers(stop_event)
            orchestrator.run()
    finally:
        if device is not None:
            device.close()
        close_exporters(exporters)
    return 0


if __name__ == "__main__":
    sys.exit(main())
