from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import configparser
import os

from sofar_bridge.exceptions import ConfigError

DEFAULT_DISCOVERY_PREFIX = "homeassistant/sensor/Sofar"
DEFAULT_STATE_PREFIX = "Sofar"
DEFAULT_CLIENT_ID = "sofar"

# Config file key -> (environment variable, default).
INVERTER_ENV: dict[str, tuple[str, str]] = {
    "port": ("INVERTER_PORT", ""),
    "logger_serial": ("LOGGER_SERIAL_NUMBER", "0"),
    "read_interval": ("READ_INTERVAL", "60"),
    "loop_logging": ("LOOP_LOGGING", "true"),
    "attr_white_list": ("ATTR_WHITE_LIST", ""),
    "attr_black_list": ("ATTR_BLACK_LIST", ""),
    "baudrate": ("INVERTER_BAUDRATE", "2400"),
    "unit_id": ("INVERTER_UNIT_ID", "1"),
    "timeout": ("INVERTER_TIMEOUT", "5"),
}

MQTT_ENV: dict[str, tuple[str, str]] = {
    "url": ("MQTT_URL", ""),
    "user": ("MQTT_USERNAME", ""),
    "password": ("MQTT_PASSWORD", ""),
    "send_ha_discovery": ("MQTT_HA_DISCOVERY", "false"),
    "ha_discovery_prefix": ("MQTT_HA_DISCOVERY_TOPIC_PREFIX", DEFAULT_DISCOVERY_PREFIX),
    "prefix": ("MQTT_STATE_TOPIC_PREFIX", DEFAULT_STATE_PREFIX),
    "client_id": ("MQTT_CLIENT_ID", DEFAULT_CLIENT_ID),
    "connect_timeout": ("MQTT_CONNECT_TIMEOUT", "10"),
}

EXTRA_MQTT_SECTION_PREFIX = "mqtt:"


@dataclass(frozen=True)
class InverterConfig:
    port: str
    logger_serial: int
    read_interval_s: int
    loop_logging: bool
    attr_allow_list: frozenset[str]
    attr_deny_list: frozenset[str]
    baudrate: int
    unit_id: int
    timeout_s: float


@dataclass(frozen=True)
class MqttConfig:
    name: str
    url: str
    username: str | None
    password: str | None = field(repr=False)
    send_discovery: bool
    discovery_prefix: str
    state_prefix: str
    client_id: str
    connect_timeout_s: float

    @property
    def configured(self) -> bool:
        return bool(self.url) and bool(self.state_prefix)

    @property
    def discovery_enabled(self) -> bool:
        return self.send_discovery and bool(self.discovery_prefix)


@dataclass(frozen=True)
class AppConfig:
    inverter: InverterConfig
    mqtt: tuple[MqttConfig, ...]


def _get_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def _get_set(value: str | None) -> frozenset[str]:
    if value is None:
        return frozenset()
    return frozenset(item.strip() for item in value.split(",") if item.strip())


def _environment_baseline(mapping: dict[str, tuple[str, str]]) -> dict[str, str]:
    return {key: os.environ.get(env, default) for key, (env, default) in mapping.items()}


def _read_file(parser: configparser.ConfigParser, path: str | Path) -> None:
    if not Path(path).is_file():
        return
    try:
        with open(path, encoding="utf-8") as handle:
            parser.read_file(handle)
    except (OSError, UnicodeDecodeError, configparser.Error) as exc:
        raise ConfigError(f"Cannot parse config file {path}: {exc}") from exc


def _typed(section: configparser.SectionProxy, key: str, getter: str):
    try:
        return getattr(section, getter)(key)
    except ValueError as exc:
        raise ConfigError(f"Invalid value for {section.name}.{key}: {exc}") from exc


def _parse_inverter(section: configparser.SectionProxy) -> InverterConfig:
    return InverterConfig(
        port=section.get("port", "").strip(),
        logger_serial=_typed(section, "logger_serial", "getint"),
        read_interval_s=_typed(section, "read_interval", "getint"),
        loop_logging=_typed(section, "loop_logging", "getboolean"),
        attr_allow_list=_get_set(section.get("attr_white_list")),
        attr_deny_list=_get_set(section.get("attr_black_list")),
        baudrate=_typed(section, "baudrate", "getint"),
        unit_id=_typed(section, "unit_id", "getint"),
        timeout_s=_typed(section, "timeout", "getfloat"),
    )


def _parse_mqtt(name: str, section: configparser.SectionProxy) -> MqttConfig:
    return MqttConfig(
        name=name,
        url=section.get("url", "").strip(),
        username=_get_optional(section.get("user")),
        password=_get_optional(section.get("password")),
        send_discovery=_typed(section, "send_ha_discovery", "getboolean"),
        discovery_prefix=section.get("ha_discovery_prefix", "").strip().rstrip("/"),
        state_prefix=section.get("prefix", "").strip().rstrip("/"),
        client_id=section.get("client_id", "").strip() or f"{DEFAULT_CLIENT_ID}-{name}",
        connect_timeout_s=_typed(section, "connect_timeout", "getfloat"),
    )


def validate(config: AppConfig) -> None:
    if config.inverter.port == "":
        raise ConfigError("missing required inverter.port config", missing_field="inverter.port")
    if config.inverter.logger_serial == 0:
        raise ConfigError(
            "missing required inverter.loggerSerial config",
            missing_field="inverter.loggerSerial",
        )
    if config.inverter.logger_serial < 0:
        raise ConfigError(
            f"inverter.logger_serial must be positive, got {config.inverter.logger_serial}"
        )
    if config.inverter.read_interval_s <= 0:
        raise ConfigError(
            f"inverter.read_interval must be positive, got {config.inverter.read_interval_s}"
        )


def load_config(path: str | Path) -> AppConfig:
    """Build the application config from the environment and ``path``.

    Environment variables form the baseline. The file at ``path`` is read
    only if it exists, and every key it defines overrides the environment.
    Extra brokers are declared as ``[mqtt:<name>]`` sections and only take
    their defaults from the built-in values, not from the environment.
    """
    parser = configparser.ConfigParser(interpolation=None)
    parser.read_dict(
        {
            "inverter": _environment_baseline(INVERTER_ENV),
            "mqtt": _environment_baseline(MQTT_ENV),
        }
    )
    _read_file(parser, path)

    inverter = _parse_inverter(parser["inverter"])

    mqtt_configs = [_parse_mqtt("default", parser["mqtt"])]
    builtin_mqtt = {key: default for key, (_, default) in MQTT_ENV.items()}
    builtin_mqtt["client_id"] = ""
    for section_name in parser.sections():
        if not section_name.startswith(EXTRA_MQTT_SECTION_PREFIX):
            continue
        name = section_name[len(EXTRA_MQTT_SECTION_PREFIX):].strip()
        if not name:
            raise ConfigError(f"MQTT section [{section_name}] needs a name")
        merged = configparser.ConfigParser(interpolation=None)
        merged.read_dict({section_name: builtin_mqtt})
        merged.read_dict({section_name: dict(parser.items(section_name, raw=True))})
        mqtt_configs.append(_parse_mqtt(name, merged[section_name]))

    config = AppConfig(
        inverter=inverter,
        mqtt=tuple(mqtt for mqtt in mqtt_configs if mqtt.configured),
    )
    validate(config)
    return config
