from __future__ import annotations

import logging
from typing import Iterable

from pymodbus.client import ModbusSerialClient, ModbusTcpClient
from pymodbus.exceptions import ModbusException

from sofar_bridge.config import InverterConfig
from sofar_bridge.exceptions import DeviceError
from sofar_bridge.ports import DiscoveryField, Measurements
from sofar_bridge.registers import ALL_GROUPS, RegisterGroup, decode

DEFAULT_MODBUS_TCP_PORT = 502


def is_serial_port(port: str) -> bool:
    return port.startswith("/")


def open_client(port: str, baudrate: int, timeout: float) -> ModbusSerialClient | ModbusTcpClient:
    """Create a Modbus client for a serial device path or a ``host[:port]`` address."""
    if is_serial_port(port):
        return ModbusSerialClient(
            port=port,
            baudrate=baudrate,
            bytesize=8,
            parity="N",
            stopbits=1,
            timeout=timeout,
        )
    host, _, tcp_port = port.rpartition(":")
    if not host or not tcp_port.isdigit():
        host, tcp_port = port, str(DEFAULT_MODBUS_TCP_PORT)
    return ModbusTcpClient(host, port=int(tcp_port), timeout=timeout)


def is_attribute_wanted(
    name: str, allow_list: Iterable[str], deny_list: Iterable[str]
) -> bool:
    allow = set(allow_list)
    if allow and name not in allow:
        return False
    return name not in set(deny_list)


class ModbusDevice:
    """Sofar inverter read through a Modbus RTU or Modbus TCP client.

    The client is opened lazily and closed after any failed read so the
    next query starts from a fresh connection.
    """

    def __init__(
        self,
        config: InverterConfig,
        client: ModbusSerialClient | ModbusTcpClient | None = None,
        groups: tuple[RegisterGroup, ...] = ALL_GROUPS,
    ) -> None:
        self.config = config
        self.client = client or open_client(config.port, config.baudrate, config.timeout_s)
        self.logger = logging.getLogger(self.__class__.__name__)
        self.groups = tuple(
            group
            for group in groups
            if any(self._wanted(register.name) for register in group.registers)
        )
        if not self.groups:
            self.logger.warning(
                "Attribute filters match no known register (allow: %s, deny: %s); "
                "every cycle will publish an empty measurement set",
                sorted(config.attr_allow_list),
                sorted(config.attr_deny_list),
            )
        transport = "serial" if is_serial_port(config.port) else "TCP/IP"
        self.logger.info("Using %s communications port %s", transport, config.port)

    def _wanted(self, name: str) -> bool:
        return is_attribute_wanted(
            name, self.config.attr_allow_list, self.config.attr_deny_list
        )

    def discovery_fields(self) -> list[DiscoveryField]:
        return [
            register.as_discovery_field()
            for group in self.groups
            for register in group.registers
            if self._wanted(register.name)
        ]

    def _read_group(self, group: RegisterGroup) -> list[int]:
        try:
            response = self.client.read_holding_registers(
                group.start_address,
                count=group.count,
                device_id=self.config.unit_id,
            )
        except ModbusException as exc:
            raise DeviceError(f"Reading {group.name} registers failed: {exc}") from exc
        if response.isError():
            raise DeviceError(f"Reading {group.name} registers failed: {response}")
        if len(response.registers) < group.count:
            raise DeviceError(
                f"Short read for {group.name} registers: "
                f"got {len(response.registers)} of {group.count} words"
            )
        return response.registers

    def query(self) -> Measurements:
        if not self.client.connected and not self.client.connect():
            raise DeviceError(f"Cannot connect to inverter on {self.config.port}")

        measurements: Measurements = {}
        try:
            for group in self.groups:
                words = self._read_group(group)
                for register in group.registers:
                    if not self._wanted(register.name):
                        continue
                    offset = register.address - group.start_address
                    measurements[register.name] = decode(
                        register, words[offset:offset + register.word_count]
                    )
        except DeviceError:
            self.client.close()
            raise
        self.logger.debug("Read %s measurements", len(measurements))
        return measurements

    def close(self) -> None:
        self.client.close()
