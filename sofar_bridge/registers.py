"""Holding-register map for Sofar G3 three-phase inverters.

Values are published raw; ``factor`` converts a raw value to ``unit`` and is
applied by the consumer through the discovery value template.
"""

from __future__ import annotations

from dataclasses import dataclass

from sofar_bridge.ports import DiscoveryField

_WORD_COUNTS = {"U16": 1, "S16": 1, "U32": 2}


@dataclass(frozen=True)
class RegisterDef:
    address: int
    name: str
    reg_type: str
    unit: str
    factor: str = "1"

    @property
    def word_count(self) -> int:
        return _WORD_COUNTS[self.reg_type]

    def as_discovery_field(self) -> DiscoveryField:
        return DiscoveryField(name=self.name, unit=self.unit, factor=self.factor)


@dataclass(frozen=True)
class RegisterGroup:
    """A contiguous address range read with a single request."""

    name: str
    start_address: int
    count: int
    registers: tuple[RegisterDef, ...]


SYSTEM_GROUP = RegisterGroup(
    name="system",
    start_address=0x0404,
    count=0x0427 - 0x0404 + 1,
    registers=(
        RegisterDef(0x0404, "SysState", "U16", ""),
        RegisterDef(0x0418, "Temperature_Env1", "S16", "℃"),
        RegisterDef(0x041A, "Temperature_HeatSink1", "S16", "℃"),
        RegisterDef(0x0426, "Generation_Time_Today", "U16", "min"),
        RegisterDef(0x0427, "Insulation_Resistance", "U16", "kΩ"),
    ),
)

GRID_GROUP = RegisterGroup(
    name="grid",
    start_address=0x0484,
    count=0x04A4 - 0x0484 + 1,
    registers=(
        RegisterDef(0x0484, "Frequency_Grid", "U16", "Hz", "0.01"),
        RegisterDef(0x0485, "ActivePower_Output_Total", "S16", "kW", "0.01"),
        RegisterDef(0x0486, "ReactivePower_Output_Total", "S16", "kVAR", "0.01"),
        RegisterDef(0x0487, "ApparentPower_Output_Total", "S16", "kVA", "0.01"),
        RegisterDef(0x0488, "ActivePower_PCC_Total", "S16", "kW", "0.01"),
        RegisterDef(0x048D, "Voltage_Phase_R", "U16", "V", "0.1"),
        RegisterDef(0x048E, "Current_Output_R", "U16", "A", "0.01"),
        RegisterDef(0x0498, "Voltage_Phase_S", "U16", "V", "0.1"),
        RegisterDef(0x0499, "Current_Output_S", "U16", "A", "0.01"),
        RegisterDef(0x04A3, "Voltage_Phase_T", "U16", "V", "0.1"),
        RegisterDef(0x04A4, "Current_Output_T", "U16", "A", "0.01"),
    ),
)

PV_GROUP = RegisterGroup(
    name="pv",
    start_address=0x0584,
    count=0x0589 - 0x0584 + 1,
    registers=(
        RegisterDef(0x0584, "Voltage_PV1", "U16", "V", "0.1"),
        RegisterDef(0x0585, "Current_PV1", "U16", "A", "0.01"),
        RegisterDef(0x0586, "Power_PV1", "U16", "kW", "0.01"),
        RegisterDef(0x0587, "Voltage_PV2", "U16", "V", "0.1"),
        RegisterDef(0x0588, "Current_PV2", "U16", "A", "0.01"),
        RegisterDef(0x0589, "Power_PV2", "U16", "kW", "0.01"),
    ),
)

ENERGY_GROUP = RegisterGroup(
    name="energy",
    start_address=0x0684,
    count=0x068B - 0x0684 + 1,
    registers=(
        RegisterDef(0x0684, "PV_Generation_Today", "U32", "kWh", "0.01"),
        RegisterDef(0x0686, "PV_Generation_Total", "U32", "kWh", "0.1"),
        RegisterDef(0x0688, "Load_Consumption_Today", "U32", "kWh", "0.01"),
        RegisterDef(0x068A, "Load_Consumption_Total", "U32", "kWh", "0.1"),
    ),
)

ALL_GROUPS: tuple[RegisterGroup, ...] = (SYSTEM_GROUP, GRID_GROUP, PV_GROUP, ENERGY_GROUP)


def decode(register: RegisterDef, words: list[int]) -> int:
    """Decode ``register`` from the raw words of a group read, high word first."""
    if register.reg_type == "U16":
        return words[0] & 0xFFFF
    if register.reg_type == "S16":
        value = words[0] & 0xFFFF
        return value - 0x10000 if value >= 0x8000 else value
    if register.reg_type == "U32":
        return ((words[0] & 0xFFFF) << 16) | (words[1] & 0xFFFF)
    raise ValueError(f"Unsupported register type {register.reg_type!r} for {register.name}")
