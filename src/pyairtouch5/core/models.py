# src/pyairtouch5/core/models.py
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .constants import (
    MAX_AC_UNITS,
    MAX_ZONES,
    AcMode,
    AcPowerControl,
    AcPowerState,
    FanSpeed,
    ZoneControlType,
    ZonePowerControl,
    ZonePowerState,
)

T = TypeVar("T")


# --- Decoded records ---


class AcAbility(BaseModel):
    model_config = ConfigDict(frozen=True)

    unit_number: int = Field(ge=0, lt=MAX_AC_UNITS)
    name: str
    start_zone: int = Field(ge=0)
    zone_count: int = Field(ge=0)
    supported_modes: frozenset[AcMode]
    supported_fan_speeds: frozenset[FanSpeed]
    min_cool: int
    max_cool: int
    min_heat: int
    max_heat: int

    @property
    def zone_numbers(self) -> range:
        """Zones owned by this unit; the controller addresses at most MAX_ZONES."""
        end = min(self.start_zone + self.zone_count, MAX_ZONES)
        return range(min(self.start_zone, end), end)

    def owns_zone(self, zone_number: int) -> bool:
        return zone_number in self.zone_numbers


class AcStatus(BaseModel):
    unit_number: int = Field(ge=0, le=15)
    power_state: AcPowerState
    mode: AcMode
    fan_speed: int
    setpoint: float
    temperature: float
    turbo: bool = False
    bypass: bool = False
    spill: bool = False
    timer: bool = False
    error_code: int = 0

    @property
    def has_error(self) -> bool:
        return self.error_code != 0


class ZoneStatus(BaseModel):
    zone_number: int = Field(ge=0, lt=64)
    power_state: ZonePowerState
    control_type: ZoneControlType
    damper_percent: int = Field(ge=0, le=100)
    setpoint: float
    temperature: float
    has_sensor: bool
    spill: bool = False
    battery_low: bool = False


class ZoneName(BaseModel):
    zone_number: int = Field(ge=0, lt=MAX_ZONES)
    name: str


class AcErrorInfo(BaseModel):
    unit_number: int
    message: str


class DiscoveredController(BaseModel):
    model_config = ConfigDict(frozen=True)

    ip: str
    console_id: str
    controller_id: str
    name: str


# --- Control requests ---


@dataclass(frozen=True)
class Keep:
    """Leave the controller's current value untouched."""

    def __repr__(self) -> str:
        return "KEEP"


KEEP = Keep()


@dataclass(frozen=True)
class Change(Generic[T]):
    """Explicitly set a field to ``value``."""

    value: T


@dataclass(frozen=True)
class AcControl:
    unit_number: int
    power: Keep | Change[AcPowerControl] = KEEP
    mode: Keep | Change[AcMode] = KEEP
    fan_speed: Keep | Change[FanSpeed] = KEEP
    setpoint: Keep | Change[float] = KEEP


@dataclass(frozen=True)
class ZoneControl:
    zone_number: int
    power: Keep | Change[ZonePowerControl] = KEEP
    damper_percent: Keep | Change[int] = KEEP
    setpoint: Keep | Change[float] = KEEP


# --- API Argument Models ---


class UnitPowerArgs(BaseModel):
    on: bool


class UnitModeArgs(BaseModel):
    mode: AcMode


class UnitFanArgs(BaseModel):
    speed: FanSpeed


class TemperatureArgs(BaseModel):
    celsius: float = Field(ge=10.0, le=35.0)


class ZonePowerArgs(BaseModel):
    on: bool


class ZoneDamperArgs(BaseModel):
    percent: int = Field(ge=0, le=100)
