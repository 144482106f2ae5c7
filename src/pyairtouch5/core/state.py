# src/pyairtouch5/core/state.py
import logging
from dataclasses import dataclass

from pydantic import BaseModel

from .climate import derive_current_state, derive_target_state
from .constants import (
    ACTIVE_AC_POWER_STATES,
    ACTIVE_ZONE_POWER_STATES,
    MAX_ZONES,
    ClimateState,
    TargetClimateState,
)
from .events import ControllerListener
from .models import AcAbility, AcErrorInfo, AcStatus, ZoneName, ZoneStatus

log = logging.getLogger(__name__)


@dataclass
class Unit:
    ability: AcAbility
    status: AcStatus | None = None
    error_message: str | None = None

    @property
    def number(self) -> int:
        return self.ability.unit_number


@dataclass
class Zone:
    number: int
    unit_number: int
    status: ZoneStatus | None = None
    name: str | None = None


# --- Snapshot models ---


class UnitSnapshot(BaseModel):
    unit_number: int
    name: str
    zones: list[int]
    ability: AcAbility
    status: AcStatus | None = None
    error_message: str | None = None
    active: bool | None = None
    current_state: ClimateState | None = None
    target_state: TargetClimateState | None = None


class ZoneSnapshot(BaseModel):
    zone_number: int
    unit_number: int
    name: str | None = None
    status: ZoneStatus | None = None
    active: bool | None = None
    current_state: ClimateState | None = None
    target_state: TargetClimateState | None = None
    current_temperature: float | None = None
    target_temperature: float | None = None
    damper_percent: int | None = None


class ControllerSnapshot(BaseModel):
    units: list[UnitSnapshot]
    zones: list[ZoneSnapshot]


class ControllerState:
    """
    In-memory model of one controller's units and zones.

    Built only from decoded protocol records. Units and their zone ranges
    appear when the unit's ability is received and are never removed;
    status for a unit or zone that is not known yet is logged and dropped.
    """

    def __init__(self) -> None:
        self.units: dict[int, Unit] = {}
        self.zones: dict[int, Zone] = {}
        self._listeners: list[ControllerListener] = []

    def add_listener(self, listener: ControllerListener) -> None:
        self._listeners.append(listener)

    def _notify(self, event: str, *args) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, event)(*args)
            except Exception:
                log.exception(f"Listener {listener!r} failed handling {event}")

    # --- Updates from the session ---

    def add_ability(self, ability: AcAbility) -> None:
        if ability.unit_number in self.units:
            log.debug(f"Ability for AC {ability.unit_number} already known, ignoring")
            return
        if len(ability.zone_numbers) < ability.zone_count:
            log.warning(
                f"AC {ability.unit_number} claims zones {ability.start_zone}-"
                f"{ability.start_zone + ability.zone_count - 1}, ignoring those past {MAX_ZONES - 1}"
            )
        self.units[ability.unit_number] = Unit(ability=ability)
        for zone_number in ability.zone_numbers:
            owner = self.zones.get(zone_number)
            if owner is not None:
                log.warning(
                    f"Zone {zone_number} already belongs to AC {owner.unit_number}, "
                    f"not reassigning to AC {ability.unit_number}"
                )
                continue
            self.zones[zone_number] = Zone(number=zone_number, unit_number=ability.unit_number)
        log.info(
            f"AC {ability.unit_number} '{ability.name}' owns zones "
            f"{list(ability.zone_numbers)}"
        )
        self._notify("unit_ability_discovered", ability)

    def update_ac_status(self, status: AcStatus) -> None:
        unit = self.units.get(status.unit_number)
        if unit is None:
            log.debug(f"Status for AC {status.unit_number} before its ability, dropping")
            return
        unit.status = status
        self._notify("unit_status_updated", status)

    def update_zone_status(self, status: ZoneStatus) -> None:
        zone = self.zones.get(status.zone_number)
        if zone is None:
            log.debug(f"Status for zone {status.zone_number} not owned by a known AC, dropping")
            return
        zone.status = status
        self._notify("zone_status_updated", status)

    def add_zone_name(self, zone_name: ZoneName) -> None:
        zone = self.zones.get(zone_name.zone_number)
        if zone is None:
            log.debug(f"Name for unknown zone {zone_name.zone_number}, dropping")
            return
        first = not zone.name and bool(zone_name.name)
        zone.name = zone_name.name
        self._notify("zone_name_updated", zone.number, zone_name.name)
        if first:
            self._notify("zone_ready_for_registration", zone.number, zone_name.name)

    def record_ac_error(self, error: AcErrorInfo) -> None:
        unit = self.units.get(error.unit_number)
        if unit is None:
            log.debug(f"Error info for unknown AC {error.unit_number}, dropping")
            return
        unit.error_message = error.message
        log.warning(f"AC {error.unit_number} reports error: {error.message}")
        self._notify("unit_error_reported", error)

    def reconnecting(self) -> None:
        self._notify("reconnecting")

    # --- Queries ---

    def unit_for_zone(self, zone_number: int) -> Unit | None:
        zone = self.zones.get(zone_number)
        if zone is None:
            return None
        return self.units.get(zone.unit_number)

    def zones_of_unit(self, unit_number: int) -> list[Zone]:
        return [z for z in self.zones.values() if z.unit_number == unit_number]

    def unit_is_active(self, unit_number: int) -> bool | None:
        unit = self.units.get(unit_number)
        if unit is None or unit.status is None:
            return None
        return unit.status.power_state in ACTIVE_AC_POWER_STATES

    def zone_is_active(self, zone_number: int) -> bool | None:
        zone = self.zones.get(zone_number)
        if zone is None or zone.status is None:
            return None
        return zone.status.power_state in ACTIVE_ZONE_POWER_STATES

    def zone_damper_percent(self, zone_number: int) -> int | None:
        zone = self.zones.get(zone_number)
        if zone is None or zone.status is None:
            return None
        return zone.status.damper_percent

    def zone_current_temperature(self, zone_number: int) -> float | None:
        """Zone sensor reading, or the owning AC's when the zone has no sensor."""
        zone = self.zones.get(zone_number)
        if zone is None or zone.status is None:
            return None
        if zone.status.has_sensor:
            return zone.status.temperature
        unit = self.units.get(zone.unit_number)
        if unit is None or unit.status is None:
            return None
        return unit.status.temperature

    def zone_target_temperature(self, zone_number: int) -> float | None:
        zone = self.zones.get(zone_number)
        if zone is None or zone.status is None:
            return None
        if zone.status.has_sensor:
            return zone.status.setpoint
        unit = self.units.get(zone.unit_number)
        if unit is None or unit.status is None:
            return None
        return unit.status.setpoint

    def unit_current_state(self, unit_number: int) -> ClimateState | None:
        unit = self.units.get(unit_number)
        if unit is None or unit.status is None:
            return None
        zones = self.zones_of_unit(unit_number)
        all_closed = all(
            z.status is None or z.status.damper_percent == 0 for z in zones
        )
        return derive_current_state(
            powered=unit.status.power_state in ACTIVE_AC_POWER_STATES,
            airflow=not all_closed,
            mode=unit.status.mode,
            target=unit.status.setpoint,
            current=unit.status.temperature,
        )

    def unit_target_state(self, unit_number: int) -> TargetClimateState | None:
        unit = self.units.get(unit_number)
        if unit is None or unit.status is None:
            return None
        return derive_target_state(unit.status.mode)

    def zone_current_state(self, zone_number: int) -> ClimateState | None:
        zone = self.zones.get(zone_number)
        unit = self.unit_for_zone(zone_number)
        if zone is None or zone.status is None or unit is None or unit.status is None:
            return None
        powered = (
            zone.status.power_state in ACTIVE_ZONE_POWER_STATES
            and unit.status.power_state in ACTIVE_AC_POWER_STATES
        )
        return derive_current_state(
            powered=powered,
            airflow=zone.status.damper_percent > 0,
            mode=unit.status.mode,
            target=self.zone_target_temperature(zone_number),
            current=self.zone_current_temperature(zone_number),
        )

    def zone_target_state(self, zone_number: int) -> TargetClimateState | None:
        unit = self.unit_for_zone(zone_number)
        if unit is None or unit.status is None:
            return None
        return derive_target_state(unit.status.mode)

    def unit_snapshot(self, unit_number: int) -> UnitSnapshot | None:
        unit = self.units.get(unit_number)
        if unit is None:
            return None
        return UnitSnapshot(
            unit_number=unit.number,
            name=unit.ability.name,
            zones=[z.number for z in self.zones_of_unit(unit.number)],
            ability=unit.ability,
            status=unit.status,
            error_message=unit.error_message,
            active=self.unit_is_active(unit.number),
            current_state=self.unit_current_state(unit.number),
            target_state=self.unit_target_state(unit.number),
        )

    def zone_snapshot(self, zone_number: int) -> ZoneSnapshot | None:
        zone = self.zones.get(zone_number)
        if zone is None:
            return None
        return ZoneSnapshot(
            zone_number=zone.number,
            unit_number=zone.unit_number,
            name=zone.name,
            status=zone.status,
            active=self.zone_is_active(zone.number),
            current_state=self.zone_current_state(zone.number),
            target_state=self.zone_target_state(zone.number),
            current_temperature=self.zone_current_temperature(zone.number),
            target_temperature=self.zone_target_temperature(zone.number),
            damper_percent=self.zone_damper_percent(zone.number),
        )

    def snapshot(self) -> ControllerSnapshot:
        return ControllerSnapshot(
            units=[self.unit_snapshot(n) for n in sorted(self.units)],
            zones=[self.zone_snapshot(n) for n in sorted(self.zones)],
        )
