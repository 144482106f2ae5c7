# src/pyairtouch5/core/climate.py
"""
Heating/cooling state derivation shared by unit and zone views.

The consumers of this library model climate as heat/cool/idle. Dry and
fan-only modes have no equivalent there and are reported as cooling; this
is a known lossy mapping.
"""
import logging

from .constants import AcMode, ClimateState, TargetClimateState

log = logging.getLogger(__name__)

HEATING_MODES = (AcMode.HEAT, AcMode.AUTO_HEAT)
COOLING_MODES = (AcMode.COOL, AcMode.AUTO_COOL)
APPROXIMATED_MODES = (AcMode.DRY, AcMode.FAN)


def derive_current_state(
    powered: bool,
    airflow: bool,
    mode: AcMode,
    target: float,
    current: float,
) -> ClimateState:
    """
    Current state of a unit or zone.

    Args:
        powered: Whether the unit (and, for a zone, the zone) is switched on.
        airflow: Whether any air is flowing (zone damper, or any zone of the unit).
        mode: The owning AC's mode; authoritative once it leaves auto.
        target: Setpoint in °C, only compared in auto mode.
        current: Measured temperature in °C, only compared in auto mode.
    """
    if not powered:
        return ClimateState.INACTIVE
    if not airflow:
        return ClimateState.IDLE
    if mode == AcMode.AUTO:
        return ClimateState.COOLING if target < current else ClimateState.HEATING
    if mode in HEATING_MODES:
        return ClimateState.HEATING
    if mode in COOLING_MODES:
        return ClimateState.COOLING
    if mode in APPROXIMATED_MODES:
        log.info(f"AC is in {mode.name} mode, reporting it as cooling")
        return ClimateState.COOLING
    log.warning(f"Unhandled AC mode {mode!r}, reporting inactive")
    return ClimateState.INACTIVE


def derive_target_state(mode: AcMode) -> TargetClimateState:
    if mode == AcMode.AUTO:
        return TargetClimateState.AUTO
    if mode in HEATING_MODES:
        return TargetClimateState.HEAT
    if mode in COOLING_MODES:
        return TargetClimateState.COOL
    if mode in APPROXIMATED_MODES:
        log.info(f"AC is in {mode.name} mode, reporting target as cool")
        return TargetClimateState.COOL
    log.warning(f"Unhandled AC mode {mode!r}, reporting target as auto")
    return TargetClimateState.AUTO
