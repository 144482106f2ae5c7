# tests/core/test_climate.py
import pytest

from pyairtouch5.core.climate import derive_current_state, derive_target_state
from pyairtouch5.core.constants import AcMode, ClimateState, TargetClimateState


class TestDeriveCurrentState:
    def test_off_is_inactive(self) -> None:
        assert derive_current_state(False, True, AcMode.HEAT, 22.0, 18.0) == ClimateState.INACTIVE

    def test_closed_is_idle(self) -> None:
        assert derive_current_state(True, False, AcMode.HEAT, 22.0, 18.0) == ClimateState.IDLE

    def test_auto_compares_temperatures(self) -> None:
        assert derive_current_state(True, True, AcMode.AUTO, 20.0, 24.0) == ClimateState.COOLING
        assert derive_current_state(True, True, AcMode.AUTO, 24.0, 20.0) == ClimateState.HEATING
        assert derive_current_state(True, True, AcMode.AUTO, 22.0, 22.0) == ClimateState.HEATING

    @pytest.mark.parametrize("mode", [AcMode.HEAT, AcMode.AUTO_HEAT])
    def test_heating_modes(self, mode: AcMode) -> None:
        # Mode wins over the temperature comparison
        assert derive_current_state(True, True, mode, 18.0, 25.0) == ClimateState.HEATING

    @pytest.mark.parametrize("mode", [AcMode.COOL, AcMode.AUTO_COOL])
    def test_cooling_modes(self, mode: AcMode) -> None:
        assert derive_current_state(True, True, mode, 25.0, 18.0) == ClimateState.COOLING

    @pytest.mark.parametrize("mode", [AcMode.DRY, AcMode.FAN])
    def test_dry_and_fan_report_cooling(self, mode: AcMode) -> None:
        assert derive_current_state(True, True, mode, 22.0, 22.0) == ClimateState.COOLING

    def test_unknown_mode_is_inactive(self, caplog) -> None:
        with caplog.at_level("WARNING"):
            state = derive_current_state(True, True, AcMode.UNKNOWN, 22.0, 22.0)
        assert state == ClimateState.INACTIVE
        assert "Unhandled AC mode" in caplog.text


class TestDeriveTargetState:
    @pytest.mark.parametrize(
        "mode, expected",
        [
            (AcMode.AUTO, TargetClimateState.AUTO),
            (AcMode.HEAT, TargetClimateState.HEAT),
            (AcMode.AUTO_HEAT, TargetClimateState.HEAT),
            (AcMode.COOL, TargetClimateState.COOL),
            (AcMode.AUTO_COOL, TargetClimateState.COOL),
            (AcMode.DRY, TargetClimateState.COOL),
            (AcMode.FAN, TargetClimateState.COOL),
            (AcMode.UNKNOWN, TargetClimateState.AUTO),
        ],
    )
    def test_mapping(self, mode: AcMode, expected: TargetClimateState) -> None:
        assert derive_target_state(mode) == expected
