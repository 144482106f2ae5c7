# tests/conftest.py
import os
import tempfile

import pytest

# Keep log files out of the user's cache directory
_log_dir = tempfile.mkdtemp(prefix="pyairtouch5-tests-")
os.environ.setdefault("LOG_FILE_PATH", os.path.join(_log_dir, "pyairtouch5.log"))

# Ensure test-friendly settings: no discovery, no broker
os.environ.setdefault("AT5_CONTROLLERS", "")
os.environ.setdefault("MQTT_ENABLED", "false")

from pyairtouch5.core.frame import wrap  # noqa: E402

INBOUND_STANDARD = bytes([0xB0, 0x80])
INBOUND_EXTENDED = bytes([0xB0, 0x90])


def inbound_frame(address: bytes, message_type: int, payload: bytes) -> bytes:
    body = address + bytes([0x01, message_type]) + len(payload).to_bytes(2, "big") + payload
    return wrap(body)


@pytest.fixture(autouse=True)
def _isolation_env(monkeypatch):
    from pyairtouch5 import config as cfg

    monkeypatch.setattr(cfg.settings, "MQTT_ENABLED", False)
    monkeypatch.setattr(cfg.settings, "AT5_CONTROLLERS", [])
    yield


@pytest.fixture
def zone_record():
    """Builds one 8 byte zone status record."""

    def _build(
        zone: int,
        power: int = 1,
        damper: int = 0,
        setpoint_raw: int = 120,
        has_sensor: bool = True,
        temperature_raw: int = 730,
        control_type: int = 0,
        spill: bool = False,
        battery_low: bool = False,
    ) -> bytes:
        return bytes(
            [
                (power << 6) | zone,
                (control_type << 7) | damper,
                setpoint_raw,
                0x80 if has_sensor else 0x00,
            ]
        ) + temperature_raw.to_bytes(2, "big") + bytes([(spill << 1) | battery_low, 0])

    return _build


@pytest.fixture
def ac_record():
    """Builds one 8 byte AC status record."""

    def _build(
        unit: int,
        power: int = 1,
        mode: int = 0,
        fan: int = 0,
        setpoint_raw: int = 120,
        temperature_raw: int = 730,
        flags: int = 0,
        error_code: int = 0,
    ) -> bytes:
        return (
            bytes([(power << 4) | unit, (mode << 4) | fan, setpoint_raw, flags])
            + temperature_raw.to_bytes(2, "big")
            + error_code.to_bytes(2, "big")
        )

    return _build


@pytest.fixture
def ability_record():
    """Builds one 26 byte AC ability record."""

    def _build(
        unit: int,
        name: str = "Living",
        start_zone: int = 0,
        zone_count: int = 2,
        modes: int = 0b10011,
        fan_speeds: int = 0b00011101,
        cool: tuple[int, int] = (16, 30),
        heat: tuple[int, int] = (16, 30),
    ) -> bytes:
        raw_name = name.encode().ljust(16, b"\x00")
        return (
            bytes([unit, 24])
            + raw_name
            + bytes([start_zone, zone_count, modes, fan_speeds, cool[0], cool[1], heat[0], heat[1]])
        )

    return _build


@pytest.fixture
def standard_frame():
    """Wraps status records the way the controller pushes them."""

    def _build(subtype: int, records: list[bytes], record_length: int = 8, normal: bytes = b"") -> bytes:
        payload = (
            bytes([subtype, 0x00])
            + len(normal).to_bytes(2, "big")
            + record_length.to_bytes(2, "big")
            + len(records).to_bytes(2, "big")
            + normal
            + b"".join(records)
        )
        return inbound_frame(INBOUND_STANDARD, 0xC0, payload)

    return _build


@pytest.fixture
def extended_frame():
    def _build(subtype: int, data: bytes) -> bytes:
        return inbound_frame(INBOUND_EXTENDED, 0x1F, bytes([0xFF, subtype]) + data)

    return _build


@pytest.fixture
def zone_names_data():
    def _build(names: dict[int, str]) -> bytes:
        data = b""
        for zone, name in names.items():
            raw = name.encode()
            data += bytes([zone, len(raw)]) + raw
        return data

    return _build
