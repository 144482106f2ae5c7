# src/pyairtouch5/core/codec.py
"""
Encoders for outbound control/request messages and decoders for the
status, ability and name messages pushed by the controller.

Decoding never raises: malformed records are logged and skipped, unknown
message types decode to ``None``.
"""
import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import TypeVar

from construct import (
    BitsInteger,
    BitStruct,
    Byte,
    Bytes,
    ConstructError,
    Flag,
    GreedyBytes,
    Int16ub,
    Padding,
    Struct,
    this,
)
from pydantic import BaseModel, ValidationError

from .constants import (
    AC_MODE_KEEP,
    ADDRESS_EXTENDED,
    ADDRESS_STANDARD,
    CONTROL_REPEAT_HEADER,
    CONTROLLABLE_FAN_SPEEDS,
    CONTROLLABLE_MODES,
    CURRENT_TEMPERATURE_OFFSET,
    EMPTY_STATUS_REQUEST,
    EXT_SUBTYPE_AC_ABILITY,
    EXT_SUBTYPE_AC_ERROR,
    EXT_SUBTYPE_ZONE_NAME,
    EXTENDED_PREFIX,
    FAN_SPEED_KEEP,
    LENGTH_AC_ABILITY,
    LENGTH_STATUS_RECORD,
    MAX_AC_UNITS,
    MAX_SETPOINT,
    MAX_ZONES,
    MIN_SETPOINT,
    SUBTYPE_AC_CTRL,
    SUBTYPE_AC_STAT,
    SUBTYPE_ZONE_CTRL,
    SUBTYPE_ZONE_STAT,
    TEMPERATURE_OFFSET,
    TEMPERATURE_SCALE,
    AcMode,
    AcPowerControl,
    AcPowerState,
    FanSpeed,
    MessageKind,
    SetpointControl,
    ZoneControlType,
    ZonePowerControl,
    ZonePowerState,
    ZoneSettingType,
)
from .frame import Frame, assemble_extended_message, assemble_standard_message
from .models import (
    KEEP,
    AcAbility,
    AcControl,
    AcErrorInfo,
    AcStatus,
    Change,
    ZoneControl,
    ZoneName,
    ZoneStatus,
)

log = logging.getLogger(__name__)

E = TypeVar("E", bound=IntEnum)


# --- Wire structures ---

# Payload of a standard status message (everything after the frame header)
StatusPayload = Struct(
    "subtype" / Byte,
    "reserved" / Byte,
    "normal_length" / Int16ub,
    "repeat_length" / Int16ub,
    "repeat_count" / Int16ub,
    "normal_data" / Bytes(this.normal_length),
    "repeat_data" / GreedyBytes,
)

ZoneStatusRecord = BitStruct(
    "power_state" / BitsInteger(2),
    "zone_number" / BitsInteger(6),
    "control_type" / BitsInteger(1),
    "damper_percent" / BitsInteger(7),
    "setpoint" / BitsInteger(8),
    "has_sensor" / Flag,
    Padding(7),
    # Only the low 11 bits of the 16 bit field carry the temperature
    Padding(5),
    "temperature" / BitsInteger(11),
    Padding(6),
    "spill" / Flag,
    "battery_low" / Flag,
    Padding(8),
)

AcStatusRecord = BitStruct(
    "power_state" / BitsInteger(4),
    "unit_number" / BitsInteger(4),
    "mode" / BitsInteger(4),
    "fan_speed" / BitsInteger(4),
    "setpoint" / BitsInteger(8),
    Padding(4),
    "turbo" / Flag,
    "bypass" / Flag,
    "spill" / Flag,
    "timer" / Flag,
    Padding(5),
    "temperature" / BitsInteger(11),
    "error_code" / BitsInteger(16),
)

AcAbilityRecord = Struct(
    "unit_number" / Byte,
    "data_length" / Byte,
    "name" / Bytes(16),
    "start_zone" / Byte,
    "zone_count" / Byte,
    "modes"
    / BitStruct(
        Padding(3),
        "cool" / Flag,
        "fan" / Flag,
        "dry" / Flag,
        "heat" / Flag,
        "auto" / Flag,
    ),
    "fan_speeds"
    / BitStruct(
        "intelligent_auto" / Flag,
        "turbo" / Flag,
        "powerful" / Flag,
        "high" / Flag,
        "medium" / Flag,
        "low" / Flag,
        "quiet" / Flag,
        "auto" / Flag,
    ),
    "min_cool" / Byte,
    "max_cool" / Byte,
    "min_heat" / Byte,
    "max_heat" / Byte,
)

AcControlRecord = BitStruct(
    "power" / BitsInteger(4),
    "unit_number" / BitsInteger(4),
    "mode" / BitsInteger(4),
    "fan_speed" / BitsInteger(4),
    "setpoint_control" / BitsInteger(4),
    Padding(4),
    "setpoint" / BitsInteger(8),
)

ZoneControlRecord = Struct(
    "zone_number" / Byte,
    "settings"
    / BitStruct(
        "setting_type" / BitsInteger(3),
        Padding(2),
        "power" / BitsInteger(3),
    ),
    "value" / Byte,
    Padding(1),
)

MODE_FLAGS = {
    "auto": AcMode.AUTO,
    "heat": AcMode.HEAT,
    "dry": AcMode.DRY,
    "fan": AcMode.FAN,
    "cool": AcMode.COOL,
}

FAN_SPEED_FLAGS = {
    "auto": FanSpeed.AUTO,
    "quiet": FanSpeed.QUIET,
    "low": FanSpeed.LOW,
    "medium": FanSpeed.MEDIUM,
    "high": FanSpeed.HIGH,
    "powerful": FanSpeed.POWERFUL,
    "turbo": FanSpeed.TURBO,
    "intelligent_auto": FanSpeed.INTELLIGENT_AUTO,
}


@dataclass
class DecodedMessage:
    kind: MessageKind
    records: list[BaseModel] = field(default_factory=list)


# --- Value helpers ---


def encode_setpoint(celsius: float) -> int:
    if not MIN_SETPOINT <= celsius <= MAX_SETPOINT:
        raise ValueError(
            f"Setpoint {celsius} outside {MIN_SETPOINT}-{MAX_SETPOINT} °C"
        )
    return round(celsius * TEMPERATURE_SCALE) - TEMPERATURE_OFFSET


def decode_setpoint(raw: int) -> float:
    return (raw + TEMPERATURE_OFFSET) / TEMPERATURE_SCALE


def decode_temperature(raw: int) -> float:
    return (raw - CURRENT_TEMPERATURE_OFFSET) / TEMPERATURE_SCALE


def _enum_or(enum_cls: type[E], raw: int, default: E, field_name: str) -> E:
    try:
        return enum_cls(raw)
    except ValueError:
        log.warning(f"Unknown {field_name} value {raw}, using {default.name}")
        return default


# --- Encoding ---


def encode_ac_control(control: AcControl) -> bytes:
    if not 0 <= control.unit_number < MAX_AC_UNITS:
        raise ValueError(f"Invalid AC unit number: {control.unit_number}")

    power = AcPowerControl.KEEP
    if isinstance(control.power, Change):
        power = AcPowerControl(control.power.value)

    mode = AC_MODE_KEEP
    if isinstance(control.mode, Change):
        if control.mode.value not in CONTROLLABLE_MODES:
            raise ValueError(f"Mode {control.mode.value!r} cannot be set")
        mode = int(control.mode.value)

    fan_speed = FAN_SPEED_KEEP
    if isinstance(control.fan_speed, Change):
        if control.fan_speed.value not in CONTROLLABLE_FAN_SPEEDS:
            raise ValueError(f"Fan speed {control.fan_speed.value!r} cannot be set")
        fan_speed = int(control.fan_speed.value)

    setpoint_control = SetpointControl.KEEP
    setpoint = 0
    if isinstance(control.setpoint, Change):
        setpoint_control = SetpointControl.SET
        setpoint = encode_setpoint(control.setpoint.value)

    return AcControlRecord.build(
        {
            "power": int(power),
            "unit_number": control.unit_number,
            "mode": mode,
            "fan_speed": fan_speed,
            "setpoint_control": int(setpoint_control),
            "setpoint": setpoint,
        }
    )


def decode_ac_control(data: bytes) -> AcControl:
    """Inverse of :func:`encode_ac_control`."""
    rec = AcControlRecord.parse(data)
    power = rec.power
    return AcControl(
        unit_number=rec.unit_number,
        power=KEEP if power == AcPowerControl.KEEP else Change(AcPowerControl(power)),
        mode=Change(AcMode(rec.mode)) if rec.mode in CONTROLLABLE_MODES else KEEP,
        fan_speed=(
            Change(FanSpeed(rec.fan_speed))
            if rec.fan_speed in CONTROLLABLE_FAN_SPEEDS
            else KEEP
        ),
        setpoint=(
            Change(decode_setpoint(rec.setpoint))
            if rec.setpoint_control == SetpointControl.SET
            else KEEP
        ),
    )


def encode_zone_control(control: ZoneControl) -> bytes:
    if not 0 <= control.zone_number < MAX_ZONES:
        raise ValueError(f"Invalid zone number: {control.zone_number}")

    power = ZonePowerControl.KEEP
    if isinstance(control.power, Change):
        power = ZonePowerControl(control.power.value)

    setting_type = ZoneSettingType.KEEP
    value = 0
    if isinstance(control.damper_percent, Change) and isinstance(control.setpoint, Change):
        raise ValueError("Set either a damper percentage or a setpoint, not both")
    if isinstance(control.damper_percent, Change):
        percent = control.damper_percent.value
        if not 0 <= percent <= 100:
            raise ValueError(f"Damper percentage {percent} outside 0-100")
        setting_type = ZoneSettingType.PERCENTAGE
        value = percent
    elif isinstance(control.setpoint, Change):
        setting_type = ZoneSettingType.SETPOINT
        value = encode_setpoint(control.setpoint.value)

    return ZoneControlRecord.build(
        {
            "zone_number": control.zone_number,
            "settings": {"setting_type": int(setting_type), "power": int(power)},
            "value": value,
        }
    )


def decode_zone_control(data: bytes) -> ZoneControl:
    """Inverse of :func:`encode_zone_control`."""
    rec = ZoneControlRecord.parse(data)
    power = rec.settings.power
    setting_type = rec.settings.setting_type
    return ZoneControl(
        zone_number=rec.zone_number,
        power=KEEP if power == ZonePowerControl.KEEP else Change(ZonePowerControl(power)),
        damper_percent=(
            Change(rec.value) if setting_type == ZoneSettingType.PERCENTAGE else KEEP
        ),
        setpoint=(
            Change(decode_setpoint(rec.value))
            if setting_type == ZoneSettingType.SETPOINT
            else KEEP
        ),
    )


def build_ac_control_message(control: AcControl) -> bytes:
    return assemble_standard_message(
        SUBTYPE_AC_CTRL, CONTROL_REPEAT_HEADER + encode_ac_control(control)
    )


def build_zone_control_message(control: ZoneControl) -> bytes:
    return assemble_standard_message(
        SUBTYPE_ZONE_CTRL, CONTROL_REPEAT_HEADER + encode_zone_control(control)
    )


# --- Requests ---


def request_ac_ability(unit_number: int | None = None) -> bytes:
    """Ask for the ability of one unit, or of every unit when omitted."""
    payload = [EXTENDED_PREFIX, EXT_SUBTYPE_AC_ABILITY]
    if unit_number is not None:
        payload.append(unit_number)
    return assemble_extended_message(bytes(payload))


def request_ac_status() -> bytes:
    return assemble_standard_message(SUBTYPE_AC_STAT, EMPTY_STATUS_REQUEST)


def request_zone_status() -> bytes:
    return assemble_standard_message(SUBTYPE_ZONE_STAT, EMPTY_STATUS_REQUEST)


def request_zone_names() -> bytes:
    return assemble_extended_message(bytes([EXTENDED_PREFIX, EXT_SUBTYPE_ZONE_NAME]))


def request_ac_error(unit_number: int) -> bytes:
    return assemble_extended_message(
        bytes([EXTENDED_PREFIX, EXT_SUBTYPE_AC_ERROR, unit_number])
    )


# --- Decoding ---


def _split_records(count: int, length: int, data: bytes, minimum: int) -> list[bytes]:
    if count and length < minimum:
        log.warning(f"Repeat length {length} shorter than a {minimum} byte record")
        return []
    available = len(data) // length if length else 0
    if available < count:
        log.warning(f"Message announces {count} records but carries {available}")
        count = available
    return [data[i * length : (i + 1) * length] for i in range(count)]


def decode_zone_status_record(data: bytes) -> ZoneStatus:
    rec = ZoneStatusRecord.parse(data)
    damper = rec.damper_percent
    if damper > 100:
        log.warning(f"Zone {rec.zone_number} reports damper {damper}%, clamping to 100")
        damper = 100
    return ZoneStatus(
        zone_number=rec.zone_number,
        power_state=_enum_or(ZonePowerState, rec.power_state, ZonePowerState.UNKNOWN, "zone power state"),
        control_type=ZoneControlType(rec.control_type),
        damper_percent=damper,
        setpoint=decode_setpoint(rec.setpoint),
        temperature=decode_temperature(rec.temperature),
        has_sensor=rec.has_sensor,
        spill=rec.spill,
        battery_low=rec.battery_low,
    )


def decode_ac_status_record(data: bytes) -> AcStatus:
    rec = AcStatusRecord.parse(data)
    return AcStatus(
        unit_number=rec.unit_number,
        power_state=_enum_or(AcPowerState, rec.power_state, AcPowerState.UNKNOWN, "AC power state"),
        mode=_enum_or(AcMode, rec.mode, AcMode.UNKNOWN, "AC mode"),
        fan_speed=rec.fan_speed,
        setpoint=decode_setpoint(rec.setpoint),
        temperature=decode_temperature(rec.temperature),
        turbo=rec.turbo,
        bypass=rec.bypass,
        spill=rec.spill,
        timer=rec.timer,
        error_code=rec.error_code,
    )


def decode_ac_ability_record(data: bytes) -> AcAbility:
    rec = AcAbilityRecord.parse(data)
    name = rec.name.split(b"\x00", 1)[0].decode("utf-8", errors="replace")
    return AcAbility(
        unit_number=rec.unit_number,
        name=name,
        start_zone=rec.start_zone,
        zone_count=rec.zone_count,
        supported_modes=frozenset(
            mode for flag, mode in MODE_FLAGS.items() if rec.modes[flag]
        ),
        supported_fan_speeds=frozenset(
            speed for flag, speed in FAN_SPEED_FLAGS.items() if rec.fan_speeds[flag]
        ),
        min_cool=rec.min_cool,
        max_cool=rec.max_cool,
        min_heat=rec.min_heat,
        max_heat=rec.max_heat,
    )


def decode_zone_names(data: bytes) -> list[ZoneName]:
    names: list[ZoneName] = []
    offset = 0
    while offset < len(data):
        if offset + 2 > len(data):
            log.warning(f"Truncated zone name record at offset {offset}")
            break
        zone_number = data[offset]
        length = data[offset + 1]
        raw = data[offset + 2 : offset + 2 + length]
        offset += 2 + length
        if len(raw) < length:
            log.warning(f"Zone {zone_number} name truncated ({len(raw)}/{length} bytes)")
            break
        name = raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace").strip()
        try:
            names.append(ZoneName(zone_number=zone_number, name=name))
        except ValidationError as e:
            log.warning(f"Dropping zone name record: {e}")
    return names


def decode_ac_error(data: bytes) -> AcErrorInfo | None:
    if len(data) < 2:
        log.warning(f"Short AC error message: {data.hex()}")
        return None
    unit_number, length = data[0], data[1]
    message = data[2 : 2 + length].decode("ascii", errors="replace").strip("\x00 ")
    return AcErrorInfo(unit_number=unit_number, message=message)


def _decode_records(decoder, chunks: list[bytes], what: str) -> list[BaseModel]:
    records: list[BaseModel] = []
    for chunk in chunks:
        try:
            records.append(decoder(chunk))
        except (ConstructError, ValidationError, ValueError) as e:
            log.warning(f"Dropping malformed {what} record {chunk.hex()}: {e}")
    return records


def decode_standard_payload(payload: bytes) -> DecodedMessage | None:
    try:
        msg = StatusPayload.parse(payload)
    except ConstructError as e:
        log.debug(f"Unparseable standard payload {payload.hex()}: {e}")
        return None

    if msg.subtype == SUBTYPE_ZONE_STAT:
        chunks = _split_records(msg.repeat_count, msg.repeat_length, msg.repeat_data, LENGTH_STATUS_RECORD)
        return DecodedMessage(
            MessageKind.ZONE_STATUS,
            _decode_records(decode_zone_status_record, [c[:LENGTH_STATUS_RECORD] for c in chunks], "zone status"),
        )
    if msg.subtype == SUBTYPE_AC_STAT:
        chunks = _split_records(msg.repeat_count, msg.repeat_length, msg.repeat_data, LENGTH_STATUS_RECORD)
        return DecodedMessage(
            MessageKind.AC_STATUS,
            _decode_records(decode_ac_status_record, [c[:LENGTH_STATUS_RECORD] for c in chunks], "AC status"),
        )
    log.debug(f"Ignoring standard message subtype 0x{msg.subtype:02x}")
    return None


def decode_extended_payload(payload: bytes) -> DecodedMessage | None:
    if len(payload) < 2 or payload[0] != EXTENDED_PREFIX:
        log.debug(f"Ignoring extended payload {payload.hex()}")
        return None
    subtype, data = payload[1], payload[2:]

    if subtype == EXT_SUBTYPE_AC_ABILITY:
        count, remainder = divmod(len(data), LENGTH_AC_ABILITY)
        if remainder:
            log.warning(f"AC ability payload has {remainder} trailing bytes")
        chunks = [data[i * LENGTH_AC_ABILITY : (i + 1) * LENGTH_AC_ABILITY] for i in range(count)]
        return DecodedMessage(
            MessageKind.AC_ABILITY,
            _decode_records(decode_ac_ability_record, chunks, "AC ability"),
        )
    if subtype == EXT_SUBTYPE_ZONE_NAME:
        return DecodedMessage(MessageKind.ZONE_NAMES, decode_zone_names(data))
    if subtype == EXT_SUBTYPE_AC_ERROR:
        error = decode_ac_error(data)
        return DecodedMessage(MessageKind.AC_ERROR, [error] if error else [])
    log.debug(f"Ignoring extended message subtype 0x{subtype:02x}")
    return None


def decode_frame(frame: Frame) -> DecodedMessage | None:
    """Dispatches a parsed frame on its source address byte, then its subtype."""
    header = frame.body.value.header
    payload = frame.body.value.payload
    source = header.address[1]
    if source == ADDRESS_STANDARD[0]:
        return decode_standard_payload(payload)
    if source == ADDRESS_EXTENDED[0]:
        return decode_extended_payload(payload)
    log.debug(f"Ignoring message from unknown address {header.address.hex()}")
    return None
