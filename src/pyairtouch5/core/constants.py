# src/pyairtouch5/core/constants.py
from enum import Enum, IntEnum

# Wire layout
HEADER_BYTES = bytes([0x55, 0x55, 0x55, 0xAA])
ADDRESS_STANDARD = bytes([0x80, 0xB0])
ADDRESS_EXTENDED = bytes([0x90, 0xB0])
MESSAGE_ID = 0x01
MSGTYPE_STANDARD = 0xC0
MSGTYPE_EXTENDED = 0x1F

# magic(4) + address(2) + id(1) + type(1) + length(2)
FRAME_HEADER_SIZE = 10
CHECKSUM_SIZE = 2
MAX_PAYLOAD_SIZE = 2048
READ_SIZE = 4096

# Standard message subtypes
SUBTYPE_ZONE_CTRL = 0x20
SUBTYPE_ZONE_STAT = 0x21
SUBTYPE_AC_CTRL = 0x22
SUBTYPE_AC_STAT = 0x23

# Extended message subtypes (preceded by 0xFF on the wire)
EXTENDED_PREFIX = 0xFF
EXT_SUBTYPE_AC_ERROR = 0x10
EXT_SUBTYPE_AC_ABILITY = 0x11
EXT_SUBTYPE_ZONE_NAME = 0x13

# One repeat of four control bytes
CONTROL_REPEAT_HEADER = bytes([0x00, 0x04, 0x00, 0x01])
EMPTY_STATUS_REQUEST = bytes([0x00, 0x00, 0x00, 0x00])

LENGTH_AC_ABILITY = 26
LENGTH_STATUS_RECORD = 8

MAX_AC_UNITS = 8
MAX_ZONES = 16

# Setpoints are sent and received as (celsius * 10) - 100
MIN_SETPOINT = 10.0
MAX_SETPOINT = 35.0
TEMPERATURE_OFFSET = 100
TEMPERATURE_SCALE = 10.0
# Current temperature is an 11 bit value offset by 500
CURRENT_TEMPERATURE_OFFSET = 500

# Network
TCP_PORT = 9005
DISCOVERY_PORT = 49005
DISCOVERY_BROADCAST_ADDRESS = "255.255.255.255"
DISCOVERY_REQUEST = b"::REQUEST-POLYAIRE-AIRTOUCH-DEVICE-INFO:;"
DISCOVERY_TIMEOUT = 5.0

# Session timers (seconds)
LIVENESS_INTERVAL = 10.0
SILENCE_TIMEOUT = 120.0
RECONNECT_DELAY = 10.0
CONNECT_TIMEOUT = 5.0
CONNECT_ATTEMPTS = 3
CONNECT_RETRY_WAIT = 2.0


class MessageKind(Enum):
    ZONE_STATUS = "zone_status"
    AC_STATUS = "ac_status"
    AC_ABILITY = "ac_ability"
    ZONE_NAMES = "zone_names"
    AC_ERROR = "ac_error"


# Decoded (status) values


class AcPowerState(IntEnum):
    UNKNOWN = -1
    OFF = 0
    ON = 1
    AWAY_OFF = 2
    AWAY_ON = 3
    SLEEP = 5


class AcMode(IntEnum):
    UNKNOWN = -1
    AUTO = 0
    HEAT = 1
    DRY = 2
    FAN = 3
    COOL = 4
    AUTO_HEAT = 8
    AUTO_COOL = 9


class FanSpeed(IntEnum):
    AUTO = 0
    QUIET = 1
    LOW = 2
    MEDIUM = 3
    HIGH = 4
    POWERFUL = 5
    TURBO = 6
    INTELLIGENT_AUTO = 8


class ZonePowerState(IntEnum):
    UNKNOWN = -1
    OFF = 0
    ON = 1
    TURBO = 3


class ZoneControlType(IntEnum):
    PERCENTAGE = 0
    TEMPERATURE = 1


# Control values


class AcPowerControl(IntEnum):
    KEEP = 0
    NEXT = 1
    OFF = 2
    ON = 3
    AWAY = 4
    SLEEP = 5


AC_MODE_KEEP = 5
FAN_SPEED_KEEP = 7
CONTROLLABLE_MODES = (AcMode.AUTO, AcMode.HEAT, AcMode.DRY, AcMode.FAN, AcMode.COOL)
CONTROLLABLE_FAN_SPEEDS = (
    FanSpeed.AUTO,
    FanSpeed.QUIET,
    FanSpeed.LOW,
    FanSpeed.MEDIUM,
    FanSpeed.HIGH,
    FanSpeed.POWERFUL,
    FanSpeed.TURBO,
)


class SetpointControl(IntEnum):
    KEEP = 0x0
    SET = 0x4


class ZonePowerControl(IntEnum):
    KEEP = 0
    NEXT = 1
    OFF = 2
    ON = 3
    TURBO = 5


class ZoneSettingType(IntEnum):
    KEEP = 0
    DECREMENT = 2
    INCREMENT = 3
    PERCENTAGE = 4
    SETPOINT = 5


# Derived climate states exposed to collaborators


class ClimateState(str, Enum):
    INACTIVE = "inactive"
    IDLE = "idle"
    HEATING = "heating"
    COOLING = "cooling"


class TargetClimateState(str, Enum):
    AUTO = "auto"
    HEAT = "heat"
    COOL = "cool"


ACTIVE_AC_POWER_STATES = (AcPowerState.ON, AcPowerState.AWAY_ON)
ACTIVE_ZONE_POWER_STATES = (ZonePowerState.ON, ZonePowerState.TURBO)
