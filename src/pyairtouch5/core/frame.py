# src/pyairtouch5/core/frame.py
import logging
from typing import Any

from construct import (
    Byte,
    Bytes,
    Const,
    ConstructError,
    Int16ub,
    RawCopy,
    Struct,
    this,
)
from crc import Calculator, Configuration

from .constants import (
    ADDRESS_EXTENDED,
    ADDRESS_STANDARD,
    CHECKSUM_SIZE,
    FRAME_HEADER_SIZE,
    HEADER_BYTES,
    MAX_PAYLOAD_SIZE,
    MESSAGE_ID,
    MSGTYPE_EXTENDED,
    MSGTYPE_STANDARD,
)

log = logging.getLogger(__name__)

# CRC-16/MODBUS to match the controller
# polynomial: 0x8005 (0xA001 reflected), init: 0xFFFF, xor_out: 0x0000, reflect_in/out: True
CRC_CONFIG = Configuration(16, 0x8005, 0xFFFF, 0x0000, True, True)
CRC_CALCULATOR = Calculator(CRC_CONFIG)


def crc16(data: bytes) -> int:
    return CRC_CALCULATOR.checksum(data)


# Everything between the magic header and the checksum; this is what the CRC covers.
MessageHeader = Struct(
    "address" / Bytes(2),
    "message_id" / Byte,
    "message_type" / Byte,
    "length" / Int16ub,
)

MessageBody = Struct(
    "header" / MessageHeader,
    "payload" / Bytes(this.header.length),
)

# A complete frame as it appears on the wire
FrameStruct = Struct(
    Const(HEADER_BYTES),
    "body" / RawCopy(MessageBody),
    "checksum" / Int16ub,
)

# Type alias for parsed frame
Frame = Any  # This represents the parsed frame structure from construct

FRAME_PARSER = FrameStruct


def assemble_standard_message(subtype: int, payload: bytes) -> bytes:
    """Builds the body of a standard (control/status) message."""
    data = bytes([subtype, 0x00, 0x00, 0x00]) + bytes(payload)
    header = MessageHeader.build(
        {
            "address": ADDRESS_STANDARD,
            "message_id": MESSAGE_ID,
            "message_type": MSGTYPE_STANDARD,
            "length": len(data),
        }
    )
    return header + data


def assemble_extended_message(payload: bytes) -> bytes:
    """Builds the body of an extended (ability/names/error) message."""
    header = MessageHeader.build(
        {
            "address": ADDRESS_EXTENDED,
            "message_id": MESSAGE_ID,
            "message_type": MSGTYPE_EXTENDED,
            "length": len(payload),
        }
    )
    return header + bytes(payload)


def wrap(body: bytes) -> bytes:
    """Adds the magic header and the big-endian CRC16 of the body."""
    return HEADER_BYTES + body + crc16(body).to_bytes(2, "big")


class FrameBuffer:
    """
    Accumulates TCP stream data and yields complete, checksum-valid frames.

    Reads are not aligned to message boundaries: a frame may arrive split
    over several reads, and one read may carry several frames. Pushes from
    the controller are also preceded by a short envelope (observed as 10
    bytes); anything ahead of the magic header is discarded.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def clear(self) -> None:
        self._buffer.clear()

    def feed(self, data: bytes) -> list[Frame]:
        self._buffer.extend(data)
        frames: list[Frame] = []
        while True:
            start = self._buffer.find(HEADER_BYTES)
            if start < 0:
                # Keep a possible partial magic header at the tail
                keep = len(HEADER_BYTES) - 1
                if len(self._buffer) > keep:
                    del self._buffer[:-keep]
                break
            if start > 0:
                log.debug(f"Skipping {start} bytes ahead of header: {self._buffer[:start].hex()}")
                del self._buffer[:start]

            if len(self._buffer) < FRAME_HEADER_SIZE:
                break
            length = int.from_bytes(self._buffer[8:10], "big")
            if length > MAX_PAYLOAD_SIZE:
                log.warning(f"Declared length {length} too large, discarding header")
                del self._buffer[: len(HEADER_BYTES)]
                continue

            total = FRAME_HEADER_SIZE + length + CHECKSUM_SIZE
            if len(self._buffer) < total:
                break

            raw = bytes(self._buffer[:total])
            try:
                frame = FRAME_PARSER.parse(raw)
            except ConstructError as e:
                log.debug(f"Unparseable frame {raw.hex()}: {e}")
                del self._buffer[: len(HEADER_BYTES)]
                continue

            expected = crc16(frame.body.data)
            if frame.checksum != expected:
                log.warning(
                    f"Checksum mismatch (got {frame.checksum:04x}, expected {expected:04x}), dropping message"
                )
                del self._buffer[: len(HEADER_BYTES)]
                continue

            del self._buffer[:total]
            if log.isEnabledFor(logging.DEBUG):
                log.debug(f"FRAME {raw.hex()}")
            frames.append(frame)
        return frames
