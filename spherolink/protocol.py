"""
Sphero Packet Protocol
======================

Wire constants and header codec for the Sphero API (v1) spoken over the
Bluetooth serial port profile.

Packet Layout
-------------
Command (Host → Device):
    FF FF DID CID SEQ DLEN <data...> CHK

Response (Device → Host, answers one command):
    FF FF MRSP SEQ DLEN <data...> CHK

Information (Device → Host, asynchronous):
    FF FE IDCODE DLEN_MSB DLEN_LSB <data...> CHK

DLEN counts the data bytes plus the checksum. The checksum is the modulo 256
sum of every byte after the two start bytes up to the end of the data,
bit inverted.

Responses carry no identifier of the command they answer. The device replies
in send order, so the driver matches them first-in first-out.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Union


# Start of packet
SOP1 = 0xFF
SOP2_RESPONSE = 0xFF
SOP2_INFORMATION = 0xFE

# Header sizes
COMMAND_HEADER_LENGTH = 6
RESPONSE_HEADER_LENGTH = 5
PACKET_LENGTH_INDEX = 4       # DLEN (LSB for information packets)
PACKET_LENGTH_MSB_INDEX = 3   # information packets only

# Longest INFORMATION DLEN accepted, anything longer is treated as line noise
MAX_INFORMATION_LENGTH = 0x400


class DeviceId(IntEnum):
    """Virtual device addressed by a command."""
    CORE = 0x00
    BOOTLOADER = 0x01
    SPHERO = 0x02


class ResponseType(Enum):
    """Packet type, decided by the second start byte."""
    RESPONSE = "response"
    INFORMATION = "information"
    UNKNOWN = "unknown"


class ResponseCode(IntEnum):
    """MRSP field of a response packet."""
    UNKNOWN = -1
    OK = 0x00
    EGEN = 0x01
    ECHKSUM = 0x02
    EFRAG = 0x03
    EBAD_CMD = 0x04
    EUNSUPP = 0x05
    EBAD_MSG = 0x06
    EPARAM = 0x07
    EEXEC = 0x08
    EBAD_DID = 0x09
    POWER_NOGOOD = 0x31
    PAGE_ILLEGAL = 0x32
    FLASH_FAIL = 0x33
    MA_CORRUPT = 0x34
    MSG_TIMEOUT = 0x35

    @classmethod
    def parse(cls, value: int) -> 'ResponseCode':
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class InformationCode(IntEnum):
    """ID code of an asynchronous information packet."""
    UNKNOWN = -1
    POWER_NOTIFICATION = 0x01
    DIAGNOSTIC = 0x02
    SENSOR_STREAMING = 0x03
    CONFIG_BLOCK = 0x04
    PRE_SLEEP_WARNING = 0x05
    MACRO_MARKER = 0x06
    COLLISION = 0x07
    ORBBASIC_PRINT = 0x08
    ORBBASIC_ERROR_ASCII = 0x09
    ORBBASIC_ERROR_BINARY = 0x0A
    SELF_LEVEL_RESULT = 0x0B
    GYRO_LIMIT = 0x0C

    @classmethod
    def parse(cls, value: int) -> 'InformationCode':
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


def checksum(data: Union[bytes, bytearray]) -> int:
    """Inverted modulo 256 sum of ``data``."""
    return (~sum(data)) & 0xFF


@dataclass(frozen=True)
class ResponseHeader:
    """
    Decoded 5-byte header of an incoming packet.

    Attributes:
        response_type: RESPONSE, INFORMATION or UNKNOWN
        length: Payload length following the header (data + checksum)
        code: Response code (RESPONSE only)
        info_code: Information ID code (INFORMATION only)
        seq: Sequence byte echoed by the device (RESPONSE only)
        raw: The five header bytes
    """
    response_type: ResponseType
    length: int
    code: Optional[ResponseCode] = None
    info_code: Optional[InformationCode] = None
    seq: Optional[int] = None
    raw: bytes = b""

    @property
    def packet_length(self) -> int:
        return RESPONSE_HEADER_LENGTH + self.length

    @property
    def raw_code(self) -> int:
        """Undecoded MRSP / ID code byte."""
        return self.raw[2] if len(self.raw) > 2 else -1


def decode_header(buffer: Union[bytes, bytearray], offset: int = 0) -> ResponseHeader:
    """
    Decode the header starting at ``offset``.

    Args:
        buffer: Receive buffer
        offset: Index of the first start byte

    Returns:
        ResponseHeader (UNKNOWN type when the start bytes are not recognised)

    Raises:
        ValueError: If fewer than RESPONSE_HEADER_LENGTH bytes are available
    """
    if len(buffer) - offset < RESPONSE_HEADER_LENGTH:
        raise ValueError(
            f"Need {RESPONSE_HEADER_LENGTH} header bytes, got {len(buffer) - offset}"
        )
    raw = bytes(buffer[offset:offset + RESPONSE_HEADER_LENGTH])

    if raw[0] != SOP1:
        return ResponseHeader(ResponseType.UNKNOWN, raw[PACKET_LENGTH_INDEX], raw=raw)

    if raw[1] == SOP2_RESPONSE:
        return ResponseHeader(
            response_type=ResponseType.RESPONSE,
            length=raw[PACKET_LENGTH_INDEX],
            code=ResponseCode.parse(raw[2]),
            seq=raw[3],
            raw=raw,
        )

    if raw[1] == SOP2_INFORMATION:
        length = (raw[PACKET_LENGTH_MSB_INDEX] << 8) | raw[PACKET_LENGTH_INDEX]
        return ResponseHeader(
            response_type=ResponseType.INFORMATION,
            length=length,
            info_code=InformationCode.parse(raw[2]),
            raw=raw,
        )

    return ResponseHeader(ResponseType.UNKNOWN, raw[PACKET_LENGTH_INDEX], raw=raw)


def packet_length(header: ResponseHeader) -> int:
    """Total packet length (header + payload) announced by ``header``."""
    return header.packet_length


def verify_checksum(header: ResponseHeader, payload: bytes) -> bool:
    """Check the trailing checksum byte of ``payload`` against header and data."""
    if not payload:
        return False
    return checksum(header.raw[2:] + payload[:-1]) == payload[-1]


# =============================================================================
# Device side encoders (simulators and tests)
# =============================================================================

def encode_response(code: int, data: bytes = b"", seq: int = 0) -> bytes:
    """Build a RESPONSE packet as the device would send it."""
    body = bytes([int(code) & 0xFF, seq & 0xFF, len(data) + 1]) + bytes(data)
    return bytes([SOP1, SOP2_RESPONSE]) + body + bytes([checksum(body)])


def encode_information(code: int, data: bytes = b"") -> bytes:
    """Build an INFORMATION packet as the device would send it."""
    length = len(data) + 1
    body = bytes([int(code) & 0xFF, (length >> 8) & 0xFF, length & 0xFF]) + bytes(data)
    return bytes([SOP1, SOP2_INFORMATION]) + body + bytes([checksum(body)])
