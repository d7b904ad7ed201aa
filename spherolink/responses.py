"""
Response Types for Sphero
=========================

Typed views of incoming packets. RESPONSE packets do not describe their own
payload, so the class used to decode one is picked from the kind of the
command it answers. INFORMATION packets are picked by their ID code.

Decoding never raises: a checksum mismatch or a payload the typed parser
rejects only marks the result ``corrupt`` so callers can skip its content.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Optional, Type, TypeVar

from .commands import CommandMessage, CommandType
from .protocol import (
    InformationCode,
    ResponseCode,
    ResponseHeader,
    verify_checksum,
)


T = TypeVar('T', bound='DecodedPacket')


@dataclass
class DecodedPacket:
    """
    Header plus data bytes of one incoming packet.

    Attributes:
        header: Decoded packet header
        data: Payload without the trailing checksum
        corrupt: True if the checksum or the typed parse failed
    """
    header: ResponseHeader
    data: bytes = b""
    corrupt: bool = False

    def _parse(self) -> bool:
        """Fill typed fields from ``data``. Return False if the data is invalid."""
        return True

    @classmethod
    def from_packet(cls: Type[T], header: ResponseHeader, payload: bytes, **kwargs) -> T:
        packet = cls(header=header, data=bytes(payload[:-1]), **kwargs)
        if not verify_checksum(header, bytes(payload)):
            packet.corrupt = True
            return packet
        try:
            packet.corrupt = not packet._parse()
        except (ValueError, IndexError, UnicodeDecodeError):
            packet.corrupt = True
        return packet


# =============================================================================
# RESPONSES
# =============================================================================

@dataclass
class ResponseMessage(DecodedPacket):
    """Answer to one previously sent command."""
    command_kind: Optional[CommandType] = None

    @property
    def code(self) -> ResponseCode:
        return self.header.code

    @property
    def ok(self) -> bool:
        return self.header.code == ResponseCode.OK


@dataclass
class GetBluetoothInfoResponse(ResponseMessage):
    """
    Bluetooth name and address.

    Data: 16 byte ASCII name (NUL padded), 12 byte ASCII address, ...
    """
    name: str = ""
    bluetooth_address: str = ""

    def _parse(self) -> bool:
        if len(self.data) < 28:
            return False
        self.name = self.data[:16].split(b'\x00', 1)[0].decode('ascii').strip()
        self.bluetooth_address = self.data[16:28].decode('ascii')
        return True


@dataclass
class VersionResponse(ResponseMessage):
    """Firmware and hardware versions."""
    record_version: int = 0
    model: int = 0
    hardware: int = 0
    main_app_version: int = 0
    main_app_revision: int = 0
    bootloader: int = 0
    orb_basic: int = 0
    macro: int = 0
    api_major: int = 0
    api_minor: int = 0

    def _parse(self) -> bool:
        if len(self.data) < 8:
            return False
        (self.record_version, self.model, self.hardware, self.main_app_version,
         self.main_app_revision, self.bootloader, self.orb_basic,
         self.macro) = self.data[:8]
        if len(self.data) >= 10:
            self.api_major, self.api_minor = self.data[8], self.data[9]
        return True


RESPONSE_TYPES: Dict[CommandType, Type[ResponseMessage]] = {
    CommandType.GET_BLUETOOTH_INFO: GetBluetoothInfoResponse,
    CommandType.GET_VERSIONING: VersionResponse,
}


def decode_response(command: CommandMessage, header: ResponseHeader, payload: bytes) -> ResponseMessage:
    """
    Decode a RESPONSE packet answering ``command``.

    Args:
        command: The command matched to this response
        header: Decoded header
        payload: Bytes following the header (data + checksum)

    Returns:
        ResponseMessage subclass for the command kind, possibly marked corrupt
    """
    response_class = RESPONSE_TYPES.get(command.kind, ResponseMessage)
    return response_class.from_packet(header, payload, command_kind=command.kind)


# =============================================================================
# INFORMATION
# =============================================================================

class PowerState(IntEnum):
    UNKNOWN = 0x00
    CHARGING = 0x01
    OK = 0x02
    LOW = 0x03
    CRITICAL = 0x04


@dataclass
class InformationResponse(DecodedPacket):
    """Asynchronous notice sent by the device."""

    @property
    def info_code(self) -> InformationCode:
        return self.header.info_code


@dataclass
class EmitResponse(InformationResponse):
    """
    Macro marker echo.

    Sent when a running macro reaches an Emit marker. While a streaming
    macro is running each echo means one uploaded chunk has been consumed.
    """
    marker_id: int = 0
    macro_id: int = 0
    command_number: int = 0

    def _parse(self) -> bool:
        if not self.data:
            return False
        self.marker_id = self.data[0]
        if len(self.data) > 1:
            self.macro_id = self.data[1]
        if len(self.data) >= 4:
            self.command_number = int.from_bytes(self.data[2:4], 'big')
        return True


@dataclass
class PreSleepWarningResponse(InformationResponse):
    """The robot will go to sleep in 10 seconds."""
    pass


@dataclass
class PowerNotificationResponse(InformationResponse):
    state: PowerState = PowerState.UNKNOWN

    def _parse(self) -> bool:
        if not self.data:
            return False
        try:
            self.state = PowerState(self.data[0])
        except ValueError:
            self.state = PowerState.UNKNOWN
        return True


INFORMATION_TYPES: Dict[InformationCode, Type[InformationResponse]] = {
    InformationCode.MACRO_MARKER: EmitResponse,
    InformationCode.PRE_SLEEP_WARNING: PreSleepWarningResponse,
    InformationCode.POWER_NOTIFICATION: PowerNotificationResponse,
}


def decode_information(header: ResponseHeader, payload: bytes) -> InformationResponse:
    """Decode an INFORMATION packet by its ID code."""
    info_class = INFORMATION_TYPES.get(header.info_code, InformationResponse)
    return info_class.from_packet(header, payload)
