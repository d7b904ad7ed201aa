"""
Sphero Command Catalog
======================

Outgoing command messages. Every command is an immutable dataclass that knows
its virtual device id (DID), command id (CID) and how to serialize its data
payload; the packet framing is shared by all of them.

Example:
    >>> cmd = RollCommand(heading=90, velocity=0.5)
    >>> cmd.packet.hex()
    'ffff0230000580005a01ed'
    >>> cmd.length
    11
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import ClassVar

from .protocol import (
    DeviceId,
    SOP1,
    SOP2_RESPONSE,
    checksum,
)
from .errors import CommandTooLargeError
from .tools.mathtools import clamp, unit_to_byte


class CommandType(Enum):
    """Command kind, valued (DID, CID)."""
    PING = (DeviceId.CORE, 0x01)
    GET_VERSIONING = (DeviceId.CORE, 0x02)
    SET_ROBOT_NAME = (DeviceId.CORE, 0x10)
    GET_BLUETOOTH_INFO = (DeviceId.CORE, 0x11)
    GO_TO_SLEEP = (DeviceId.CORE, 0x22)
    JUMP_TO_BOOTLOADER = (DeviceId.CORE, 0x30)
    CALIBRATE = (DeviceId.SPHERO, 0x01)
    STABILIZATION = (DeviceId.SPHERO, 0x02)
    ROTATION_RATE = (DeviceId.SPHERO, 0x03)
    RGB_LED_OUTPUT = (DeviceId.SPHERO, 0x20)
    FRONT_LED_OUTPUT = (DeviceId.SPHERO, 0x21)
    ROLL = (DeviceId.SPHERO, 0x30)
    RAW_MOTOR = (DeviceId.SPHERO, 0x33)
    RUN_MACRO = (DeviceId.SPHERO, 0x50)
    SAVE_TEMPORARY_MACRO = (DeviceId.SPHERO, 0x51)
    SAVE_MACRO = (DeviceId.SPHERO, 0x52)
    ABORT_MACRO = (DeviceId.SPHERO, 0x55)

    @property
    def device_id(self) -> int:
        return int(self.value[0])

    @property
    def command_id(self) -> int:
        return self.value[1]


class MotorMode(IntEnum):
    """Raw motor drive modes."""
    OFF = 0x00
    FORWARD = 0x01
    REVERSE = 0x02
    BRAKE = 0x03
    IGNORE = 0x04


# Sequence byte: responses are matched by order, not by sequence number
DEFAULT_SEQUENCE = 0x00

# Macro ids and flags
TEMPORARY_MACRO_ID = 0xFF
STREAM_MACRO_ID = 0xFE
MACRO_FLAG_MOTOR_CONTROL = 0x01

# DLEN is one byte and counts the checksum
MAX_PAYLOAD_LENGTH = 0xFF - 1

# Streaming chunk: macro id, flags and the end terminator share the payload
MAX_STREAM_CHUNK = MAX_PAYLOAD_LENGTH - 3

# Temporary macro: flags byte, then the data including its terminator
MAX_TEMPORARY_MACRO_DATA = MAX_PAYLOAD_LENGTH - 1

MAX_ROBOT_NAME_LENGTH = 48


@dataclass(frozen=True)
class CommandMessage:
    """
    Base class for all outgoing commands.

    Subclasses set ``kind`` and override ``payload()`` when the command
    carries data.
    """
    kind: ClassVar[CommandType]

    def payload(self) -> bytes:
        return b""

    @property
    def device_id(self) -> int:
        return self.kind.device_id

    @property
    def command_id(self) -> int:
        return self.kind.command_id

    @property
    def packet(self) -> bytes:
        """Complete serialized packet including start bytes and checksum."""
        data = self.payload()
        if len(data) > MAX_PAYLOAD_LENGTH:
            raise CommandTooLargeError(self, len(data), MAX_PAYLOAD_LENGTH)
        body = bytes([self.device_id, self.command_id, DEFAULT_SEQUENCE, len(data) + 1]) + data
        return bytes([SOP1, SOP2_RESPONSE]) + body + bytes([checksum(body)])

    @property
    def length(self) -> int:
        return len(self.packet)


def _heading_bytes(heading: float) -> bytes:
    return int(heading).to_bytes(2, 'big')


# =========================================================================
# Core device
# =========================================================================

@dataclass(frozen=True)
class PingCommand(CommandMessage):
    """Keep-alive, answered with an empty OK response."""
    kind: ClassVar[CommandType] = CommandType.PING


@dataclass(frozen=True)
class GetVersioningCommand(CommandMessage):
    kind: ClassVar[CommandType] = CommandType.GET_VERSIONING


@dataclass(frozen=True)
class SetRobotNameCommand(CommandMessage):
    kind: ClassVar[CommandType] = CommandType.SET_ROBOT_NAME
    name: str = ""

    def payload(self) -> bytes:
        return self.name.encode('ascii', 'replace')[:MAX_ROBOT_NAME_LENGTH]


@dataclass(frozen=True)
class GetBluetoothInfoCommand(CommandMessage):
    kind: ClassVar[CommandType] = CommandType.GET_BLUETOOTH_INFO


@dataclass(frozen=True)
class SleepCommand(CommandMessage):
    """
    Put the robot to sleep.

    Attributes:
        wakeup: Seconds until the robot wakes up again (0 = stay asleep)
        macro: Macro to run on wakeup (0 = none)

    The Bluetooth link is lost when the robot goes to sleep.
    """
    kind: ClassVar[CommandType] = CommandType.GO_TO_SLEEP
    wakeup: int = 0
    macro: int = 0

    def payload(self) -> bytes:
        return int(clamp(self.wakeup, 0, 0xFFFF)).to_bytes(2, 'big') + bytes([self.macro & 0xFF])


@dataclass(frozen=True)
class JumpToBootloaderCommand(CommandMessage):
    kind: ClassVar[CommandType] = CommandType.JUMP_TO_BOOTLOADER


# =========================================================================
# Sphero device
# =========================================================================

@dataclass(frozen=True)
class CalibrateCommand(CommandMessage):
    """Set the current orientation as ``heading`` (0-359)."""
    kind: ClassVar[CommandType] = CommandType.CALIBRATE
    heading: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, 'heading', clamp(self.heading, 0.0, 359.0))

    def payload(self) -> bytes:
        return _heading_bytes(self.heading)


@dataclass(frozen=True)
class StabilizationCommand(CommandMessage):
    kind: ClassVar[CommandType] = CommandType.STABILIZATION
    on: bool = True

    def payload(self) -> bytes:
        return bytes([1 if self.on else 0])


@dataclass(frozen=True)
class RotationRateCommand(CommandMessage):
    """Rotation rate, 0-1."""
    kind: ClassVar[CommandType] = CommandType.ROTATION_RATE
    rate: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, 'rate', clamp(self.rate, 0.0, 1.0))

    def payload(self) -> bytes:
        return bytes([unit_to_byte(self.rate)])


@dataclass(frozen=True)
class RGBLEDCommand(CommandMessage):
    kind: ClassVar[CommandType] = CommandType.RGB_LED_OUTPUT
    red: int = 0
    green: int = 0
    blue: int = 0

    def __post_init__(self):
        for channel in ('red', 'green', 'blue'):
            object.__setattr__(self, channel, int(clamp(getattr(self, channel), 0, 255)))

    def payload(self) -> bytes:
        # Last byte: do not persist as the user LED color
        return bytes([self.red, self.green, self.blue, 0])


@dataclass(frozen=True)
class FrontLEDCommand(CommandMessage):
    """Front (tail light) LED brightness, 0-1."""
    kind: ClassVar[CommandType] = CommandType.FRONT_LED_OUTPUT
    brightness: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, 'brightness', clamp(self.brightness, 0.0, 1.0))

    def payload(self) -> bytes:
        return bytes([unit_to_byte(self.brightness)])


@dataclass(frozen=True)
class RollCommand(CommandMessage):
    """
    Roll in a direction.

    Attributes:
        heading: Heading in degrees (0-359)
        velocity: Speed (0-1)
        stopped: True to stop the motors
    """
    kind: ClassVar[CommandType] = CommandType.ROLL
    heading: float = 0.0
    velocity: float = 0.0
    stopped: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'heading', clamp(self.heading, 0.0, 359.0))
        object.__setattr__(self, 'velocity', clamp(self.velocity, 0.0, 1.0))

    def payload(self) -> bytes:
        return (bytes([unit_to_byte(self.velocity)])
                + _heading_bytes(self.heading)
                + bytes([0 if self.stopped else 1]))


@dataclass(frozen=True)
class RawMotorCommand(CommandMessage):
    """Direct motor control, speeds 0-255."""
    kind: ClassVar[CommandType] = CommandType.RAW_MOTOR
    left_mode: MotorMode = MotorMode.FORWARD
    left_speed: int = 0
    right_mode: MotorMode = MotorMode.FORWARD
    right_speed: int = 0

    def __post_init__(self):
        object.__setattr__(self, 'left_speed', int(clamp(self.left_speed, 0, 255)))
        object.__setattr__(self, 'right_speed', int(clamp(self.right_speed, 0, 255)))

    def payload(self) -> bytes:
        return bytes([int(self.left_mode), self.left_speed,
                      int(self.right_mode), self.right_speed])


# =========================================================================
# Macros
# =========================================================================

@dataclass(frozen=True)
class RunMacroCommand(CommandMessage):
    kind: ClassVar[CommandType] = CommandType.RUN_MACRO
    macro_id: int = TEMPORARY_MACRO_ID

    def payload(self) -> bytes:
        return bytes([self.macro_id & 0xFF])


@dataclass(frozen=True)
class SaveTemporaryMacroCommand(CommandMessage):
    """Store a complete macro in the single temporary slot."""
    kind: ClassVar[CommandType] = CommandType.SAVE_TEMPORARY_MACRO
    flags: int = MACRO_FLAG_MOTOR_CONTROL
    data: bytes = b""

    def payload(self) -> bytes:
        return bytes([self.flags & 0xFF]) + bytes(self.data)


@dataclass(frozen=True)
class SaveMacroCommand(CommandMessage):
    """Store macro data under ``macro_id``; STREAM_MACRO_ID appends to the stream."""
    kind: ClassVar[CommandType] = CommandType.SAVE_MACRO
    flags: int = MACRO_FLAG_MOTOR_CONTROL
    macro_id: int = STREAM_MACRO_ID
    data: bytes = b""

    def payload(self) -> bytes:
        return bytes([self.macro_id & 0xFF, self.flags & 0xFF]) + bytes(self.data)


@dataclass(frozen=True)
class AbortMacroCommand(CommandMessage):
    kind: ClassVar[CommandType] = CommandType.ABORT_MACRO
