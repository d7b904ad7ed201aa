"""
spherolink - Sphero Robot Driver
================================

A Python driver for the Sphero robot over Bluetooth RFCOMM or a serial
device, speaking the Sphero binary API.

Example:
    >>> from spherolink import Robot
    >>>
    >>> with Robot('00:06:66:4A:12:34') as robot:
    ...     robot.set_rgb_led_color(255, 0, 0)
    ...     robot.roll(0, 0.5)
"""

import logging

from .robot import Robot, RobotState, ROBOT_ADDRESS_PREFIX
from .config import RobotConfig
from .listener import EventCode, RobotListener, RobotCallbacks
from .commands import (
    CommandMessage,
    CommandType,
    MotorMode,
    PingCommand,
    GetVersioningCommand,
    SetRobotNameCommand,
    GetBluetoothInfoCommand,
    SleepCommand,
    JumpToBootloaderCommand,
    CalibrateCommand,
    StabilizationCommand,
    RotationRateCommand,
    RGBLEDCommand,
    FrontLEDCommand,
    RollCommand,
    RawMotorCommand,
    RunMacroCommand,
    SaveTemporaryMacroCommand,
    SaveMacroCommand,
    AbortMacroCommand,
)
from .responses import (
    ResponseMessage,
    GetBluetoothInfoResponse,
    VersionResponse,
    InformationResponse,
    EmitResponse,
    PreSleepWarningResponse,
    PowerNotificationResponse,
    PowerState,
)
from .macro import (
    MacroCommand,
    MacroObject,
    MacroMode,
    MacroRoll,
    MacroRGB,
    MacroFrontLED,
    MacroStabilization,
    Delay,
    Emit,
)
from .protocol import ResponseCode, InformationCode
from .transport import Transport, SerialTransport, RfcommTransport, enumerate_ports
from .errors import (
    SpheroError,
    ConfigurationError,
    InvalidRobotAddressError,
    TransportError,
    TransportOpenError,
    TransportClosedError,
    RobotInitializeConnectionFailed,
    ProtocolError,
    UnmatchedResponseError,
    ResponseTimeoutError,
    CorruptPacketError,
    CommandTooLargeError,
    MacroError,
    MacroTooLargeError,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
__all__ = [
    "Robot",
    "RobotState",
    "RobotConfig",
    "ROBOT_ADDRESS_PREFIX",
    "EventCode",
    "RobotListener",
    "RobotCallbacks",
    "CommandMessage",
    "CommandType",
    "MotorMode",
    "PingCommand",
    "GetVersioningCommand",
    "SetRobotNameCommand",
    "GetBluetoothInfoCommand",
    "SleepCommand",
    "JumpToBootloaderCommand",
    "CalibrateCommand",
    "StabilizationCommand",
    "RotationRateCommand",
    "RGBLEDCommand",
    "FrontLEDCommand",
    "RollCommand",
    "RawMotorCommand",
    "RunMacroCommand",
    "SaveTemporaryMacroCommand",
    "SaveMacroCommand",
    "AbortMacroCommand",
    "ResponseMessage",
    "GetBluetoothInfoResponse",
    "VersionResponse",
    "InformationResponse",
    "EmitResponse",
    "PreSleepWarningResponse",
    "PowerNotificationResponse",
    "PowerState",
    "MacroCommand",
    "MacroObject",
    "MacroMode",
    "MacroRoll",
    "MacroRGB",
    "MacroFrontLED",
    "MacroStabilization",
    "Delay",
    "Emit",
    "ResponseCode",
    "InformationCode",
    "Transport",
    "SerialTransport",
    "RfcommTransport",
    "enumerate_ports",
    "SpheroError",
    "ConfigurationError",
    "InvalidRobotAddressError",
    "TransportError",
    "TransportOpenError",
    "TransportClosedError",
    "RobotInitializeConnectionFailed",
    "ProtocolError",
    "UnmatchedResponseError",
    "ResponseTimeoutError",
    "CorruptPacketError",
    "CommandTooLargeError",
    "MacroError",
    "MacroTooLargeError",
]
