"""
Device Shadow
=============

Client side copy of the last movement and LED state the robot confirmed.
It is updated from the response path only (a command whose response came
back OK) and replayed to the robot on every connect.
"""

from dataclasses import dataclass, field

from .commands import (
    CommandMessage,
    CommandType,
    FrontLEDCommand,
    MotorMode,
    RawMotorCommand,
    RGBLEDCommand,
    RollCommand,
    RotationRateCommand,
)


@dataclass
class RobotMovement:
    """
    Heading, velocity and rotation rate of the robot.

    Attributes:
        heading: Heading in degrees (0-359)
        velocity: Velocity (0-1)
        rotation_rate: Rotation rate (0-1)
        stopped: True while the motors are stopped
    """
    heading: float = 0.0
    velocity: float = 0.0
    rotation_rate: float = 0.0
    stopped: bool = True


@dataclass
class RobotRawMovement:
    """Raw motor values, independent of RobotMovement."""
    left_speed: int = 0
    right_speed: int = 0
    left_mode: MotorMode = MotorMode.FORWARD
    right_mode: MotorMode = MotorMode.FORWARD


@dataclass
class RobotLED:
    """RGB LED color (white when connected) and front LED brightness (off)."""
    red: int = 255
    green: int = 255
    blue: int = 255
    front_brightness: float = 0.0

    @property
    def rgb(self) -> tuple:
        return (self.red, self.green, self.blue)


@dataclass
class DeviceShadow:
    movement: RobotMovement = field(default_factory=RobotMovement)
    raw_movement: RobotRawMovement = field(default_factory=RobotRawMovement)
    led: RobotLED = field(default_factory=RobotLED)

    def reset(self) -> None:
        """Restore defaults. Sends nothing to the robot."""
        self.movement = RobotMovement()
        self.raw_movement = RobotRawMovement()
        self.led = RobotLED()

    def apply(self, command: CommandMessage) -> bool:
        """
        Record the effect of a confirmed command.

        Returns:
            True if the command changed shadowed state
        """
        kind = command.kind

        if kind == CommandType.ROLL and isinstance(command, RollCommand):
            self.movement.heading = command.heading
            self.movement.velocity = command.velocity
            self.movement.stopped = command.stopped
        elif kind == CommandType.RAW_MOTOR and isinstance(command, RawMotorCommand):
            self.raw_movement.left_mode = command.left_mode
            self.raw_movement.right_mode = command.right_mode
            self.raw_movement.left_speed = command.left_speed
            self.raw_movement.right_speed = command.right_speed
        elif kind == CommandType.ROTATION_RATE and isinstance(command, RotationRateCommand):
            self.movement.rotation_rate = command.rate
        elif kind == CommandType.RGB_LED_OUTPUT and isinstance(command, RGBLEDCommand):
            self.led.red = command.red
            self.led.green = command.green
            self.led.blue = command.blue
        elif kind == CommandType.FRONT_LED_OUTPUT and isinstance(command, FrontLEDCommand):
            self.led.front_brightness = command.brightness
        else:
            return False
        return True
