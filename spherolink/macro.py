"""
Macro commands.

A macro is a list of lightweight sub-commands the robot runs on its own,
without a round trip per step. Small macros are stored in one go (NORMAL);
large ones are streamed to the device in chunks that fit its macro memory
(CACHED_STREAMING).
"""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Iterable, List, Optional

from .tools.mathtools import clamp, unit_to_byte


MACRO_END = 0x00


@dataclass(frozen=True)
class MacroCommand:
    """Base class for macro sub-commands."""
    code: ClassVar[int]

    def arguments(self) -> bytes:
        return b""

    def to_bytes(self) -> bytes:
        return bytes([self.code]) + self.arguments()

    @property
    def length(self) -> int:
        return len(self.to_bytes())


@dataclass(frozen=True)
class MacroStabilization(MacroCommand):
    code: ClassVar[int] = 0x03
    on: bool = True

    def arguments(self) -> bytes:
        return bytes([1 if self.on else 0])


@dataclass(frozen=True)
class MacroRoll(MacroCommand):
    code: ClassVar[int] = 0x05
    heading: float = 0.0
    velocity: float = 0.0
    delay: int = 0

    def arguments(self) -> bytes:
        heading = int(clamp(self.heading, 0, 359))
        return bytes([unit_to_byte(self.velocity)]) + heading.to_bytes(2, 'big') + bytes([int(clamp(self.delay, 0, 255))])


@dataclass(frozen=True)
class MacroRGB(MacroCommand):
    code: ClassVar[int] = 0x07
    red: int = 0
    green: int = 0
    blue: int = 0
    delay: int = 0

    def arguments(self) -> bytes:
        return bytes([clamp(int(c), 0, 255) for c in (self.red, self.green, self.blue, self.delay)])


@dataclass(frozen=True)
class MacroFrontLED(MacroCommand):
    code: ClassVar[int] = 0x09
    brightness: float = 0.0
    delay: int = 0

    def arguments(self) -> bytes:
        return bytes([unit_to_byte(self.brightness), int(clamp(self.delay, 0, 255))])


@dataclass(frozen=True)
class Delay(MacroCommand):
    """Pause the macro for ``milliseconds``."""
    code: ClassVar[int] = 0x0B
    milliseconds: int = 0

    def arguments(self) -> bytes:
        return int(clamp(self.milliseconds, 0, 0xFFFF)).to_bytes(2, 'big')


@dataclass(frozen=True)
class Emit(MacroCommand):
    """
    Synchronization marker.

    When the device reaches it, it sends a macro marker INFORMATION packet
    carrying ``marker_id``.
    """
    code: ClassVar[int] = 0x13
    marker_id: int = 1

    def arguments(self) -> bytes:
        return bytes([self.marker_id & 0xFF])


class MacroMode(Enum):
    NORMAL = "normal"
    CACHED_STREAMING = "cached_streaming"


class MacroObject:
    """
    An ordered list of macro commands plus the upload mode.

    Example:
        >>> macro = MacroObject(mode=MacroMode.CACHED_STREAMING)
        >>> macro.add_command(MacroRGB(255, 0, 0))
        >>> macro.add_command(Delay(500))
        >>> macro.length
        8
    """

    def __init__(
        self,
        commands: Optional[Iterable[MacroCommand]] = None,
        mode: MacroMode = MacroMode.NORMAL
    ):
        self._commands: List[MacroCommand] = list(commands or [])
        self.mode = mode

    def add_command(self, command: MacroCommand) -> None:
        self._commands.append(command)

    @property
    def commands(self) -> List[MacroCommand]:
        return list(self._commands)

    @property
    def length(self) -> int:
        return sum(cmd.length for cmd in self._commands)

    def generate_macro_data(self) -> bytes:
        """All commands serialized back to back, followed by the end marker."""
        return b"".join(cmd.to_bytes() for cmd in self._commands) + bytes([MACRO_END])

    def __len__(self) -> int:
        return len(self._commands)

    def __repr__(self) -> str:
        return f"MacroObject(mode={self.mode.name}, commands={len(self._commands)})"
