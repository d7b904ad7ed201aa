"""
Robot listeners.

Subclass RobotListener, or wrap plain functions in RobotCallbacks:

    >>> cb = RobotCallbacks(on_event=lambda robot, code: print(code))
    >>> robot.add_listener(cb)

Callbacks run on the driver's reader thread and must not block.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional


class EventCode(Enum):
    CONNECTED = "connected"
    CONNECT_FAILED = "connect_failed"
    DISCONNECTED = "disconnected"
    UNEXPECTED_DISCONNECT = "unexpected_disconnect"
    NO_CONNECTION = "no_connection"
    MACRO_DONE = "macro_done"
    UNMATCHED_RESPONSE = "unmatched_response"
    RESPONSE_TIMEOUT = "response_timeout"


class RobotListener:
    """Observer interface. All methods are no-ops by default."""

    def response_received(self, robot, response, command) -> None:
        pass

    def information_received(self, robot, information) -> None:
        pass

    def event(self, robot, code: EventCode) -> None:
        pass

    def protocol_error(self, robot, error) -> None:
        """Skipped packet, unanswered command or other ProtocolError."""
        pass


@dataclass(eq=False)
class RobotCallbacks(RobotListener):
    """Listener built from optional callables."""
    on_response: Optional[Callable[[Any, Any, Any], None]] = None
    on_information: Optional[Callable[[Any, Any], None]] = None
    on_event: Optional[Callable[[Any, EventCode], None]] = None
    on_protocol_error: Optional[Callable[[Any, Any], None]] = None

    def response_received(self, robot, response, command) -> None:
        if self.on_response:
            self.on_response(robot, response, command)

    def information_received(self, robot, information) -> None:
        if self.on_information:
            self.on_information(robot, information)

    def event(self, robot, code: EventCode) -> None:
        if self.on_event:
            self.on_event(robot, code)

    def protocol_error(self, robot, error) -> None:
        if self.on_protocol_error:
            self.on_protocol_error(robot, error)
