"""
Exceptions for spherolink
=========================

Exception Hierarchy:
    SpheroError (base)
    ├── ConfigurationError
    │   └── InvalidRobotAddressError
    ├── TransportError
    │   ├── TransportOpenError
    │   └── TransportClosedError
    ├── RobotInitializeConnectionFailed
    ├── ProtocolError
    │   ├── UnmatchedResponseError
    │   ├── ResponseTimeoutError
    │   ├── CorruptPacketError
    │   └── CommandTooLargeError
    └── MacroError
        └── MacroTooLargeError

Transport errors end the current connection. Protocol errors are logged by
the driver and the offending packet is skipped.
"""

from typing import Optional


class SpheroError(Exception):
    """Base exception for all spherolink errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ', '.join(f'{k}={v!r}' for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(SpheroError):
    """Invalid driver configuration, reported before any connection attempt."""
    pass


class InvalidRobotAddressError(ConfigurationError):
    """The Bluetooth address does not belong to a Sphero device."""

    def __init__(self, address: str, prefix: str):
        super().__init__(
            f"The bluetooth address is invalid, a Sphero address must start with {prefix}",
            details={'address': address},
        )
        self.address = address


# =============================================================================
# TRANSPORT ERRORS
# =============================================================================

class TransportError(SpheroError):
    """Read, write or open failure on the byte channel."""
    pass


class TransportOpenError(TransportError):
    """The transport could not be opened."""
    pass


class TransportClosedError(TransportError):
    """End of stream, or the channel was closed underneath a blocked call."""
    pass


class RobotInitializeConnectionFailed(SpheroError):
    """Raised by Robot.connect() when the caller asked for exceptions."""
    pass


# =============================================================================
# PROTOCOL ERRORS
# =============================================================================

class ProtocolError(SpheroError):
    """Base class for device protocol violations."""
    pass


class UnmatchedResponseError(ProtocolError):
    """A RESPONSE packet arrived while no sent command was awaiting one."""

    def __init__(self, header=None):
        super().__init__(
            "Received a response with no outstanding command",
            details={'header': header} if header is not None else None,
        )
        self.header = header


class ResponseTimeoutError(ProtocolError):
    """A sent command waited longer than the configured response timeout."""

    def __init__(self, command, waited: float):
        super().__init__(
            f"No response for {command!r}",
            details={'waited': round(waited, 3)},
        )
        self.command = command
        self.waited = waited


class CorruptPacketError(ProtocolError):
    """Inbound bytes that cannot be framed as a packet."""
    pass


class CommandTooLargeError(ProtocolError):
    """A command payload does not fit the one-byte length field."""

    def __init__(self, command, size: int, limit: int):
        super().__init__(
            f"Payload of {type(command).__name__} is too large",
            details={'size': size, 'limit': limit},
        )
        self.command = command
        self.size = size
        self.limit = limit


# =============================================================================
# MACRO ERRORS
# =============================================================================

class MacroError(SpheroError):
    """Base class for macro handling errors."""
    pass


class MacroTooLargeError(MacroError):
    """A macro, or one command of a streaming macro, can never be uploaded."""

    def __init__(self, command, limit: int):
        super().__init__(
            "Macro does not fit into one upload",
            details={'command': command, 'limit': limit},
        )
        self.command = command
        self.limit = limit
