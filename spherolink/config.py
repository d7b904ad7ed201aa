"""
Driver configuration.

All timing values are in seconds, all sizes in bytes.
"""

from dataclasses import dataclass
from typing import Optional

from .commands import MAX_STREAM_CHUNK
from .errors import ConfigurationError


TRANSPORTS = ("rfcomm", "serial")


@dataclass
class RobotConfig:
    """
    Configuration for a Robot connection.

    Attributes:
        transport: "rfcomm" (Bluetooth socket) or "serial" (pyserial device)
        port: Serial device path, required for the "serial" transport
        baudrate: Serial baudrate
        rfcomm_channel: RFCOMM channel of the Sphero serial port profile
        read_timeout: Longest a single transport read may block
        read_buffer_size: Bytes requested per transport read
        max_write_size: Byte guard for one batched transport write
        ping_interval: Keep-alive period (first ping after one period)
        raise_on_connect_failure: connect() raises instead of returning False
        disconnect_timeout: Fallback teardown when shutdown echoes never
            arrive, None waits forever
        response_timeout: Optional per-command response timeout, None keeps
            unanswered commands queued until disconnect
        response_sweep_interval: How often expired commands are swept
        macro_budget: Device macro storage space
        macro_max_chunk: Largest uploaded chunk, marker included
        macro_min_free: No chunk is uploaded while free space is at or below this
        macro_streaming_enabled: Accept streaming macros
        shutdown_echo_count: Shutdown echoes awaited before closing
    """
    transport: str = "rfcomm"
    port: Optional[str] = None
    baudrate: int = 115200
    rfcomm_channel: int = 1
    read_timeout: float = 0.1
    read_buffer_size: int = 256
    max_write_size: int = 256
    ping_interval: float = 60.0
    raise_on_connect_failure: bool = False
    disconnect_timeout: Optional[float] = 3.0
    response_timeout: Optional[float] = None
    response_sweep_interval: float = 1.0
    macro_budget: int = 900
    macro_max_chunk: int = 100
    macro_min_free: int = 50
    macro_streaming_enabled: bool = True
    shutdown_echo_count: int = 2

    def __post_init__(self):
        if self.transport not in TRANSPORTS:
            raise ConfigurationError(
                f"Unknown transport {self.transport!r}",
                details={'supported': TRANSPORTS},
            )
        if self.transport == "serial" and not self.port:
            raise ConfigurationError("The serial transport requires a port")
        for name in ("read_buffer_size", "max_write_size", "macro_budget",
                     "macro_max_chunk", "shutdown_echo_count"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.ping_interval <= 0 or self.read_timeout <= 0:
            raise ConfigurationError("Intervals and timeouts must be positive")
        if self.macro_max_chunk > self.macro_budget:
            raise ConfigurationError(
                "macro_max_chunk cannot exceed macro_budget",
                details={'macro_max_chunk': self.macro_max_chunk,
                         'macro_budget': self.macro_budget},
            )
        if self.macro_max_chunk > MAX_STREAM_CHUNK:
            raise ConfigurationError(
                "macro_max_chunk does not fit into one packet",
                details={'macro_max_chunk': self.macro_max_chunk, 'limit': MAX_STREAM_CHUNK},
            )
        if not 0 <= self.macro_min_free < self.macro_budget:
            raise ConfigurationError("macro_min_free must lie inside the budget")
        if self.response_timeout is not None and self.response_timeout <= 0:
            raise ConfigurationError("response_timeout must be positive or None")
