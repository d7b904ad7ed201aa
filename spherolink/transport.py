"""
Byte channel to the robot.

The driver only needs a reliable, ordered byte stream. Two implementations
are provided:

    SerialTransport  - pyserial device, e.g. a bound /dev/rfcomm0
    RfcommTransport  - Bluetooth RFCOMM socket (Linux, stdlib socket)

Read semantics shared by both: ``read()`` returns b"" when nothing arrived
within the read timeout and raises TransportClosedError once the channel is
gone. ``close()`` may be called from any thread and makes a blocked read or
write fail promptly.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple
import logging
import socket
import threading

import serial
import serial.tools.list_ports

from .errors import TransportClosedError, TransportError, TransportOpenError


logger = logging.getLogger(__name__)


def enumerate_ports() -> List[Tuple[str, str]]:
    """
    Enumerate available serial ports.

    Returns:
        List of (port_name, description) tuples sorted by port name
        Example: [("/dev/rfcomm0", "n/a"), ...]
    """
    ports = [(info.device, info.description) for info in serial.tools.list_ports.comports()]
    ports.sort(key=lambda x: x[0])
    return ports


class Transport(ABC):
    """Abstract byte channel."""

    @abstractmethod
    def open(self) -> None:
        """
        Open the channel.

        Raises:
            TransportOpenError: If the channel cannot be opened
        """
        pass

    @abstractmethod
    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes, b"" if none arrived in time."""
        pass

    @abstractmethod
    def write(self, data: bytes) -> None:
        pass

    @abstractmethod
    def flush(self) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass


class SerialTransport(Transport):
    """
    Serial device transport.

    Args:
        port: Device path (e.g., '/dev/rfcomm0', 'COM5')
        baudrate: Serial baudrate
        timeout: Read timeout in seconds
    """

    def __init__(self, port: str, baudrate: int = 115200, timeout: float = 0.1):
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self._ser: Optional[serial.Serial] = None

    def open(self) -> None:
        if self.is_open:
            return
        try:
            self._ser = serial.Serial(
                self.port,
                baudrate=self.baudrate,
                timeout=self.timeout,
                write_timeout=None,
            )
        except (serial.SerialException, OSError, ValueError) as e:
            self._ser = None
            raise TransportOpenError(f"Could not open {self.port}: {e}") from e
        logger.info(f"Opened serial port {self.port} at {self.baudrate} baud")

    @property
    def is_open(self) -> bool:
        return self._ser is not None and self._ser.is_open

    def _port(self) -> serial.Serial:
        ser = self._ser
        if ser is None or not ser.is_open:
            raise TransportClosedError(f"Serial port {self.port} is closed")
        return ser

    def read(self, size: int) -> bytes:
        ser = self._port()
        try:
            return ser.read(size)
        except (serial.SerialException, OSError, TypeError, AttributeError) as e:
            # pyserial raises TypeError/AttributeError when closed mid-read
            raise TransportClosedError(f"Read from {self.port} failed: {e}") from e

    def write(self, data: bytes) -> None:
        ser = self._port()
        try:
            ser.write(data)
        except (serial.SerialException, OSError, TypeError, AttributeError) as e:
            raise TransportError(f"Write to {self.port} failed: {e}") from e

    def flush(self) -> None:
        ser = self._port()
        try:
            ser.flush()
        except (serial.SerialException, OSError, TypeError, AttributeError) as e:
            raise TransportError(f"Flush of {self.port} failed: {e}") from e

    def close(self) -> None:
        ser, self._ser = self._ser, None
        if ser is not None:
            try:
                ser.close()
            except (serial.SerialException, OSError) as e:
                logger.warning(f"Error closing {self.port}: {e}")
            logger.info(f"Closed serial port {self.port}")


class RfcommTransport(Transport):
    """
    Bluetooth RFCOMM socket transport.

    Args:
        address: Bluetooth address of the robot ('00:06:66:...')
        channel: RFCOMM channel
        timeout: Read timeout in seconds
    """

    def __init__(self, address: str, channel: int = 1, timeout: float = 0.1):
        self.address = address
        self.channel = channel
        self.timeout = timeout
        self._sock: Optional[socket.socket] = None
        self._write_lock = threading.Lock()

    def open(self) -> None:
        if self.is_open:
            return
        family = getattr(socket, 'AF_BLUETOOTH', None)
        protocol = getattr(socket, 'BTPROTO_RFCOMM', None)
        if family is None or protocol is None:
            raise TransportOpenError("Bluetooth RFCOMM sockets are not supported on this platform")

        sock = socket.socket(family, socket.SOCK_STREAM, protocol)
        try:
            sock.connect((self.address, self.channel))
        except OSError as e:
            sock.close()
            raise TransportOpenError(
                f"Could not connect to {self.address}",
                details={'channel': self.channel, 'error': str(e)},
            ) from e
        sock.settimeout(self.timeout)
        self._sock = sock
        logger.info(f"Connected RFCOMM socket to {self.address} channel {self.channel}")

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    def _socket(self) -> socket.socket:
        sock = self._sock
        if sock is None:
            raise TransportClosedError(f"Socket to {self.address} is closed")
        return sock

    def read(self, size: int) -> bytes:
        sock = self._socket()
        try:
            data = sock.recv(size)
        except socket.timeout:
            return b""
        except OSError as e:
            raise TransportClosedError(f"Read from {self.address} failed: {e}") from e
        if not data:
            raise TransportClosedError(f"Connection to {self.address} closed by peer")
        return data

    def write(self, data: bytes) -> None:
        sock = self._socket()
        with self._write_lock:
            try:
                sock.sendall(data)
            except OSError as e:
                raise TransportError(f"Write to {self.address} failed: {e}") from e

    def flush(self) -> None:
        # sendall() returns once the kernel owns the data
        self._socket()

    def close(self) -> None:
        sock, self._sock = self._sock, None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Already disconnected
            pass
        sock.close()
        logger.info(f"Closed RFCOMM socket to {self.address}")
