"""
Shared fixtures and doubles for the spherolink test suite.

MockTransport stands in for the Bluetooth link. It records every write,
serves injected inbound bytes to the reader thread, can be told to fail,
and can answer every command packet the way a robot would.
"""

import threading
import time
from typing import Callable, Dict, List, Optional

import pytest

from spherolink.commands import CommandType
from spherolink.errors import TransportClosedError, TransportError, TransportOpenError
from spherolink.protocol import ResponseCode, encode_information, encode_response
from spherolink.transport import Transport


ADDRESS = "00:06:66:4A:12:34"


def split_command_packets(data: bytes) -> List[bytes]:
    """Cut a stream of written command packets into single packets."""
    packets = []
    i = 0
    while i + 6 <= len(data):
        total = 6 + data[i + 5]
        packets.append(bytes(data[i:i + total]))
        i += total
    return packets


def command_kind(packet: bytes) -> Optional[CommandType]:
    for kind in CommandType:
        if kind.device_id == packet[2] and kind.command_id == packet[3]:
            return kind
    return None


class MockTransport(Transport):
    """Mock byte channel for testing without hardware."""

    def __init__(self, auto_respond: bool = False, read_timeout: float = 0.01):
        self.auto_respond = auto_respond
        self.read_timeout = read_timeout
        self.response_code = ResponseCode.OK
        self.response_data: Dict[CommandType, bytes] = {}
        self.silent_kinds = set()

        self.fail_open = False
        self.fail_write = False
        self.open_count = 0
        self.close_count = 0
        self.writes: List[bytes] = []

        self._inbound = bytearray()
        self._cond = threading.Condition()
        self._open = False
        self._eof = False

    # Transport interface

    def open(self) -> None:
        if self.fail_open:
            raise TransportOpenError("Mock open failure")
        with self._cond:
            self._open = True
            self._eof = False
            self.open_count += 1

    @property
    def is_open(self) -> bool:
        return self._open

    def read(self, size: int) -> bytes:
        with self._cond:
            if not self._inbound and not self._eof and self._open:
                self._cond.wait(self.read_timeout)
            if self._eof or not self._open:
                raise TransportClosedError("Mock transport closed")
            data = bytes(self._inbound[:size])
            del self._inbound[:size]
            return data

    def write(self, data: bytes) -> None:
        if self.fail_write:
            raise TransportError("Mock write failure")
        with self._cond:
            if not self._open:
                raise TransportError("Mock transport closed")
            self.writes.append(bytes(data))
        if self.auto_respond:
            for packet in split_command_packets(data):
                self._answer(packet)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        with self._cond:
            self._open = False
            self.close_count += 1
            self._cond.notify_all()

    # Test helpers

    def _answer(self, packet: bytes) -> None:
        kind = command_kind(packet)
        if kind in self.silent_kinds:
            return
        self.inject(encode_response(self.response_code, self.response_data.get(kind, b"")))

    def inject(self, data: bytes) -> None:
        """Queue bytes for the reader."""
        with self._cond:
            self._inbound.extend(data)
            self._cond.notify_all()

    def inject_information(self, code: int, data: bytes = b"") -> None:
        self.inject(encode_information(code, data))

    def end_of_stream(self) -> None:
        """Simulate the robot dropping the link."""
        with self._cond:
            self._eof = True
            self._cond.notify_all()

    @property
    def written(self) -> bytes:
        with self._cond:
            return b"".join(self.writes)

    def packets(self) -> List[bytes]:
        return split_command_packets(self.written)

    def kinds(self) -> List[CommandType]:
        return [command_kind(p) for p in self.packets()]

    def clear_written(self) -> None:
        with self._cond:
            self.writes.clear()


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.005) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def mock_transport():
    """Mock transport that answers every command with OK."""
    return MockTransport(auto_respond=True)


@pytest.fixture
def silent_transport():
    """Mock transport that never answers."""
    return MockTransport(auto_respond=False)


@pytest.fixture
def waiter():
    return wait_until
