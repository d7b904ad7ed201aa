"""
Incoming stream framing.

The reader thread pulls raw bytes from the transport into one growable
buffer and cuts complete packets out of it. Packets can arrive split over
several reads or several to a read; whatever is left after the last
complete packet stays in the buffer for the next read.

Routing:
    RESPONSE     -> correlator.match() -> decode_response() -> on_response
    INFORMATION  -> decode_information() -> on_information
"""

from typing import Callable, Optional
import logging
import threading

from .correlation import InFlightEntry, ResponseCorrelator
from .errors import CorruptPacketError, ProtocolError, TransportError, UnmatchedResponseError
from .protocol import (
    MAX_INFORMATION_LENGTH,
    RESPONSE_HEADER_LENGTH,
    SOP1,
    ResponseType,
    decode_header,
)
from .responses import (
    InformationResponse,
    ResponseMessage,
    decode_information,
    decode_response,
)
from .tools.utilities import log_exceptions


logger = logging.getLogger(__name__)


class StreamFramer:
    """
    Packet framer and reader thread.

    Args:
        transport: Open transport to read from
        correlator: Supplies the command each RESPONSE answers
        on_response: Called with (response, entry) per matched RESPONSE
        on_information: Called with each decoded INFORMATION packet
        on_protocol_error: Called with a ProtocolError for skipped packets
        on_closed: Called once when reading fails while running
        buffer_size: Bytes requested per transport read
        max_information_length: Longest INFORMATION DLEN accepted before
            the header is treated as noise and skipped
    """

    def __init__(
        self,
        transport,
        correlator: ResponseCorrelator,
        on_response: Callable[[ResponseMessage, InFlightEntry], None],
        on_information: Callable[[InformationResponse], None],
        on_protocol_error: Optional[Callable[[ProtocolError], None]] = None,
        on_closed: Optional[Callable[[], None]] = None,
        buffer_size: int = 256,
        max_information_length: int = MAX_INFORMATION_LENGTH
    ):
        self.transport = transport
        self.correlator = correlator
        self.on_response = on_response
        self.on_information = on_information
        self.on_protocol_error = on_protocol_error
        self.on_closed = on_closed
        self.buffer_size = buffer_size
        self.max_information_length = max_information_length

        self._buffer = bytearray()
        self._thread: Optional[threading.Thread] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def buffered(self) -> int:
        """Bytes of an incomplete packet waiting for more data."""
        return len(self._buffer)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._run, name="spherolink-reader", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 1.0) -> None:
        """Stop the reader. Safe to call from the reader thread itself."""
        self._running = False
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None

    # =========================================================================
    # Framing
    # =========================================================================

    def feed(self, data: bytes) -> int:
        """
        Append received bytes and handle every complete packet.

        Returns:
            Number of packets extracted
        """
        buf = self._buffer
        buf.extend(data)
        handled = 0

        while buf:
            start = buf.find(SOP1)
            if start < 0:
                logger.debug(f"Discarding {len(buf)} bytes without a start byte")
                buf.clear()
                break
            if start > 0:
                logger.debug(f"Skipping {start} bytes to resynchronize")
                del buf[:start]

            if len(buf) < RESPONSE_HEADER_LENGTH:
                break

            header = decode_header(buf)
            if header.response_type == ResponseType.UNKNOWN:
                logger.warning(f"Unknown packet type, header {header.raw.hex()}")
                del buf[0]
                continue

            if (header.response_type == ResponseType.INFORMATION
                    and header.length > self.max_information_length):
                error = CorruptPacketError(
                    "Information packet length out of range",
                    details={'length': header.length, 'limit': self.max_information_length},
                )
                logger.warning(f"{error}, skipping header")
                del buf[:RESPONSE_HEADER_LENGTH]
                if self.on_protocol_error:
                    self.on_protocol_error(error)
                continue

            total = header.packet_length
            if len(buf) < total:
                break

            payload = bytes(buf[RESPONSE_HEADER_LENGTH:total])
            del buf[:total]
            handled += 1

            if header.response_type == ResponseType.RESPONSE:
                self._handle_response(header, payload)
            else:
                self._handle_information(header, payload)

        return handled

    def reset(self) -> None:
        self._buffer.clear()

    def _handle_response(self, header, payload: bytes) -> None:
        try:
            entry = self.correlator.match(header)
        except UnmatchedResponseError as e:
            logger.error(f"{e}, skipping packet")
            if self.on_protocol_error:
                self.on_protocol_error(e)
            return

        response = decode_response(entry.command, header, payload)
        if response.corrupt:
            logger.warning(f"Corrupt response to {entry.command!r}")
        else:
            logger.debug(f"Response {header.code.name} to {entry.command!r}")
        self.on_response(response, entry)

    def _handle_information(self, header, payload: bytes) -> None:
        info = decode_information(header, payload)
        if info.corrupt:
            logger.warning(f"Corrupt information packet {header.info_code.name}")
        else:
            logger.debug(f"Information packet {header.info_code.name}")
        self.on_information(info)

    # =========================================================================
    # Reader thread
    # =========================================================================

    @log_exceptions
    def _run(self) -> None:
        try:
            while self._running:
                data = self.transport.read(self.buffer_size)
                if data and self._running:
                    self.feed(data)
        except (TransportError, OSError) as e:
            if self._running:
                logger.error(f"Read failed: {e}")
                self._fail()
        except Exception:
            if self._running:
                self._fail()
            raise

    def _fail(self) -> None:
        self._running = False
        if self.on_closed:
            self.on_closed()
