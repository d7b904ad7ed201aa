"""
Stream framer tests.

Run with:
    pytest tests/test_framer.py -v
"""

from unittest.mock import Mock

import pytest

from conftest import MockTransport, wait_until
from spherolink.commands import GetBluetoothInfoCommand, PingCommand, RollCommand
from spherolink.correlation import FifoCorrelator, InFlightEntry
from spherolink.errors import CorruptPacketError, UnmatchedResponseError
from spherolink.framer import StreamFramer
from spherolink.protocol import InformationCode, ResponseCode, encode_information, encode_response
from spherolink.responses import EmitResponse, GetBluetoothInfoResponse


@pytest.fixture
def correlator():
    return FifoCorrelator()


@pytest.fixture
def framer(correlator):
    return StreamFramer(
        MockTransport(),
        correlator,
        on_response=Mock(),
        on_information=Mock(),
        on_protocol_error=Mock(),
        on_closed=Mock(),
    )


# =============================================================================
# FRAMING
# =============================================================================

class TestFeed:

    def test_single_response(self, framer, correlator):
        correlator.register(InFlightEntry(PingCommand()))
        assert framer.feed(encode_response(ResponseCode.OK)) == 1
        response, entry = framer.on_response.call_args[0]
        assert response.ok
        assert isinstance(entry.command, PingCommand)
        assert framer.buffered == 0

    def test_packet_split_across_reads(self, framer, correlator):
        correlator.register(InFlightEntry(PingCommand()))
        packet = encode_response(ResponseCode.OK, b"\x01\x02\x03")
        assert framer.feed(packet[:3]) == 0
        assert framer.feed(packet[3:7]) == 0
        assert framer.buffered == 7
        assert framer.feed(packet[7:]) == 1
        assert framer.buffered == 0

    def test_byte_at_a_time(self, framer):
        packet = encode_information(InformationCode.PRE_SLEEP_WARNING)
        handled = sum(framer.feed(bytes([b])) for b in packet)
        assert handled == 1
        framer.on_information.assert_called_once()

    def test_several_packets_in_one_read(self, framer, correlator):
        correlator.register(InFlightEntry(PingCommand()))
        correlator.register(InFlightEntry(RollCommand(0, 0)))
        data = (encode_response(ResponseCode.OK)
                + encode_information(InformationCode.MACRO_MARKER, b"\x01")
                + encode_response(ResponseCode.EPARAM))
        assert framer.feed(data) == 3
        assert framer.on_response.call_count == 2
        assert framer.on_information.call_count == 1

    def test_trailing_partial_packet_retained(self, framer, correlator):
        correlator.register(InFlightEntry(PingCommand()))
        second = encode_response(ResponseCode.OK)
        assert framer.feed(encode_response(ResponseCode.OK) + second[:2]) == 1
        assert framer.buffered == 2

    def test_information_routed_by_code(self, framer):
        framer.feed(encode_information(InformationCode.MACRO_MARKER, b"\x01"))
        info = framer.on_information.call_args[0][0]
        assert isinstance(info, EmitResponse)
        assert info.marker_id == 1

    def test_response_decoded_by_command_kind(self, framer, correlator):
        correlator.register(InFlightEntry(GetBluetoothInfoCommand()))
        data = b"Ball".ljust(16, b"\x00") + b"000666000000"
        framer.feed(encode_response(ResponseCode.OK, data))
        response = framer.on_response.call_args[0][0]
        assert isinstance(response, GetBluetoothInfoResponse)
        assert response.name == "Ball"

    def test_corrupt_packet_delivered_marked(self, framer, correlator):
        correlator.register(InFlightEntry(PingCommand()))
        packet = bytearray(encode_response(ResponseCode.OK, b"\x05"))
        packet[-1] ^= 0x01
        framer.feed(bytes(packet))
        assert framer.on_response.call_args[0][0].corrupt


class TestResync:

    def test_garbage_before_packet_skipped(self, framer):
        framer.feed(b"\x00\x12\x34" + encode_information(InformationCode.PRE_SLEEP_WARNING))
        framer.on_information.assert_called_once()
        assert framer.buffered == 0

    def test_garbage_only_discarded(self, framer):
        assert framer.feed(b"\x01\x02\x03\x04\x05\x06") == 0
        assert framer.buffered == 0

    def test_unknown_type_skipped(self, framer):
        data = bytes([0xFF, 0x10, 0x00, 0x00, 0x01, 0x00]) + encode_information(InformationCode.PRE_SLEEP_WARNING)
        framer.feed(data)
        framer.on_information.assert_called_once()
        framer.on_response.assert_not_called()

    def test_information_length_out_of_range_skipped(self, framer, correlator):
        """A garbage 16-bit length does not stall the responses behind it."""
        correlator.register(InFlightEntry(PingCommand()))
        noise = bytes([0xFF, 0xFE, 0x05, 0xFF, 0xFF])
        assert framer.feed(noise + encode_response(ResponseCode.OK)) == 1
        framer.on_response.assert_called_once()
        framer.on_information.assert_not_called()
        error = framer.on_protocol_error.call_args[0][0]
        assert isinstance(error, CorruptPacketError)
        assert error.details['length'] == 0xFFFF
        assert framer.buffered == 0


class TestUnmatchedResponse:

    def test_reported_and_skipped(self, framer):
        assert framer.feed(encode_response(ResponseCode.OK)) == 1
        framer.on_response.assert_not_called()
        error = framer.on_protocol_error.call_args[0][0]
        assert isinstance(error, UnmatchedResponseError)

    def test_framing_continues(self, framer, correlator):
        framer.feed(encode_response(ResponseCode.OK))
        correlator.register(InFlightEntry(PingCommand()))
        framer.feed(encode_response(ResponseCode.OK))
        framer.on_response.assert_called_once()


# =============================================================================
# READER THREAD
# =============================================================================

class TestReaderThread:

    @pytest.mark.timeout(5)
    def test_reads_from_transport(self, correlator):
        transport = MockTransport()
        transport.open()
        on_info = Mock()
        framer = StreamFramer(transport, correlator, Mock(), on_info)
        framer.start()
        try:
            transport.inject(encode_information(InformationCode.PRE_SLEEP_WARNING))
            assert wait_until(lambda: on_info.call_count == 1)
        finally:
            framer.stop()
        assert not framer.running

    @pytest.mark.timeout(5)
    def test_end_of_stream_reports_closed(self, correlator):
        transport = MockTransport()
        transport.open()
        on_closed = Mock()
        framer = StreamFramer(transport, correlator, Mock(), Mock(), on_closed=on_closed)
        framer.start()
        transport.end_of_stream()
        assert wait_until(lambda: on_closed.call_count == 1)
        assert not framer.running
        framer.stop()

    @pytest.mark.timeout(5)
    def test_stop_does_not_report_closed(self, correlator):
        transport = MockTransport()
        transport.open()
        on_closed = Mock()
        framer = StreamFramer(transport, correlator, Mock(), Mock(), on_closed=on_closed)
        framer.start()
        framer.stop()
        transport.close()
        on_closed.assert_not_called()

    @pytest.mark.timeout(5)
    def test_stop_from_callback(self, correlator):
        transport = MockTransport()
        transport.open()
        framer = StreamFramer(transport, correlator, Mock(), Mock())
        framer.on_information = lambda info: framer.stop()
        framer.start()
        transport.inject(encode_information(InformationCode.PRE_SLEEP_WARNING))
        assert wait_until(lambda: not framer.running)
