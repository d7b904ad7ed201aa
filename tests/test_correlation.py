"""
Correlation queue tests.

Run with:
    pytest tests/test_correlation.py -v
"""

import threading

import pytest

from spherolink.commands import FrontLEDCommand, PingCommand, RollCommand
from spherolink.correlation import FifoCorrelator, InFlightEntry
from spherolink.errors import UnmatchedResponseError


class TestFifoCorrelator:

    def test_matches_in_send_order(self):
        correlator = FifoCorrelator()
        commands = [PingCommand(), RollCommand(10, 0.2), FrontLEDCommand(1.0)]
        for cmd in commands:
            correlator.register(InFlightEntry(cmd))
        assert [correlator.match().command for _ in commands] == commands
        assert len(correlator) == 0

    def test_empty_queue_raises(self):
        with pytest.raises(UnmatchedResponseError):
            FifoCorrelator().match()

    def test_error_carries_header(self):
        with pytest.raises(UnmatchedResponseError) as exc_info:
            FifoCorrelator().match(header="hdr")
        assert exc_info.value.header == "hdr"

    def test_entry_flags_preserved(self):
        correlator = FifoCorrelator()
        correlator.register(InFlightEntry(PingCommand(), system=True, forced=True))
        entry = correlator.match()
        assert entry.system and entry.forced

    def test_clear(self):
        correlator = FifoCorrelator()
        correlator.register(InFlightEntry(PingCommand()))
        correlator.clear()
        assert len(correlator) == 0

    def test_shared_lock(self):
        lock = threading.RLock()
        correlator = FifoCorrelator(lock)
        with lock:
            correlator.register(InFlightEntry(PingCommand()))
            assert len(correlator) == 1


class TestExpiry:

    def test_no_timeout_never_expires(self):
        correlator = FifoCorrelator()
        correlator.register(InFlightEntry(PingCommand(), sent_at=0.0))
        assert correlator.expire(now=1e9) == []
        assert len(correlator) == 1

    def test_expires_head_only(self):
        correlator = FifoCorrelator(timeout=1.0)
        correlator.register(InFlightEntry(PingCommand(), sent_at=10.0))
        correlator.register(InFlightEntry(RollCommand(0, 0), sent_at=10.5))
        correlator.register(InFlightEntry(FrontLEDCommand(0), sent_at=12.0))

        expired = correlator.expire(now=11.6)
        assert [type(e.command) for e in expired] == [PingCommand, RollCommand]
        assert len(correlator) == 1
        assert isinstance(correlator.match().command, FrontLEDCommand)

    def test_nothing_expired_yet(self):
        correlator = FifoCorrelator(timeout=5.0)
        correlator.register(InFlightEntry(PingCommand(), sent_at=100.0))
        assert correlator.expire(now=101.0) == []

    def test_pending_snapshot(self):
        correlator = FifoCorrelator()
        correlator.register(InFlightEntry(PingCommand()))
        snapshot = correlator.pending()
        snapshot.clear()
        assert len(correlator) == 1
