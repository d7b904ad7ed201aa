"""
Macro memory manager tests.

Run with:
    pytest tests/test_macro_manager.py -v
"""

from dataclasses import dataclass
from typing import ClassVar
from unittest.mock import Mock

import pytest

from spherolink.commands import (
    AbortMacroCommand,
    MAX_PAYLOAD_LENGTH,
    MAX_STREAM_CHUNK,
    MAX_TEMPORARY_MACRO_DATA,
    PingCommand,
    RollCommand,
    RunMacroCommand,
    SaveMacroCommand,
    SaveTemporaryMacroCommand,
    STREAM_MACRO_ID,
    TEMPORARY_MACRO_ID,
)
from spherolink.errors import CommandTooLargeError, ConfigurationError, MacroTooLargeError
from spherolink.macro import MACRO_END, Delay, Emit, MacroCommand, MacroMode, MacroObject, MacroRGB
from spherolink.macro_manager import MacroMemoryManager


@dataclass(frozen=True)
class Blob(MacroCommand):
    """Macro command of arbitrary size."""
    code: ClassVar[int] = 0x0B
    size: int = 30

    def arguments(self) -> bytes:
        return bytes(self.size - 1)


def streaming(*commands) -> MacroObject:
    return MacroObject(commands, mode=MacroMode.CACHED_STREAMING)


def make_manager(**kwargs):
    calls = Mock()
    manager = MacroMemoryManager(
        send=calls.send,
        send_system=calls.send_system,
        on_done=calls.on_done,
        **kwargs
    )
    return manager, calls


def uploads(calls):
    return [c.args[0] for c in calls.send_system.call_args_list
            if isinstance(c.args[0], SaveMacroCommand)]


# =============================================================================
# NORMAL MODE
# =============================================================================

class TestNormalMode:

    def test_save_then_run(self):
        manager, calls = make_manager()
        macro = MacroObject([MacroRGB(255, 0, 0), Delay(100)])
        manager.play(macro)

        sent = [c.args[0] for c in calls.send_system.call_args_list]
        assert sent == [
            SaveTemporaryMacroCommand(data=macro.generate_macro_data()),
            RunMacroCommand(TEMPORARY_MACRO_ID),
        ]
        assert not manager.running


# =============================================================================
# STREAMING
# =============================================================================

class TestChunking:

    def test_five_commands_two_chunks(self):
        """5 x 30 byte commands with a 5 byte marker upload as 95 + 65."""
        manager, calls = make_manager(marker_factory=lambda: Blob(5))
        manager.play(streaming(*[Blob(30) for _ in range(5)]))

        chunks = uploads(calls)
        assert len(chunks) == 2
        assert manager.tracked == [95, 65]
        assert manager.outstanding_markers == 2
        assert len(chunks[0].data) == 95
        assert len(chunks[1].data) == 66
        assert chunks[1].data[-1] == MACRO_END
        assert chunks[0].data[-1] != MACRO_END
        assert all(c.macro_id == STREAM_MACRO_ID for c in chunks)
        assert manager.backlog == []

    def test_marker_ends_each_chunk(self):
        manager, calls = make_manager()
        manager.play(streaming(MacroRGB(1, 2, 3), Delay(10)))
        data = uploads(calls)[0].data
        assert data == MacroRGB(1, 2, 3).to_bytes() + Delay(10).to_bytes() + Emit(1).to_bytes() + bytes([MACRO_END])
        assert manager.tracked == [10]

    def test_budget_never_exceeded(self):
        manager, calls = make_manager(budget=200)
        manager.play(streaming(*[Blob(30) for _ in range(20)]))
        assert sum(manager.tracked) <= 200

        while manager.running:
            manager.acknowledge()
            assert sum(manager.tracked) <= 200
            assert all(size <= 100 for size in manager.tracked)

    def test_fill_idempotent_below_low_water(self):
        manager, calls = make_manager(budget=200)
        manager.play(streaming(*[Blob(30) for _ in range(20)]))
        assert manager.free_bytes <= 50

        before = calls.send_system.call_count
        assert manager.fill() == 0
        assert manager.fill() == 0
        assert calls.send_system.call_count == before

    def test_nothing_fits_no_upload(self):
        manager, calls = make_manager(budget=140)
        manager.play(streaming(*[Blob(70) for _ in range(3)]))
        assert manager.tracked == [72]
        assert len(manager.backlog) == 2
        assert manager.fill() == 0

    def test_oversized_command_rejected(self):
        manager, calls = make_manager()
        with pytest.raises(MacroTooLargeError):
            manager.play(streaming(Delay(1), Blob(99)))
        calls.send_system.assert_not_called()
        assert not manager.running

    def test_disabled_streaming_ignored(self):
        manager, calls = make_manager(streaming_enabled=False)
        manager.play(streaming(Delay(1)))
        calls.send_system.assert_not_called()

    def test_empty_macro_ignored(self):
        manager, calls = make_manager()
        manager.play(streaming())
        calls.send_system.assert_not_called()
        assert not manager.running


class TestAcknowledge:

    def test_ack_frees_oldest_chunk(self):
        manager, calls = make_manager(budget=200)
        manager.play(streaming(*[Blob(30) for _ in range(9)]))
        assert manager.tracked == [92, 92]

        manager.acknowledge()
        assert manager.tracked == [92, 92]
        assert len(uploads(calls)) == 3
        assert manager.outstanding_markers == 2

    def test_outstanding_never_negative(self):
        manager, calls = make_manager()
        manager.play(streaming(Delay(1)))
        assert manager.acknowledge()
        assert not manager.acknowledge()
        assert manager.outstanding_markers == 0

    def test_ack_ignored_when_idle(self):
        manager, calls = make_manager()
        assert not manager.acknowledge()
        calls.on_done.assert_not_called()

    def test_completion_flushes_after_macro_queue_in_order(self):
        manager, calls = make_manager()
        first, second = RollCommand(0, 0.5), PingCommand()
        manager.send_after_macro(first)
        manager.send_after_macro(second)
        manager.play(streaming(Blob(30), Blob(30)))

        calls.reset_mock()
        assert manager.acknowledge()

        names = [c[0] for c in calls.mock_calls]
        assert names == ['send', 'send', 'on_done']
        assert [c.args[0] for c in calls.send.call_args_list] == [first, second]
        assert manager.after_macro == []
        assert not manager.running
        assert manager.tracked == []

    def test_no_completion_while_markers_outstanding(self):
        manager, calls = make_manager(marker_factory=lambda: Blob(5))
        manager.play(streaming(*[Blob(30) for _ in range(5)]))
        assert not manager.acknowledge()
        calls.on_done.assert_not_called()
        assert manager.acknowledge()
        calls.on_done.assert_called_once()

    def test_clear_after_macro(self):
        manager, calls = make_manager()
        manager.send_after_macro(PingCommand())
        manager.clear_after_macro()
        manager.play(streaming(Delay(1)))
        manager.acknowledge()
        calls.send.assert_not_called()


class TestAbort:

    def test_abort_clears_session(self):
        manager, calls = make_manager(budget=200)
        manager.play(streaming(*[Blob(30) for _ in range(20)]))
        manager.abort()
        calls.send_system.assert_called_with(AbortMacroCommand())
        assert not manager.running
        assert manager.backlog == []
        assert manager.tracked == []
        assert manager.outstanding_markers == 0

    def test_new_macro_supersedes_running(self):
        manager, calls = make_manager(budget=200)
        manager.play(streaming(*[Blob(30) for _ in range(20)]))
        calls.reset_mock()

        manager.play(streaming(Delay(5)))
        sent = [c.args[0] for c in calls.send_system.call_args_list]
        assert sent[0] == AbortMacroCommand()
        assert isinstance(sent[1], SaveMacroCommand)
        assert manager.running
        assert manager.tracked == [5]

    def test_reset_sends_nothing(self):
        manager, calls = make_manager()
        manager.play(streaming(Delay(1)))
        calls.reset_mock()
        manager.reset()
        calls.send_system.assert_not_called()
        assert not manager.running


# =============================================================================
# PACKET LIMITS
# =============================================================================

class TestPacketLimits:

    def test_chunk_larger_than_packet_rejected(self):
        with pytest.raises(ConfigurationError):
            make_manager(max_chunk=MAX_STREAM_CHUNK + 1)

    def test_full_chunk_fits_one_packet(self):
        manager, calls = make_manager(max_chunk=MAX_STREAM_CHUNK)
        manager.play(streaming(Blob(MAX_STREAM_CHUNK - 2)))
        assert manager.tracked == [MAX_STREAM_CHUNK]
        assert uploads(calls)[0].packet[5] == 0xFF

    def test_oversized_normal_macro_rejected(self):
        manager, calls = make_manager()
        with pytest.raises(MacroTooLargeError):
            manager.play(MacroObject([MacroRGB(1, 2, 3, 0)] * 60))
        calls.send_system.assert_not_called()

    def test_largest_normal_macro_accepted(self):
        manager, calls = make_manager()
        manager.play(MacroObject([Blob(MAX_TEMPORARY_MACRO_DATA - 1)]))
        save = calls.send_system.call_args_list[0].args[0]
        assert isinstance(save, SaveTemporaryMacroCommand)
        assert save.packet[5] == 0xFF

    def test_failed_upload_leaves_no_session(self):
        manager, calls = make_manager()
        calls.send_system.side_effect = CommandTooLargeError(PingCommand(), 300, MAX_PAYLOAD_LENGTH)
        with pytest.raises(CommandTooLargeError):
            manager.play(streaming(Blob(30), Blob(30)))
        assert not manager.running
        assert manager.tracked == []
        assert manager.outstanding_markers == 0

    def test_failed_refill_keeps_backlog(self):
        manager, calls = make_manager(budget=200)
        manager.play(streaming(*[Blob(30) for _ in range(9)]))
        backlog = manager.backlog
        assert len(backlog) == 3

        calls.send_system.side_effect = RuntimeError("queue closed")
        with pytest.raises(RuntimeError):
            manager.acknowledge()
        assert manager.backlog == backlog
        assert manager.tracked == [92]
        assert manager.outstanding_markers == 1
