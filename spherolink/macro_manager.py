"""
Macro Memory Manager
====================

Streams macros that do not fit the device's macro memory at once.

The device holds ``budget`` bytes of macro data. A streaming macro is cut
into chunks of at most ``max_chunk`` bytes, each ending in an Emit marker.
When the device reaches a marker it sends a macro marker INFORMATION packet;
that acknowledgement frees the oldest chunk's bytes and lets the next chunk
be uploaded. The last chunk additionally carries the MACRO_END terminator.

Session states::

    idle --play()--> running --last ack--> idle (MACRO_DONE)
                        |
                        +--abort()--> idle

Non-streaming (NORMAL) macros are saved to the temporary slot and run in
one go; they do not touch the session state.
"""

from collections import deque
from itertools import islice
from typing import Callable, Deque, List, Optional
import logging
import threading

from .commands import (
    AbortMacroCommand,
    CommandMessage,
    MACRO_FLAG_MOTOR_CONTROL,
    MAX_STREAM_CHUNK,
    MAX_TEMPORARY_MACRO_DATA,
    RunMacroCommand,
    STREAM_MACRO_ID,
    SaveMacroCommand,
    SaveTemporaryMacroCommand,
    TEMPORARY_MACRO_ID,
)
from .errors import ConfigurationError, MacroTooLargeError
from .macro import MACRO_END, Emit, MacroCommand, MacroMode, MacroObject


logger = logging.getLogger(__name__)


class MacroMemoryManager:
    """
    Streaming macro session.

    Args:
        send: Queues an ordinary command (post-macro commands)
        send_system: Queues a system command (uploads, run, abort)
        on_done: Called when a streaming macro has completely run
        lock: Connection mutex shared with the correlator
        budget: Device macro storage in bytes
        max_chunk: Largest chunk, marker included
        min_free: No chunk is uploaded while free space is at or below this
        marker_factory: Builds the synchronization marker appended per chunk
        streaming_enabled: Accept CACHED_STREAMING macros

    Raises:
        ConfigurationError: If ``max_chunk`` cannot be carried by one packet
    """

    def __init__(
        self,
        send: Callable[[CommandMessage], object],
        send_system: Callable[[CommandMessage], object],
        on_done: Optional[Callable[[], None]] = None,
        lock: Optional[threading.RLock] = None,
        budget: int = 900,
        max_chunk: int = 100,
        min_free: int = 50,
        marker_factory: Callable[[], MacroCommand] = lambda: Emit(1),
        streaming_enabled: bool = True
    ):
        if max_chunk > MAX_STREAM_CHUNK:
            raise ConfigurationError(
                "Macro chunk does not fit into one packet",
                details={'max_chunk': max_chunk, 'limit': MAX_STREAM_CHUNK},
            )
        self._send = send
        self._send_system = send_system
        self._on_done = on_done
        self._lock = lock or threading.RLock()
        self.budget = budget
        self.max_chunk = max_chunk
        self.min_free = min_free
        self.marker_factory = marker_factory
        self.streaming_enabled = streaming_enabled

        self._backlog: Deque[MacroCommand] = deque()
        self._tracked: Deque[int] = deque()
        self._outstanding = 0
        self._running = False
        self._after_macro: List[CommandMessage] = []

    # =========================================================================
    # State
    # =========================================================================

    @property
    def running(self) -> bool:
        return self._running

    @property
    def backlog(self) -> List[MacroCommand]:
        with self._lock:
            return list(self._backlog)

    @property
    def tracked(self) -> List[int]:
        """Sizes of uploaded chunks not yet acknowledged, oldest first."""
        with self._lock:
            return list(self._tracked)

    @property
    def outstanding_markers(self) -> int:
        return self._outstanding

    @property
    def free_bytes(self) -> int:
        with self._lock:
            return self.budget - sum(self._tracked)

    @property
    def after_macro(self) -> List[CommandMessage]:
        with self._lock:
            return list(self._after_macro)

    # =========================================================================
    # Operations
    # =========================================================================

    def play(self, macro: MacroObject) -> None:
        """
        Run ``macro`` on the device.

        Raises:
            MacroTooLargeError: If a NORMAL macro exceeds one packet, or a
                streaming sub-command can never fit a chunk
        """
        if macro.mode == MacroMode.NORMAL:
            data = macro.generate_macro_data()
            if len(data) > MAX_TEMPORARY_MACRO_DATA:
                raise MacroTooLargeError(macro, MAX_TEMPORARY_MACRO_DATA)
            self._send_system(SaveTemporaryMacroCommand(MACRO_FLAG_MOTOR_CONTROL, data))
            self._send_system(RunMacroCommand(TEMPORARY_MACRO_ID))
            return

        if not self.streaming_enabled:
            logger.info("Macro streaming is disabled, ignoring streaming macro")
            return

        commands = macro.commands
        if not commands:
            logger.debug("Ignoring empty streaming macro")
            return

        marker_length = self.marker_factory().length
        for cmd in commands:
            if cmd.length + marker_length > self.max_chunk:
                raise MacroTooLargeError(cmd, self.max_chunk)

        with self._lock:
            if self._running or self._tracked:
                logger.info("Superseding running macro")
                self.abort()
            self._backlog = deque(commands)
            self._running = True
            try:
                self.fill()
            except Exception:
                self._clear()
                raise

    def fill(self) -> int:
        """
        Upload as many chunks as the free budget allows.

        Returns:
            Number of chunks uploaded
        """
        uploaded = 0
        with self._lock:
            while self._backlog:
                free = self.budget - sum(self._tracked)
                if free <= self.min_free:
                    break
                cap = min(free, self.max_chunk)

                marker = self.marker_factory()
                count = 0
                size = 0
                for item in self._backlog:
                    if size + item.length + marker.length > cap:
                        break
                    count += 1
                    size += item.length

                if not count:
                    # The next command only fits once earlier chunks are acknowledged
                    break

                chunk: List[MacroCommand] = list(islice(self._backlog, count))
                chunk.append(marker)
                size += marker.length
                data = b"".join(cmd.to_bytes() for cmd in chunk)
                if count == len(self._backlog):
                    data += bytes([MACRO_END])

                logger.debug(
                    f"Uploading macro chunk of {size} bytes "
                    f"({count} commands, {len(self._backlog) - count} left)"
                )
                # Session state only changes once the upload has been queued
                self._send_system(SaveMacroCommand(MACRO_FLAG_MOTOR_CONTROL, STREAM_MACRO_ID, data))
                for _ in range(count):
                    self._backlog.popleft()
                self._tracked.append(size)
                self._outstanding += 1
                uploaded += 1
        return uploaded

    def acknowledge(self) -> bool:
        """
        Handle a marker echo from the device.

        Returns:
            True if this acknowledgement completed the macro
        """
        with self._lock:
            if not self._running:
                return False
            self._outstanding = max(0, self._outstanding - 1)
            if self._tracked:
                self._tracked.popleft()
            self.fill()

            if self._backlog or self._outstanding != 0:
                return False

            for command in self._after_macro:
                self._send(command)
            self._after_macro.clear()
            self.reset()

        logger.info("Streaming macro finished")
        if self._on_done:
            self._on_done()
        return True

    def abort(self) -> None:
        """Abort the running macro. Unacknowledged chunks are abandoned."""
        with self._lock:
            self._send_system(AbortMacroCommand())
            self.reset()

    def send_after_macro(self, command: CommandMessage) -> None:
        """Queue ``command`` to be sent once the streaming macro finishes."""
        with self._lock:
            self._after_macro.append(command)

    def clear_after_macro(self) -> None:
        with self._lock:
            self._after_macro.clear()

    def reset(self) -> None:
        """Return to idle without sending anything to the device."""
        with self._lock:
            self._clear()

    def _clear(self) -> None:
        self._backlog.clear()
        self._tracked.clear()
        self._outstanding = 0
        self._running = False
