"""
Outgoing command path.

Producers (user calls, scheduler, macro manager) put commands on the
DispatchQueue without blocking. A single Writer thread drains it, registers
each command with the correlator and writes whole batches to the transport,
so commands hit the wire in the order they were queued.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, List, Optional
import logging
import threading
import time

from .commands import CommandMessage
from .correlation import InFlightEntry, ResponseCorrelator
from .errors import TransportError
from .tools.utilities import log_exceptions


logger = logging.getLogger(__name__)


@dataclass
class PendingSend:
    """A queued command with its serialized packet."""
    command: CommandMessage
    system: bool = False
    forced: bool = False
    packet: bytes = field(init=False)

    def __post_init__(self):
        self.packet = self.command.packet


class DispatchQueue:
    """
    FIFO of commands waiting to be written.

    Once ``stop_accepting()`` is called, ordinary puts are dropped; only
    ``force()`` still gets through (the shutdown commands). ``close()``
    rejects everything and wakes the writer.
    """

    def __init__(self):
        self._items: Deque[PendingSend] = deque()
        self._cond = threading.Condition()
        self._accepting = True
        self._closed = False

    @property
    def accepting(self) -> bool:
        return self._accepting and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, command: CommandMessage, system: bool = False) -> bool:
        """
        Queue ``command``.

        Returns:
            False if the queue no longer accepts commands (nothing queued)
        """
        with self._cond:
            if not self._accepting or self._closed:
                logger.debug(f"Dropping {command!r}, queue is not accepting")
                return False
            self._items.append(PendingSend(command, system))
            self._cond.notify()
            return True

    def force(self, command: CommandMessage) -> bool:
        """Queue a system command even after stop_accepting()."""
        with self._cond:
            if self._closed:
                logger.debug(f"Dropping forced {command!r}, queue is closed")
                return False
            self._items.append(PendingSend(command, system=True, forced=True))
            self._cond.notify()
            return True

    def stop_accepting(self) -> None:
        with self._cond:
            self._accepting = False

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._accepting = False
            self._items.clear()
            self._cond.notify_all()

    def take_batch(self, max_bytes: int, timeout: Optional[float] = None) -> List[PendingSend]:
        """
        Wait for the next command, then take every queued command that fits.

        The first command is always taken, even if it alone exceeds
        ``max_bytes``. Further commands are added while the running total
        stays within ``max_bytes``.

        Args:
            max_bytes: Byte guard for the whole batch
            timeout: Longest wait for the first command, None waits forever

        Returns:
            Commands in queue order, empty on timeout or when closed
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._items and not self._closed:
                if deadline is None:
                    self._cond.wait()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return []
                    self._cond.wait(remaining)
            if self._closed or not self._items:
                return []

            first = self._items.popleft()
            batch = [first]
            total = len(first.packet)
            while self._items and total + len(self._items[0].packet) <= max_bytes:
                item = self._items.popleft()
                batch.append(item)
                total += len(item.packet)
            return batch

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)


class Writer:
    """
    Writer thread.

    Args:
        transport: Open transport
        queue: Queue to drain
        correlator: Every written command is registered here before the write
        max_write_size: Byte guard for one batched write
        on_failure: Called once when a write fails while running
        poll_interval: How often the thread rechecks its running flag
    """

    def __init__(
        self,
        transport,
        queue: DispatchQueue,
        correlator: ResponseCorrelator,
        max_write_size: int = 256,
        on_failure: Optional[Callable[[], None]] = None,
        poll_interval: float = 0.1
    ):
        self.transport = transport
        self.queue = queue
        self.correlator = correlator
        self.max_write_size = max_write_size
        self.on_failure = on_failure
        self.poll_interval = poll_interval

        self._thread: Optional[threading.Thread] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._run, name="spherolink-writer", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 1.0) -> None:
        """Stop the thread. Safe to call from the writer thread itself."""
        self._running = False
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None

    def write_batch(self, batch: List[PendingSend]) -> None:
        """Register and write one batch in a single transport write."""
        for item in batch:
            self.correlator.register(InFlightEntry(item.command, item.system, item.forced))
        data = b"".join(item.packet for item in batch)
        logger.debug(f"Writing {len(batch)} command(s), {len(data)} bytes")
        self.transport.write(data)
        self.transport.flush()

    @log_exceptions
    def _run(self) -> None:
        try:
            while self._running:
                batch = self.queue.take_batch(self.max_write_size, timeout=self.poll_interval)
                if not batch:
                    if self.queue.closed:
                        break
                    continue
                self.write_batch(batch)
        except (TransportError, OSError) as e:
            if self._running:
                logger.error(f"Write failed: {e}")
                self._fail()
        except Exception:
            if self._running:
                self._fail()
            raise

    def _fail(self) -> None:
        self._running = False
        if self.on_failure:
            self.on_failure()
