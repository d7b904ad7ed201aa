"""
Response correlation.

RESPONSE packets carry no reference to the command they answer; the device
answers strictly in send order. Every command is registered here at the
moment it is written, and every incoming response consumes the oldest
registration.

The rule lives behind ResponseCorrelator so a firmware that echoes sequence
numbers could be matched by id instead.
"""

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional
import logging
import threading
import time

from .commands import CommandMessage
from .errors import UnmatchedResponseError


logger = logging.getLogger(__name__)


@dataclass
class InFlightEntry:
    """
    A command that was written and awaits its response.

    Attributes:
        command: The command sent
        system: True if the driver itself issued it
        forced: True if it bypassed the closed dispatch gate (shutdown pair)
        sent_at: time.monotonic() when it was written
    """
    command: CommandMessage
    system: bool = False
    forced: bool = False
    sent_at: float = field(default_factory=time.monotonic)


class ResponseCorrelator(ABC):
    """Matches incoming responses to sent commands."""

    @abstractmethod
    def register(self, entry: InFlightEntry) -> None:
        pass

    @abstractmethod
    def match(self, header=None) -> InFlightEntry:
        """
        Return the entry the response identified by ``header`` answers.

        Raises:
            UnmatchedResponseError: If no entry is waiting
        """
        pass

    @abstractmethod
    def expire(self, now: Optional[float] = None) -> List[InFlightEntry]:
        """Remove and return entries older than the response timeout."""
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass


class FifoCorrelator(ResponseCorrelator):
    """
    First-in first-out correlation.

    Args:
        lock: Connection mutex shared with the macro manager
        timeout: Seconds after which an unanswered entry expires.
            None keeps entries until the connection ends.
    """

    def __init__(self, lock: Optional[threading.RLock] = None, timeout: Optional[float] = None):
        self._lock = lock or threading.RLock()
        self._timeout = timeout
        self._entries: Deque[InFlightEntry] = deque()

    @property
    def timeout(self) -> Optional[float]:
        return self._timeout

    def register(self, entry: InFlightEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def match(self, header=None) -> InFlightEntry:
        with self._lock:
            if not self._entries:
                raise UnmatchedResponseError(header)
            return self._entries.popleft()

    def expire(self, now: Optional[float] = None) -> List[InFlightEntry]:
        if self._timeout is None:
            return []
        now = time.monotonic() if now is None else now
        expired = []
        with self._lock:
            # Only the head can expire first; order is preserved
            while self._entries and now - self._entries[0].sent_at >= self._timeout:
                expired.append(self._entries.popleft())
        for entry in expired:
            logger.warning(f"No response for {entry.command!r} after {now - entry.sent_at:.2f}s")
        return expired

    def pending(self) -> List[InFlightEntry]:
        """Snapshot of waiting entries, oldest first."""
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
