"""
Delayed and periodic commands.

One timer thread per connection. Firing a task only hands the command to
the dispatch queue; nothing is written from the timer thread.

Example:
    >>> scheduler = Scheduler(queue.put)
    >>> scheduler.start()
    >>> task = scheduler.schedule_periodic(PingCommand(), True, 60.0, 60.0)
    >>> task.cancel()
"""

from typing import Callable, List, Optional, Tuple
import heapq
import itertools
import logging
import threading
import time

from .commands import CommandMessage
from .tools.utilities import log_exceptions


logger = logging.getLogger(__name__)


class ScheduledTask:
    """
    Handle to a scheduled command or call.

    Attributes:
        command: Command to enqueue (None for internal calls)
        system: Enqueue as a system command
        period: Seconds between firings, None for one-shot tasks
        repeat: Total number of firings, None repeats until cancelled
        fire_count: Times the task has fired so far
    """

    def __init__(
        self,
        command: Optional[CommandMessage] = None,
        system: bool = False,
        period: Optional[float] = None,
        repeat: Optional[int] = None,
        func: Optional[Callable[[], None]] = None
    ):
        self.command = command
        self.system = system
        self.period = period
        self.repeat = repeat
        self.func = func
        self.fire_count = 0
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def periodic(self) -> bool:
        return self.period is not None

    @property
    def done(self) -> bool:
        if self._cancelled:
            return True
        if not self.periodic:
            return self.fire_count >= 1
        return self.repeat is not None and self.fire_count >= self.repeat

    def cancel(self) -> None:
        self._cancelled = True

    def __repr__(self) -> str:
        target = self.command if self.command is not None else self.func
        return f"ScheduledTask({target!r}, period={self.period}, fired={self.fire_count})"


class Scheduler:
    """
    Timer thread over a heap of tasks.

    Args:
        enqueue: Called as ``enqueue(command, system)`` when a command fires
    """

    def __init__(self, enqueue: Callable[[CommandMessage, bool], object]):
        self._enqueue = enqueue
        self._heap: List[Tuple[float, int, ScheduledTask]] = []
        self._counter = itertools.count()
        self._cond = threading.Condition()
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        with self._cond:
            if self._running or self._closed:
                return
            self._running = True
        self._thread = threading.Thread(target=self._run, name="spherolink-scheduler", daemon=True)
        self._thread.start()

    def schedule(self, command: CommandMessage, system: bool, delay: float) -> ScheduledTask:
        """Enqueue ``command`` once after ``delay`` seconds."""
        return self._add(ScheduledTask(command, system), delay)

    def schedule_periodic(
        self,
        command: CommandMessage,
        system: bool,
        initial_delay: float,
        period: float,
        repeat: Optional[int] = None
    ) -> ScheduledTask:
        """
        Enqueue ``command`` every ``period`` seconds.

        Args:
            command: Command to send
            system: Send as a system command (response consumed internally)
            initial_delay: Seconds until the first firing
            period: Seconds between firings
            repeat: Number of firings, None repeats until cancelled
        """
        if period <= 0:
            raise ValueError("period must be positive")
        return self._add(ScheduledTask(command, system, period, repeat), initial_delay)

    def schedule_call(
        self,
        func: Callable[[], None],
        delay: float,
        period: Optional[float] = None
    ) -> ScheduledTask:
        """Run an internal callable on the timer thread."""
        return self._add(ScheduledTask(period=period, func=func), delay)

    def _add(self, task: ScheduledTask, delay: float) -> ScheduledTask:
        with self._cond:
            if self._closed:
                logger.debug(f"Scheduler closed, not scheduling {task!r}")
                task.cancel()
                return task
            due = time.monotonic() + max(0.0, delay)
            heapq.heappush(self._heap, (due, next(self._counter), task))
            self._cond.notify()
        return task

    def cancel(self) -> None:
        """Cancel every task, stop the thread and refuse further scheduling."""
        with self._cond:
            self._closed = True
            self._running = False
            for _, _, task in self._heap:
                task.cancel()
            self._heap.clear()
            self._cond.notify_all()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        self._thread = None

    def __len__(self) -> int:
        with self._cond:
            return sum(1 for _, _, task in self._heap if not task.cancelled)

    def _next_due(self) -> List[ScheduledTask]:
        """Block until at least one task is due, return every due task."""
        with self._cond:
            while self._running:
                while self._heap and self._heap[0][2].cancelled:
                    heapq.heappop(self._heap)
                if not self._heap:
                    self._cond.wait()
                    continue
                due = self._heap[0][0]
                now = time.monotonic()
                if due > now:
                    self._cond.wait(due - now)
                    continue

                ready = []
                while self._heap and self._heap[0][0] <= now:
                    when, _, task = heapq.heappop(self._heap)
                    if task.cancelled:
                        continue
                    task.fire_count += 1
                    ready.append(task)
                    if task.periodic and not task.done:
                        heapq.heappush(self._heap, (when + task.period, next(self._counter), task))
                return ready
            return []

    def _fire(self, task: ScheduledTask) -> None:
        if task.func is not None:
            task.func()
        else:
            self._enqueue(task.command, task.system)

    @log_exceptions
    def _run(self) -> None:
        while self._running:
            for task in self._next_due():
                if not task.cancelled:
                    self._fire(task)
