"""
Sphero Robot Driver
===================

Connection lifecycle and public API of one Sphero robot.

Threads per connection:
    reader     - StreamFramer, decodes packets and calls back into Robot
    writer     - Writer, drains the DispatchQueue onto the transport
    scheduler  - Scheduler, fires delayed and periodic commands

Example:
    >>> from spherolink import Robot
    >>>
    >>> # Using context manager (recommended)
    >>> with Robot('00:06:66:4A:12:34') as robot:
    ...     robot.set_rgb_led_color(0, 0, 255)
    ...     robot.roll(90, 0.4)
    ...     time.sleep(2)
    ...     robot.stop_motors()
    >>>
    >>> # Manual connection
    >>> robot = Robot('00:06:66:4A:12:34')
    >>> if robot.connect():
    ...     robot.calibrate(0)
    ...     robot.disconnect()

Commands issued while the robot is not connected are dropped. Responses to
commands the driver issues itself (reset sequence, keep-alive, macro
uploads) are consumed internally; all other responses go to listeners.
"""

from enum import Enum
from typing import List, Optional, Sequence
import logging
import re
import threading
import time

from .commands import (
    AbortMacroCommand,
    CalibrateCommand,
    CommandMessage,
    CommandType,
    FrontLEDCommand,
    GetBluetoothInfoCommand,
    JumpToBootloaderCommand,
    PingCommand,
    RGBLEDCommand,
    RollCommand,
    RotationRateCommand,
    SetRobotNameCommand,
    SleepCommand,
    StabilizationCommand,
)
from .config import RobotConfig
from .correlation import FifoCorrelator, InFlightEntry
from .errors import (
    InvalidRobotAddressError,
    ProtocolError,
    ResponseTimeoutError,
    RobotInitializeConnectionFailed,
    TransportError,
    UnmatchedResponseError,
)
from .framer import StreamFramer
from .listener import EventCode, RobotListener
from .macro import Delay, MacroMode, MacroObject, MacroRGB
from .macro_manager import MacroMemoryManager
from .responses import (
    EmitResponse,
    GetBluetoothInfoResponse,
    InformationResponse,
    ResponseMessage,
)
from .scheduler import ScheduledTask, Scheduler
from .shadow import DeviceShadow, RobotLED, RobotMovement, RobotRawMovement
from .tools.mathtools import hsv_transition
from .tools.utilities import notify_safely
from .transport import RfcommTransport, SerialTransport, Transport
from .writer import DispatchQueue, Writer


logger = logging.getLogger(__name__)


ROBOT_ADDRESS_PREFIX = "00066"

# Commands whose echo is counted while shutting down
SHUTDOWN_KINDS = (CommandType.ROLL, CommandType.FRONT_LED_OUTPUT)


class RobotState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


def normalize_address(address: str) -> str:
    """'00:06:66:4a:12:34' -> '0006664A1234'"""
    return re.sub(r'[:\-]', '', address).upper()


class Robot:
    """
    Sphero robot controller.

    Args:
        address: Bluetooth address, with or without ':'/'-' separators
        transport: Byte channel to use. Built from ``config`` when omitted.
        config: Driver configuration

    Raises:
        InvalidRobotAddressError: If the address is not a Sphero address
    """

    def __init__(
        self,
        address: str,
        transport: Optional[Transport] = None,
        config: Optional[RobotConfig] = None
    ):
        if not self.is_valid_address(address):
            logger.error(f"Invalid robot address {address!r}")
            raise InvalidRobotAddressError(address, ROBOT_ADDRESS_PREFIX)

        self.config = config or RobotConfig()
        self._address = normalize_address(address)
        self._transport = transport or self._default_transport()
        self.name: Optional[str] = None

        self._lock = threading.RLock()
        self._listeners: List[RobotListener] = []
        self._shadow = DeviceShadow()
        self._state = RobotState.DISCONNECTED

        # Per connection
        self._generation = 0
        self._active = False
        self._disconnecting = False
        self._shutdown_echoes = 0
        self._disconnect_timer: Optional[threading.Timer] = None
        self._disconnected = threading.Event()
        self._disconnected.set()
        self._correlator: Optional[FifoCorrelator] = None
        self._queue: Optional[DispatchQueue] = None
        self._writer: Optional[Writer] = None
        self._framer: Optional[StreamFramer] = None
        self._scheduler: Optional[Scheduler] = None
        self._ping_task: Optional[ScheduledTask] = None

        self._macros = MacroMemoryManager(
            send=lambda cmd: self._put(cmd, False),
            send_system=lambda cmd: self._put(cmd, True),
            on_done=lambda: self._notify_event(EventCode.MACRO_DONE),
            lock=self._lock,
            budget=self.config.macro_budget,
            max_chunk=self.config.macro_max_chunk,
            min_free=self.config.macro_min_free,
            streaming_enabled=self.config.macro_streaming_enabled,
        )

        logger.debug(f"Robot {self._address} created")

    def _default_transport(self) -> Transport:
        if self.config.transport == "serial":
            return SerialTransport(self.config.port, self.config.baudrate, self.config.read_timeout)
        colon_address = ':'.join(self._address[i:i + 2] for i in range(0, 12, 2))
        return RfcommTransport(colon_address, self.config.rfcomm_channel, self.config.read_timeout)

    @staticmethod
    def is_valid_address(address: str) -> bool:
        """True if ``address`` belongs to a Sphero device."""
        return isinstance(address, str) and normalize_address(address).startswith(ROBOT_ADDRESS_PREFIX)

    def __enter__(self) -> 'Robot':
        """Context manager entry."""
        self.connect(raise_on_failure=True)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.disconnect()
        self.wait_disconnected(self.config.disconnect_timeout)

    def __repr__(self) -> str:
        return f"Robot({self._address}, {self._state.value})"

    # =========================================================================
    # Listeners
    # =========================================================================

    def add_listener(self, listener: RobotListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: RobotListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _snapshot_listeners(self) -> List[RobotListener]:
        with self._lock:
            return list(self._listeners)

    def _notify_event(self, code: EventCode) -> None:
        logger.debug(f"Event {code.name}")
        for listener in self._snapshot_listeners():
            notify_safely(logger, listener.event, self, code)

    def _notify_response(self, response: ResponseMessage, command: CommandMessage) -> None:
        for listener in self._snapshot_listeners():
            notify_safely(logger, listener.response_received, self, response, command)

    def _notify_information(self, information: InformationResponse) -> None:
        for listener in self._snapshot_listeners():
            notify_safely(logger, listener.information_received, self, information)

    # =========================================================================
    # Connection Management
    # =========================================================================

    def connect(self, raise_on_failure: Optional[bool] = None) -> bool:
        """
        Open the transport, start the driver threads and reset the robot.

        Args:
            raise_on_failure: Raise instead of returning False. Defaults to
                config.raise_on_connect_failure.

        Returns:
            True if connected

        Raises:
            RobotInitializeConnectionFailed: If the connection failed and
                raising was requested
        """
        if raise_on_failure is None:
            raise_on_failure = self.config.raise_on_connect_failure

        with self._lock:
            if self._state == RobotState.CONNECTED:
                return True
            pending_teardown = self._disconnecting

        if pending_teardown:
            logger.warning("Previous disconnect still pending, completing it now")
            self._finish_disconnect(self._generation)

        logger.info(f"Connecting to {self._address}")
        try:
            self._transport.open()
        except (TransportError, OSError) as e:
            logger.error(f"Failed to connect to {self._address}: {e}")
            self._notify_event(EventCode.CONNECT_FAILED)
            if raise_on_failure:
                raise RobotInitializeConnectionFailed(
                    f"Failed to connect to {self._address}",
                    details={'error': str(e)},
                ) from e
            return False

        with self._lock:
            self._generation += 1
            generation = self._generation
            self._correlator = FifoCorrelator(self._lock, self.config.response_timeout)
            self._queue = DispatchQueue()
            self._writer = Writer(
                self._transport,
                self._queue,
                self._correlator,
                max_write_size=self.config.max_write_size,
                on_failure=lambda: self._connection_lost(generation),
            )
            self._framer = StreamFramer(
                self._transport,
                self._correlator,
                on_response=self._on_response,
                on_information=self._on_information,
                on_protocol_error=self._on_protocol_error,
                on_closed=lambda: self._connection_lost(generation),
                buffer_size=self.config.read_buffer_size,
            )
            self._scheduler = Scheduler(self._put)
            self._macros.reset()
            self._shadow.reset()
            self._disconnecting = False
            self._shutdown_echoes = 0
            self._active = True
            self._disconnected.clear()

            self._framer.start()
            self._writer.start()
            self._scheduler.start()

            self._send_reset_sequence()
            self._ping_task = self._scheduler.schedule_periodic(
                PingCommand(), True, self.config.ping_interval, self.config.ping_interval
            )
            if self.config.response_timeout is not None:
                interval = self.config.response_sweep_interval
                self._scheduler.schedule_call(self._sweep_expired, interval, period=interval)

            self._state = RobotState.CONNECTED

        logger.info(f"Connected to {self._address}")
        self._notify_event(EventCode.CONNECTED)
        return True

    def _send_reset_sequence(self) -> None:
        movement = self._shadow.movement
        led = self._shadow.led
        self._put(AbortMacroCommand(), True)
        self._put(RGBLEDCommand(*led.rgb), True)
        self._put(RollCommand(movement.heading, movement.velocity, movement.stopped), True)
        self._put(CalibrateCommand(movement.heading), True)
        self._put(FrontLEDCommand(led.front_brightness), True)

    def disconnect(self) -> None:
        """
        Stop the robot and close the connection.

        The motors and front LED are switched off first. The connection is
        torn down once the robot has echoed the shutdown commands, or after
        config.disconnect_timeout. DISCONNECTED is emitted at that point.
        """
        with self._lock:
            if self._state != RobotState.CONNECTED:
                no_connection = True
            else:
                no_connection = False
                self._state = RobotState.DISCONNECTED
                self._disconnecting = True
                self._shutdown_echoes = 0
                generation = self._generation
                scheduler, queue = self._scheduler, self._queue
                heading = self._shadow.movement.heading

        if no_connection:
            logger.info("Disconnect requested without an active connection")
            self._notify_event(EventCode.NO_CONNECTION)
            return

        logger.info(f"Disconnecting from {self._address}")
        scheduler.cancel()
        queue.stop_accepting()
        queue.force(RollCommand(heading, 0.0, stopped=True))
        queue.force(FrontLEDCommand(0.0))

        timeout = self.config.disconnect_timeout
        if timeout is not None:
            timer = threading.Timer(timeout, self._disconnect_timed_out, args=(generation,))
            timer.daemon = True
            with self._lock:
                if self._disconnecting and self._generation == generation:
                    self._disconnect_timer = timer
                    timer.start()

    def wait_disconnected(self, timeout: Optional[float] = None) -> bool:
        """Block until the connection is fully torn down."""
        return self._disconnected.wait(timeout)

    def _disconnect_timed_out(self, generation: int) -> None:
        logger.warning("Shutdown commands were not echoed in time, closing connection")
        self._finish_disconnect(generation)

    def _finish_disconnect(self, generation: int) -> None:
        """Tear down a graceful disconnect. Emits DISCONNECTED at most once."""
        with self._lock:
            if generation != self._generation or not self._disconnecting or not self._active:
                return
            self._disconnecting = False
        self._teardown()
        logger.info(f"Disconnected from {self._address}")
        self._notify_event(EventCode.DISCONNECTED)

    def _connection_lost(self, generation: int) -> None:
        """Reader or writer failure. Safe to call from both threads."""
        with self._lock:
            if generation != self._generation or not self._active:
                return
            was_connected = self._state == RobotState.CONNECTED
            was_disconnecting = self._disconnecting
            self._state = RobotState.DISCONNECTED
            self._disconnecting = False
        self._teardown()

        if was_connected:
            logger.error(
                "Connection closed unexpectedly, all threads have been "
                f"closed down for robot {self._address}"
            )
            self._notify_event(EventCode.UNEXPECTED_DISCONNECT)
        elif was_disconnecting:
            logger.info(f"Connection to {self._address} closed during disconnect")
            self._notify_event(EventCode.DISCONNECTED)

    def _teardown(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
            timer, self._disconnect_timer = self._disconnect_timer, None
            scheduler, queue = self._scheduler, self._queue
            framer, writer = self._framer, self._writer
            correlator = self._correlator
            self._macros.reset()

        if timer is not None:
            timer.cancel()
        scheduler.cancel()
        queue.close()
        framer.stop()
        writer.stop()
        self._transport.close()
        correlator.clear()
        self._disconnected.set()

    # =========================================================================
    # Incoming packets (reader thread)
    # =========================================================================

    def _on_response(self, response: ResponseMessage, entry: InFlightEntry) -> None:
        command = entry.command

        if response.ok:
            self._update_internal_values(command, entry.forced)
        else:
            logger.error(f"Robot answered {command!r} with {response.code.name}")

        if isinstance(response, GetBluetoothInfoResponse) and not response.corrupt:
            self.name = response.name

        if not entry.system:
            self._notify_response(response, command)

    def _update_internal_values(self, command: CommandMessage, forced: bool = False) -> None:
        kind = command.kind
        finish_generation = None

        with self._lock:
            if self._disconnecting and forced and kind in SHUTDOWN_KINDS:
                self._shutdown_echoes += 1
                if self._shutdown_echoes >= self.config.shutdown_echo_count:
                    finish_generation = self._generation
            self._shadow.apply(command)

        if finish_generation is not None:
            self._finish_disconnect(finish_generation)
            return

        if kind in (CommandType.GO_TO_SLEEP, CommandType.JUMP_TO_BOOTLOADER):
            # The robot drops the link, leave gracefully
            self.disconnect()
        elif kind == CommandType.SET_ROBOT_NAME:
            self._put(GetBluetoothInfoCommand(), True)

    def _on_information(self, information: InformationResponse) -> None:
        if isinstance(information, EmitResponse) and not information.corrupt and self._macros.running:
            self._macros.acknowledge()
            return
        self._notify_information(information)

    def _on_protocol_error(self, error: ProtocolError) -> None:
        for listener in self._snapshot_listeners():
            notify_safely(logger, listener.protocol_error, self, error)

        if isinstance(error, UnmatchedResponseError):
            self._notify_event(EventCode.UNMATCHED_RESPONSE)
        elif isinstance(error, ResponseTimeoutError):
            self._notify_event(EventCode.RESPONSE_TIMEOUT)

    def _sweep_expired(self) -> None:
        correlator = self._correlator
        if correlator is None:
            return
        now = time.monotonic()
        for entry in correlator.expire(now):
            self._on_protocol_error(ResponseTimeoutError(entry.command, now - entry.sent_at))

    # =========================================================================
    # Sending
    # =========================================================================

    def _put(self, command: CommandMessage, system: bool = False) -> bool:
        queue = self._queue
        if queue is None:
            logger.debug(f"No connection, dropping {command!r}")
            return False
        return queue.put(command, system)

    def _schedule(self, command: CommandMessage, system: bool, delay: float) -> bool:
        scheduler = self._scheduler
        if scheduler is None:
            return False
        return not scheduler.schedule(command, system, delay).cancelled

    def send_command(self, command: CommandMessage, delay: Optional[float] = None) -> bool:
        """
        Send a command to the robot.

        Args:
            command: The command to send
            delay: Seconds to wait before sending

        Returns:
            False if the command was dropped (not connected)
        """
        if self._state != RobotState.CONNECTED:
            logger.debug(f"Not connected, dropping {command!r}")
            return False
        if delay:
            return self._schedule(command, False, delay)
        return self._put(command, False)

    def send_periodic_command(
        self,
        command: CommandMessage,
        initial_delay: float,
        period: float,
        repeat: Optional[int] = None
    ) -> Optional[ScheduledTask]:
        """
        Send a command repeatedly.

        Args:
            command: The command to send
            initial_delay: Seconds before the first send
            period: Seconds between sends
            repeat: Number of sends, None sends until cancelled or disconnected

        Returns:
            Task handle, None if not connected
        """
        if self._state != RobotState.CONNECTED or self._scheduler is None:
            logger.debug(f"Not connected, dropping periodic {command!r}")
            return None
        return self._scheduler.schedule_periodic(command, False, initial_delay, period, repeat)

    def send_macro(self, macro: MacroObject) -> bool:
        """
        Send a macro to the robot.

        NORMAL macros are stored and run at once. CACHED_STREAMING macros are
        uploaded in chunks as the robot works through them.

        Raises:
            MacroTooLargeError: If a streaming macro holds a command that can
                never fit a chunk
        """
        if self._state != RobotState.CONNECTED:
            logger.debug("Not connected, dropping macro")
            return False
        self._macros.play(macro)
        return True

    def stop_macro(self) -> None:
        """Abort the running macro."""
        if self._state != RobotState.CONNECTED:
            return
        self._macros.abort()

    def send_command_after_macro(self, command: CommandMessage) -> None:
        """Send ``command`` once the running streaming macro has finished."""
        self._macros.send_after_macro(command)

    def cancel_send_command_after_macro(self) -> None:
        self._macros.clear_after_macro()

    # =========================================================================
    # Movement
    # =========================================================================

    def roll(self, heading: float, velocity: float) -> bool:
        """
        Roll in a direction.

        Args:
            heading: Heading in degrees (0-359)
            velocity: Speed (0-1)
        """
        return self.send_command(RollCommand(heading, velocity))

    def rotate(self, heading: float) -> bool:
        """Turn to ``heading`` without moving."""
        return self.roll(heading, 0.0)

    def stop_motors(self) -> bool:
        return self.send_command(RollCommand(self._shadow.movement.heading, 0.0, stopped=True))

    def boost(self, duration: float) -> bool:
        """
        Full speed in the current heading for ``duration`` seconds, then
        back to the previous velocity.
        """
        if self._state != RobotState.CONNECTED:
            return False
        movement = self._shadow.movement
        self._put(RollCommand(movement.heading, 1.0), True)
        return self._schedule(
            RollCommand(movement.heading, movement.velocity, movement.stopped), True, duration
        )

    def calibrate(self, heading: float, blinks: int = 5, blink_period: float = 0.2) -> bool:
        """
        Turn to ``heading`` and make it the new zero heading.

        The front LED blinks ``blinks`` times to show the calibration, then
        returns to its previous brightness.
        """
        if not self.send_command(RollCommand(heading, 0.0)):
            return False
        self.send_command(CalibrateCommand(heading))

        scheduler = self._scheduler
        brightness = self._shadow.led.front_brightness
        half = blink_period / 2
        self._put(FrontLEDCommand(0.0), True)
        scheduler.schedule_periodic(FrontLEDCommand(1.0), True, half, blink_period, repeat=blinks)
        scheduler.schedule_periodic(FrontLEDCommand(0.0), True, blink_period, blink_period, repeat=blinks)
        scheduler.schedule(FrontLEDCommand(brightness), True, blink_period * (blinks + 1))
        return True

    def reset_heading(self) -> bool:
        """Make the current orientation heading 0."""
        movement = self._shadow.movement
        if not self.send_command(RollCommand(0.0, movement.velocity, movement.stopped)):
            return False
        return self.send_command(CalibrateCommand(0.0))

    def set_rotation_rate(self, rate: float) -> bool:
        return self.send_command(RotationRateCommand(rate))

    def stabilization(self, on: bool) -> bool:
        return self.send_command(StabilizationCommand(on))

    # =========================================================================
    # LEDs
    # =========================================================================

    def set_rgb_led_color(self, red: int, green: int, blue: int) -> bool:
        return self.send_command(RGBLEDCommand(red, green, blue))

    def set_front_led_brightness(self, brightness: float) -> bool:
        """Front LED brightness, 0-1."""
        return self.send_command(FrontLEDCommand(brightness))

    def rgb_transition(
        self,
        from_rgb: Sequence[int],
        to_rgb: Sequence[int],
        steps: int,
        step_delay_ms: int = 25
    ) -> bool:
        """
        Fade the RGB LED from one color to another.

        The fade runs on the robot as a streaming macro, ``steps`` colors
        ``step_delay_ms`` apart.
        """
        macro = MacroObject(mode=MacroMode.CACHED_STREAMING)
        for red, green, blue in hsv_transition(tuple(from_rgb), tuple(to_rgb), steps):
            macro.add_command(MacroRGB(red, green, blue, 0))
            macro.add_command(Delay(step_delay_ms))
        if not len(macro):
            return False
        return self.send_macro(macro)

    # =========================================================================
    # Device
    # =========================================================================

    def set_robot_name(self, name: str) -> bool:
        return self.send_command(SetRobotNameCommand(name))

    def request_bluetooth_info(self) -> bool:
        """Ask for name and address; the response updates ``name``."""
        return self.send_command(GetBluetoothInfoCommand())

    def sleep(self, seconds: int = 0) -> bool:
        """
        Put the robot to sleep. The connection is lost and closed.

        Args:
            seconds: Seconds until the robot wakes up (0 = stay asleep)
        """
        return self.send_command(SleepCommand(seconds))

    def jump_to_bootloader(self) -> bool:
        """Jump to the bootloader. The connection is lost and closed."""
        return self.send_command(JumpToBootloaderCommand())

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def address(self) -> str:
        return self._address

    @property
    def id(self) -> str:
        """Unique robot id, identical to the Bluetooth address."""
        return self._address

    @property
    def state(self) -> RobotState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == RobotState.CONNECTED

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def shadow(self) -> DeviceShadow:
        return self._shadow

    @property
    def movement(self) -> RobotMovement:
        return self._shadow.movement

    @property
    def raw_movement(self) -> RobotRawMovement:
        return self._shadow.raw_movement

    @property
    def led(self) -> RobotLED:
        return self._shadow.led

    @property
    def is_stopped(self) -> bool:
        return self._shadow.movement.stopped

    @property
    def macro_running(self) -> bool:
        return self._macros.running

    @property
    def macro_manager(self) -> MacroMemoryManager:
        return self._macros

    @property
    def pending_responses(self) -> int:
        """Commands written and still awaiting a response."""
        correlator = self._correlator
        return len(correlator) if correlator is not None else 0
