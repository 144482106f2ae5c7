# src/pyairtouch5/core/session.py
import asyncio
import logging
from enum import Enum

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from .codec import (
    build_ac_control_message,
    build_zone_control_message,
    decode_frame,
    request_ac_ability,
    request_ac_error,
    request_ac_status,
    request_zone_names,
    request_zone_status,
)
from .constants import (
    CONNECT_ATTEMPTS,
    CONNECT_RETRY_WAIT,
    CONNECT_TIMEOUT,
    LIVENESS_INTERVAL,
    READ_SIZE,
    RECONNECT_DELAY,
    SILENCE_TIMEOUT,
    TCP_PORT,
    AcMode,
    AcPowerControl,
    FanSpeed,
    MessageKind,
    ZonePowerControl,
)
from .events import SessionListener
from .frame import Frame, FrameBuffer, wrap
from .models import AcControl, Change, ZoneControl

log = logging.getLogger(__name__)


class SessionState(Enum):
    """Connection states for a controller session."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_ABILITY = "awaiting_ability"
    AWAITING_ZONE_STATUS = "awaiting_zone_status"
    READY = "ready"


CONNECTED_STATES = (
    SessionState.AWAITING_ABILITY,
    SessionState.AWAITING_ZONE_STATUS,
    SessionState.READY,
)


class ControllerSession:
    """
    Owns the TCP connection to one controller.

    The receive task is the only producer of decoded records; they are
    handed to ``listener`` on that task. Sends are serialized by a single
    writer lock and are fire-and-forget: the protocol has no
    acknowledgement, the effect of a command shows up in a later status
    push.
    """

    def __init__(
        self,
        host: str,
        listener: SessionListener,
        *,
        port: int = TCP_PORT,
        liveness_interval: float = LIVENESS_INTERVAL,
        silence_timeout: float = SILENCE_TIMEOUT,
        reconnect_delay: float = RECONNECT_DELAY,
        connect_timeout: float = CONNECT_TIMEOUT,
        connect_attempts: int = CONNECT_ATTEMPTS,
        connect_retry_wait: float = CONNECT_RETRY_WAIT,
    ):
        self.host = host
        self.port = port
        self.listener = listener
        self.liveness_interval = liveness_interval
        self.silence_timeout = silence_timeout
        self.reconnect_delay = reconnect_delay
        self.connect_timeout = connect_timeout
        self.connect_attempts = connect_attempts
        self.connect_retry_wait = connect_retry_wait

        self.state = SessionState.DISCONNECTED
        self.reader: asyncio.StreamReader | None = None
        self.writer: asyncio.StreamWriter | None = None
        self._buffer = FrameBuffer()
        self._send_lock = asyncio.Lock()
        self._receive_task: asyncio.Task | None = None
        self._watchdog_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._last_activity = 0.0
        self._stopped = False
        self._units_in_error: set[int] = set()

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def is_connected(self) -> bool:
        if self.writer is None or self.state not in CONNECTED_STATES:
            return False
        return not self.writer.is_closing()

    @property
    def last_activity(self) -> float:
        return self._last_activity

    def _touch(self) -> None:
        self._last_activity = asyncio.get_running_loop().time()

    # --- Connection lifecycle ---

    async def connect(self) -> bool:
        """
        Opens the connection and starts the bootstrap exchange.

        Returns False (and schedules a reconnect) when the controller could
        not be reached within the configured attempts.
        """
        if self._stopped:
            return False
        if self.is_connected():
            return True
        self.state = SessionState.CONNECTING
        log.info(f"Connecting to {self.address}...")
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.connect_attempts),
                wait=wait_fixed(self.connect_retry_wait),
                retry=retry_if_exception_type((OSError, asyncio.TimeoutError)),
                reraise=True,
            ):
                with attempt:
                    reader, writer = await asyncio.wait_for(
                        asyncio.open_connection(self.host, self.port),
                        timeout=self.connect_timeout,
                    )
        except (OSError, asyncio.TimeoutError) as e:
            log.error(f"Failed to connect to {self.address}: {e!r}")
            self.state = SessionState.DISCONNECTED
            self._schedule_reconnect(self.reconnect_delay)
            return False

        self.reader, self.writer = reader, writer
        self._buffer.clear()
        self._units_in_error.clear()
        self.state = SessionState.AWAITING_ABILITY
        self._touch()
        log.info(f"Connected to {self.address}.")

        self._receive_task = asyncio.create_task(self._receive_loop(reader))
        if self._watchdog_task is None or self._watchdog_task.done():
            self._watchdog_task = asyncio.create_task(self._watchdog())

        await self.send(request_ac_ability())
        return True

    async def stop(self) -> None:
        self._stopped = True
        current = asyncio.current_task()
        tasks = [
            t
            for t in (self._reconnect_task, self._watchdog_task, self._receive_task)
            if t is not None and t is not current and not t.done()
        ]
        self._reconnect_task = None
        self._watchdog_task = None
        await self._close_connection()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        log.info(f"Session to {self.address} stopped.")

    async def _close_connection(self) -> None:
        task = self._receive_task
        self._receive_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

        writer = self.writer
        self.reader = None
        self.writer = None
        self.state = SessionState.DISCONNECTED
        self._buffer.clear()
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            log.debug(f"Error while closing connection to {self.address}: {e!r}")
        log.info(f"Connection to {self.address} closed.")

    async def _handle_transport_error(self, error: BaseException) -> None:
        log.error(f"Transport error on {self.address}: {error!r}")
        await self._close_connection()
        self._schedule_reconnect(self.reconnect_delay)

    def _schedule_reconnect(self, delay: float) -> None:
        if self._stopped:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            log.debug(f"Reconnect to {self.address} already pending")
            return
        log.info(f"Reconnecting to {self.address} in {delay:.0f}s")
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        if self._stopped or self.is_connected():
            return
        self.listener.reconnecting()
        await self.connect()

    # --- Liveness ---

    async def _watchdog(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self.liveness_interval)
            await self.check_liveness()

    async def check_liveness(self) -> bool:
        """Force a reconnect when nothing was received for too long."""
        if self.state not in CONNECTED_STATES:
            return False
        silence = asyncio.get_running_loop().time() - self._last_activity
        if silence <= self.silence_timeout:
            return False
        log.warning(
            f"No data from {self.address} for {silence:.0f}s, forcing reconnect"
        )
        await self._close_connection()
        self._schedule_reconnect(0)
        return True

    # --- Receiving ---

    async def _receive_loop(self, reader: asyncio.StreamReader) -> None:
        try:
            while True:
                data = await reader.read(READ_SIZE)
                if not data:
                    raise ConnectionResetError("Connection closed by controller")
                self._touch()
                if log.isEnabledFor(logging.DEBUG):
                    log.debug(f"READ {len(data)} bytes: {data.hex()}")
                for frame in self._buffer.feed(data):
                    try:
                        await self._dispatch(frame)
                    except Exception:
                        log.exception(f"Dropped frame from {self.address}, handling failed")
        except OSError as e:
            await self._handle_transport_error(e)

    async def _dispatch(self, frame: Frame) -> None:
        message = decode_frame(frame)
        if message is None:
            return

        if message.kind == MessageKind.AC_ABILITY:
            for ability in message.records:
                self.listener.add_ability(ability)
            if self.state == SessionState.AWAITING_ABILITY and message.records:
                self.state = SessionState.AWAITING_ZONE_STATUS
                await self.send(request_ac_status())
                await self.send(request_zone_status())

        elif message.kind == MessageKind.AC_STATUS:
            for status in message.records:
                self.listener.update_ac_status(status)
                await self._track_error(status.unit_number, status.has_error)

        elif message.kind == MessageKind.ZONE_STATUS:
            for status in message.records:
                self.listener.update_zone_status(status)
            if self.state == SessionState.AWAITING_ZONE_STATUS:
                self.state = SessionState.READY
                await self.send(request_zone_names())

        elif message.kind == MessageKind.ZONE_NAMES:
            for zone_name in message.records:
                self.listener.add_zone_name(zone_name)

        elif message.kind == MessageKind.AC_ERROR:
            for error in message.records:
                self.listener.record_ac_error(error)

    async def _track_error(self, unit_number: int, has_error: bool) -> None:
        if not has_error:
            self._units_in_error.discard(unit_number)
            return
        if unit_number in self._units_in_error:
            return
        self._units_in_error.add(unit_number)
        await self.request_unit_error(unit_number)

    # --- Sending ---

    async def send(self, body: bytes) -> bool:
        """
        Frames ``body`` and writes it to the controller.

        Returns False without raising when there is no connection or the
        write fails; a failed write triggers a reconnect.
        """
        failure: OSError | None = None
        async with self._send_lock:
            writer = self.writer
            if writer is None or not self.is_connected():
                log.warning(f"Not connected to {self.address}, dropping message")
                return False
            data = wrap(body)
            if log.isEnabledFor(logging.DEBUG):
                log.debug(f"WRITE {len(data)} bytes: {data.hex()}")
            try:
                writer.write(data)
                await writer.drain()
            except OSError as e:
                failure = e
        if failure is not None:
            await self._handle_transport_error(failure)
            return False
        return True

    # --- Commands ---

    async def set_unit_power(self, unit_number: int, on: bool) -> bool:
        power = AcPowerControl.ON if on else AcPowerControl.OFF
        log.info(f"Setting AC {unit_number} power {power.name}")
        control = AcControl(unit_number=unit_number, power=Change(power))
        return await self.send(build_ac_control_message(control))

    async def set_unit_target_mode(self, unit_number: int, mode: AcMode) -> bool:
        """Switches the unit on in ``mode``."""
        mode = AcMode(mode)
        log.info(f"Setting AC {unit_number} mode {mode.name}")
        control = AcControl(
            unit_number=unit_number,
            power=Change(AcPowerControl.ON),
            mode=Change(mode),
        )
        return await self.send(build_ac_control_message(control))

    async def set_unit_fan_speed(self, unit_number: int, speed: FanSpeed) -> bool:
        speed = FanSpeed(speed)
        log.info(f"Setting AC {unit_number} fan speed {speed.name}")
        control = AcControl(unit_number=unit_number, fan_speed=Change(speed))
        return await self.send(build_ac_control_message(control))

    async def set_unit_target_temperature(self, unit_number: int, celsius: float) -> bool:
        log.info(f"Setting AC {unit_number} setpoint {celsius}°C")
        control = AcControl(unit_number=unit_number, setpoint=Change(celsius))
        return await self.send(build_ac_control_message(control))

    async def set_zone_power(self, zone_number: int, on: bool) -> bool:
        power = ZonePowerControl.ON if on else ZonePowerControl.OFF
        log.info(f"Setting zone {zone_number} power {power.name}")
        control = ZoneControl(zone_number=zone_number, power=Change(power))
        return await self.send(build_zone_control_message(control))

    async def set_zone_damper_percent(self, zone_number: int, percent: int) -> bool:
        """Opens the zone damper to ``percent``, switching the zone on."""
        log.info(f"Setting zone {zone_number} damper {percent}%")
        control = ZoneControl(
            zone_number=zone_number,
            power=Change(ZonePowerControl.ON),
            damper_percent=Change(percent),
        )
        return await self.send(build_zone_control_message(control))

    async def set_zone_target_temperature(self, zone_number: int, celsius: float) -> bool:
        """Sets the zone sensor setpoint, switching the zone on."""
        log.info(f"Setting zone {zone_number} setpoint {celsius}°C")
        control = ZoneControl(
            zone_number=zone_number,
            power=Change(ZonePowerControl.ON),
            setpoint=Change(celsius),
        )
        return await self.send(build_zone_control_message(control))

    async def request_unit_error(self, unit_number: int) -> bool:
        log.debug(f"Requesting error information for AC {unit_number}")
        return await self.send(request_ac_error(unit_number))

    async def refresh(self) -> bool:
        """Asks for fresh AC and zone status."""
        sent = await self.send(request_ac_status())
        return await self.send(request_zone_status()) and sent
