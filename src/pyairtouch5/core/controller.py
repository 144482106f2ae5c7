# src/pyairtouch5/core/controller.py
import asyncio
import logging

from .events import ControllerListener
from .models import DiscoveredController
from .session import ControllerSession
from .state import ControllerState

log = logging.getLogger(__name__)


class _ReadyWatcher(ControllerListener):
    def __init__(self) -> None:
        self.ready = asyncio.Event()

    def zone_name_updated(self, zone_number: int, name: str) -> None:
        self.ready.set()


class Controller:
    """One controller: its session feeding its own state aggregator."""

    def __init__(
        self,
        info: DiscoveredController,
        session: ControllerSession | None = None,
        state: ControllerState | None = None,
        **session_options,
    ):
        self.info = info
        self.state = state or ControllerState()
        self.session = session or ControllerSession(info.ip, self.state, **session_options)
        self._ready = _ReadyWatcher()
        self.state.add_listener(self._ready)

    @property
    def id(self) -> str:
        return self.info.controller_id

    def add_listener(self, listener: ControllerListener) -> None:
        self.state.add_listener(listener)

    async def start(self) -> bool:
        log.info(f"Starting controller {self.id} ({self.info.name}) at {self.info.ip}")
        return await self.session.connect()

    async def stop(self) -> None:
        await self.session.stop()

    async def set_zone_target_temperature(self, zone_number: int, celsius: float) -> bool:
        """
        Sets the setpoint a zone reports.

        A zone without its own sensor reports the owning AC's setpoint, so the
        AC setpoint is changed instead.
        """
        zone = self.state.zones.get(zone_number)
        if zone is not None and zone.status is not None and not zone.status.has_sensor:
            log.info(f"Zone {zone_number} has no sensor, setting AC {zone.unit_number} instead")
            return await self.session.set_unit_target_temperature(zone.unit_number, celsius)
        return await self.session.set_zone_target_temperature(zone_number, celsius)

    async def wait_ready(self, timeout: float | None = None) -> bool:
        """Waits until zone names have arrived, i.e. the bootstrap finished."""
        try:
            await asyncio.wait_for(self._ready.ready.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True
