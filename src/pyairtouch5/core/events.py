# src/pyairtouch5/core/events.py
from typing import Protocol

from .models import (
    AcAbility,
    AcErrorInfo,
    AcStatus,
    DiscoveredController,
    ZoneName,
    ZoneStatus,
)


class SessionListener(Protocol):
    """Consumer of the records decoded by a single controller session."""

    def add_ability(self, ability: AcAbility) -> None: ...

    def update_ac_status(self, status: AcStatus) -> None: ...

    def update_zone_status(self, status: ZoneStatus) -> None: ...

    def add_zone_name(self, zone_name: ZoneName) -> None: ...

    def record_ac_error(self, error: AcErrorInfo) -> None: ...

    def reconnecting(self) -> None: ...


class ControllerListener:
    """
    Callbacks for collaborators of one controller.

    Subclass and override what you need. Notifications may repeat (e.g.
    after a reconnect) so handlers must be idempotent.
    """

    def controller_discovered(self, controller: DiscoveredController) -> None:
        pass

    def unit_ability_discovered(self, ability: AcAbility) -> None:
        pass

    def unit_status_updated(self, status: AcStatus) -> None:
        pass

    def unit_error_reported(self, error: AcErrorInfo) -> None:
        pass

    def zone_status_updated(self, status: ZoneStatus) -> None:
        pass

    def zone_name_updated(self, zone_number: int, name: str) -> None:
        pass

    def zone_ready_for_registration(self, zone_number: int, name: str) -> None:
        pass

    def reconnecting(self) -> None:
        pass
