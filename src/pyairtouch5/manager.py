# src/pyairtouch5/manager.py
"""
Finds controllers (static configuration or UDP discovery) and runs one
Controller per unique controller id.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import lru_cache

from .config import settings
from .core.controller import Controller
from .core.discovery import discover_controllers
from .core.events import ControllerListener
from .core.models import DiscoveredController

log = logging.getLogger(__name__)

ControllerHook = Callable[[Controller], None]
Discover = Callable[..., Awaitable[None]]


def static_controller(host: str) -> DiscoveredController:
    """Synthetic identity for a controller configured by address."""
    return DiscoveredController(
        ip=host,
        console_id=f"console-{host}",
        controller_id=f"airtouchid-{host}",
        name=f"device-{host}",
    )


class ControllerManager:
    def __init__(
        self,
        hosts: list[str] | None = None,
        *,
        discovery_port: int = 49005,
        discovery_timeout: float = 5.0,
        session_options: dict | None = None,
        discover: Discover = discover_controllers,
    ):
        self.hosts = list(hosts or [])
        self.discovery_port = discovery_port
        self.discovery_timeout = discovery_timeout
        self.session_options = session_options or {}
        self._discover = discover
        self.controllers: dict[str, Controller] = {}
        self._listeners: list[ControllerListener] = []
        self._hooks: list[ControllerHook] = []
        self._start_tasks: set[asyncio.Task] = set()

    def add_listener(self, listener: ControllerListener) -> None:
        """Receives controller_discovered plus the events of every controller."""
        self._listeners.append(listener)
        for controller in self.controllers.values():
            controller.add_listener(listener)

    def add_controller_hook(self, hook: ControllerHook) -> None:
        """Called once for every controller, including ones already known."""
        self._hooks.append(hook)
        for controller in self.controllers.values():
            hook(controller)

    def get(self, controller_id: str) -> Controller | None:
        return self.controllers.get(controller_id)

    def add_controller(self, info: DiscoveredController) -> Controller | None:
        if info.controller_id in self.controllers:
            log.debug(f"Controller {info.controller_id} already known, ignoring")
            return None
        controller = Controller(info, **self.session_options)
        self.controllers[info.controller_id] = controller
        for listener in self._listeners:
            controller.add_listener(listener)
            try:
                listener.controller_discovered(info)
            except Exception:
                log.exception(f"Listener {listener!r} failed handling controller_discovered")
        for hook in self._hooks:
            hook(controller)

        task = asyncio.create_task(controller.start())
        self._start_tasks.add(task)
        task.add_done_callback(self._start_tasks.discard)
        return controller

    async def start(self) -> None:
        if self.hosts:
            log.info(f"Using configured controllers: {', '.join(self.hosts)}")
            for host in self.hosts:
                self.add_controller(static_controller(host))
            return
        log.info("No controllers configured, discovering...")
        try:
            await self._discover(
                self.add_controller,
                port=self.discovery_port,
                timeout=self.discovery_timeout,
            )
        except OSError as e:
            log.error(f"Controller discovery failed: {e!r}")
        if not self.controllers:
            log.warning("No controllers found")

    async def stop(self) -> None:
        for task in list(self._start_tasks):
            task.cancel()
        await asyncio.gather(*self._start_tasks, return_exceptions=True)
        await asyncio.gather(
            *(c.stop() for c in self.controllers.values()), return_exceptions=True
        )


@lru_cache
def get_manager() -> ControllerManager:
    return ControllerManager(
        settings.AT5_CONTROLLERS,
        discovery_port=settings.AT5_DISCOVERY_PORT,
        discovery_timeout=settings.AT5_DISCOVERY_TIMEOUT,
        session_options=settings.session_options(),
    )
