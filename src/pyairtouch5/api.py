# src/pyairtouch5/api.py
import asyncio
import logging
from collections.abc import AsyncGenerator, Awaitable
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel

from .config import settings
from .core.controller import Controller
from .core.models import (
    TemperatureArgs,
    UnitFanArgs,
    UnitModeArgs,
    UnitPowerArgs,
    ZoneDamperArgs,
    ZonePowerArgs,
)
from .core.state import ControllerSnapshot
from .manager import ControllerManager, get_manager
from .mqtt import MqttBridge, get_mqtt_client

log = logging.getLogger(__name__)

# Global state to hold the background tasks
background_tasks = set()


class ControllerSummary(BaseModel):
    controller_id: str
    console_id: str
    name: str
    ip: str
    connection: str


class ControllerDetail(ControllerSummary):
    snapshot: ControllerSnapshot


class CommandAccepted(BaseModel):
    status: str = "sent"


def _spawn(coro: Awaitable) -> None:
    task = asyncio.ensure_future(coro)
    background_tasks.add(task)
    task.add_done_callback(background_tasks.discard)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    log.info("Starting pyairtouch5 API server...")
    manager = get_manager()
    if settings.MQTT_ENABLED:
        mqtt_client = get_mqtt_client()
        await mqtt_client.connect()
        bridge = MqttBridge(mqtt_client)
        manager.add_controller_hook(bridge.attach)
        _spawn(bridge.run())
    # Discovery takes a few seconds; serve requests meanwhile
    _spawn(manager.start())

    yield
    # Shutdown
    log.info("Shutting down pyairtouch5 API server...")

    for task in background_tasks:
        task.cancel()
    if background_tasks:
        await asyncio.gather(*background_tasks, return_exceptions=True)

    await manager.stop()
    if settings.MQTT_ENABLED:
        await get_mqtt_client().disconnect()
    log.info("Shutdown complete.")


app = FastAPI(
    title="pyairtouch5 API",
    description="An API for controlling AirTouch 5 air-conditioning controllers.",
    version="0.1.0",
    lifespan=lifespan,
)


def _summary(controller: Controller) -> dict:
    return {
        "controller_id": controller.info.controller_id,
        "console_id": controller.info.console_id,
        "name": controller.info.name,
        "ip": controller.info.ip,
        "connection": controller.session.state.value,
    }


def get_controller(
    controller_id: str, manager: ControllerManager = Depends(get_manager)
) -> Controller:
    controller = manager.get(controller_id)
    if controller is None:
        raise HTTPException(status_code=404, detail=f"Unknown controller '{controller_id}'.")
    return controller


def require_unit(controller: Controller, unit_number: int) -> None:
    if unit_number not in controller.state.units:
        raise HTTPException(status_code=404, detail=f"Unknown AC unit {unit_number}.")


def require_zone(controller: Controller, zone_number: int) -> None:
    if zone_number not in controller.state.zones:
        raise HTTPException(status_code=404, detail=f"Unknown zone {zone_number}.")


async def send_command(command: Awaitable[bool]) -> CommandAccepted:
    """Awaits a session command and maps its outcome to an HTTP response."""
    try:
        sent = await command
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    if not sent:
        raise HTTPException(
            status_code=503, detail="Controller is not connected, command dropped."
        )
    return CommandAccepted()


@app.get("/controllers", response_model=list[ControllerSummary])
async def list_controllers(manager: ControllerManager = Depends(get_manager)):
    """List the known controllers and their connection state."""
    return [_summary(c) for c in manager.controllers.values()]


@app.get("/controllers/{controller_id}", response_model=ControllerDetail)
async def get_controller_detail(controller: Controller = Depends(get_controller)):
    """Units and zones of one controller, with derived climate states."""
    return {**_summary(controller), "snapshot": controller.state.snapshot()}


@app.post("/controllers/{controller_id}/refresh", status_code=202, response_model=CommandAccepted)
async def refresh(controller: Controller = Depends(get_controller)):
    """Ask the controller for fresh AC and zone status."""
    return await send_command(controller.session.refresh())


@app.post(
    "/controllers/{controller_id}/units/{unit_number}/power",
    status_code=202,
    response_model=CommandAccepted,
)
async def set_unit_power(
    unit_number: int, args: UnitPowerArgs, controller: Controller = Depends(get_controller)
):
    require_unit(controller, unit_number)
    return await send_command(controller.session.set_unit_power(unit_number, args.on))


@app.post(
    "/controllers/{controller_id}/units/{unit_number}/mode",
    status_code=202,
    response_model=CommandAccepted,
)
async def set_unit_mode(
    unit_number: int, args: UnitModeArgs, controller: Controller = Depends(get_controller)
):
    require_unit(controller, unit_number)
    return await send_command(controller.session.set_unit_target_mode(unit_number, args.mode))


@app.post(
    "/controllers/{controller_id}/units/{unit_number}/fan",
    status_code=202,
    response_model=CommandAccepted,
)
async def set_unit_fan(
    unit_number: int, args: UnitFanArgs, controller: Controller = Depends(get_controller)
):
    require_unit(controller, unit_number)
    return await send_command(controller.session.set_unit_fan_speed(unit_number, args.speed))


@app.post(
    "/controllers/{controller_id}/units/{unit_number}/temperature",
    status_code=202,
    response_model=CommandAccepted,
)
async def set_unit_temperature(
    unit_number: int, args: TemperatureArgs, controller: Controller = Depends(get_controller)
):
    require_unit(controller, unit_number)
    return await send_command(
        controller.session.set_unit_target_temperature(unit_number, args.celsius)
    )


@app.post(
    "/controllers/{controller_id}/zones/{zone_number}/power",
    status_code=202,
    response_model=CommandAccepted,
)
async def set_zone_power(
    zone_number: int, args: ZonePowerArgs, controller: Controller = Depends(get_controller)
):
    require_zone(controller, zone_number)
    return await send_command(controller.session.set_zone_power(zone_number, args.on))


@app.post(
    "/controllers/{controller_id}/zones/{zone_number}/damper",
    status_code=202,
    response_model=CommandAccepted,
)
async def set_zone_damper(
    zone_number: int, args: ZoneDamperArgs, controller: Controller = Depends(get_controller)
):
    require_zone(controller, zone_number)
    return await send_command(
        controller.session.set_zone_damper_percent(zone_number, args.percent)
    )


@app.post(
    "/controllers/{controller_id}/zones/{zone_number}/temperature",
    status_code=202,
    response_model=CommandAccepted,
)
async def set_zone_temperature(
    zone_number: int, args: TemperatureArgs, controller: Controller = Depends(get_controller)
):
    require_zone(controller, zone_number)
    return await send_command(controller.set_zone_target_temperature(zone_number, args.celsius))
