# src/pyairtouch5/mqtt.py
import asyncio
import logging
from functools import lru_cache

import aiomqtt as mqtt

from .config import settings
from .core.controller import Controller
from .core.events import ControllerListener
from .core.models import AcAbility, AcErrorInfo, AcStatus, ZoneStatus

log = logging.getLogger(__name__)


class MqttClient:
    def __init__(self) -> None:
        self._client: mqtt.Client | None = None
        self._hostname = settings.MQTT_HOST
        self._port = settings.MQTT_PORT
        self._username = settings.MQTT_USER
        self._password = settings.MQTT_PASSWORD
        self._connected = False

    async def connect(self) -> None:
        """Connect to MQTT broker."""
        try:
            self._client = mqtt.Client(
                hostname=self._hostname,
                port=self._port,
                username=self._username,
                password=self._password,
            )
            await self._client.__aenter__()
            self._connected = True
            log.info(f"Connected to MQTT broker at {self._hostname}:{self._port}")
        except mqtt.MqttError as e:
            self._connected = False
            log.error(f"Failed to connect to MQTT broker: {e}")
            raise

    async def disconnect(self) -> None:
        """Disconnect from MQTT broker."""
        if self._client:
            try:
                await self._client.__aexit__(None, None, None)
            except mqtt.MqttError as e:
                log.warning(f"Error during MQTT disconnect: {e}")
            self._client = None
            self._connected = False
            log.info("Disconnected from MQTT broker.")

    async def _ensure_connected(self) -> bool:
        if self._connected and self._client:
            return True
        log.info("MQTT client not connected, attempting to reconnect...")
        await self.disconnect()
        try:
            await self.connect()
            return True
        except mqtt.MqttError as e:
            log.error(f"Failed to reconnect to MQTT broker: {e}")
            return False

    async def publish(self, topic: str, payload: str, retain: bool = True) -> None:
        """Publish one message; a broker error marks the client for reconnect."""
        try:
            if not await self._ensure_connected():
                return
            await self._client.publish(topic, payload=payload, qos=1, retain=retain)
            log.debug(f"Published to MQTT topic: {topic}")
        except mqtt.MqttError as e:
            self._connected = False
            log.error(f"MQTT error, will reconnect on next publish: {e}")


class ControllerPublisher(ControllerListener):
    """Turns one controller's events into queued MQTT messages."""

    def __init__(self, controller: Controller, queue: asyncio.Queue, prefix: str):
        self.controller = controller
        self.queue = queue
        self.base_topic = f"{prefix}/{controller.id}"
        self._online = False

    def _put(self, topic: str, payload: str) -> None:
        self.queue.put_nowait((f"{self.base_topic}/{topic}", payload))

    def _set_online(self) -> None:
        if not self._online:
            self._online = True
            self._put("availability", "online")

    def _publish_unit(self, unit_number: int) -> None:
        snapshot = self.controller.state.unit_snapshot(unit_number)
        if snapshot is not None:
            self._put(f"units/{unit_number}", snapshot.model_dump_json())

    def _publish_zone(self, zone_number: int) -> None:
        snapshot = self.controller.state.zone_snapshot(zone_number)
        if snapshot is not None:
            self._put(f"zones/{zone_number}", snapshot.model_dump_json())

    def unit_ability_discovered(self, ability: AcAbility) -> None:
        self._set_online()
        self._publish_unit(ability.unit_number)

    def unit_status_updated(self, status: AcStatus) -> None:
        self._set_online()
        self._publish_unit(status.unit_number)
        # Zone derived states depend on the AC mode and power
        for zone in self.controller.state.zones_of_unit(status.unit_number):
            if zone.status is not None:
                self._publish_zone(zone.number)

    def unit_error_reported(self, error: AcErrorInfo) -> None:
        self._publish_unit(error.unit_number)

    def zone_status_updated(self, status: ZoneStatus) -> None:
        self._set_online()
        self._publish_zone(status.zone_number)

    def zone_name_updated(self, zone_number: int, name: str) -> None:
        self._publish_zone(zone_number)

    def reconnecting(self) -> None:
        self._online = False
        self._put("availability", "offline")


class MqttBridge:
    def __init__(self, client: MqttClient | None = None, prefix: str | None = None):
        self.client = client or get_mqtt_client()
        self.prefix = prefix or settings.MQTT_TOPIC_PREFIX
        self.queue: asyncio.Queue[tuple[str, str]] = asyncio.Queue()
        self.publishers: dict[str, ControllerPublisher] = {}

    def attach(self, controller: Controller) -> None:
        if controller.id in self.publishers:
            return
        publisher = ControllerPublisher(controller, self.queue, self.prefix)
        self.publishers[controller.id] = publisher
        controller.add_listener(publisher)

    async def run(self) -> None:
        log.info(f"MQTT bridge publishing under '{self.prefix}/'")
        while True:
            topic, payload = await self.queue.get()
            try:
                await self.client.publish(topic, payload)
            finally:
                self.queue.task_done()


@lru_cache
def get_mqtt_client() -> MqttClient:
    return MqttClient()
