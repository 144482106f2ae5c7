# tests/test_mqtt.py
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import aiomqtt
import pytest

from pyairtouch5.core.constants import AcMode, AcPowerState, FanSpeed, ZoneControlType, ZonePowerState
from pyairtouch5.core.controller import Controller
from pyairtouch5.core.models import AcAbility, AcStatus, DiscoveredController, ZoneStatus
from pyairtouch5.core.session import ControllerSession
from pyairtouch5.mqtt import MqttBridge, MqttClient

INFO = DiscoveredController(ip="192.0.2.7", console_id="c", controller_id="42", name="Home")
ABILITY = AcAbility(
    unit_number=0,
    name="Main",
    start_zone=0,
    zone_count=2,
    supported_modes=frozenset({AcMode.COOL}),
    supported_fan_speeds=frozenset({FanSpeed.AUTO}),
    min_cool=16,
    max_cool=30,
    min_heat=16,
    max_heat=30,
)
AC_STATUS = AcStatus(
    unit_number=0,
    power_state=AcPowerState.ON,
    mode=AcMode.COOL,
    fan_speed=0,
    setpoint=22.0,
    temperature=25.0,
)
ZONE_STATUS = ZoneStatus(
    zone_number=1,
    power_state=ZonePowerState.ON,
    control_type=ZoneControlType.PERCENTAGE,
    damper_percent=45,
    setpoint=22.0,
    temperature=24.0,
    has_sensor=False,
)


def drain(queue: asyncio.Queue) -> list[tuple[str, str]]:
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


class TestControllerPublisher:
    @pytest.fixture
    def controller(self):
        return Controller(INFO, session=AsyncMock(spec=ControllerSession))

    @pytest.fixture
    def bridge(self, controller):
        bridge = MqttBridge(AsyncMock(spec=MqttClient), prefix="hvac/test")
        bridge.attach(controller)
        return bridge

    def test_ability_publishes_unit_and_availability(self, controller, bridge):
        controller.state.add_ability(ABILITY)
        messages = drain(bridge.queue)

        assert messages[0] == ("hvac/test/42/availability", "online")
        topic, payload = messages[1]
        assert topic == "hvac/test/42/units/0"
        data = json.loads(payload)
        assert data["name"] == "Main"
        assert data["zones"] == [0, 1]
        assert data["status"] is None

    def test_zone_status_publishes_zone(self, controller, bridge):
        controller.state.add_ability(ABILITY)
        controller.state.update_ac_status(AC_STATUS)
        drain(bridge.queue)

        controller.state.update_zone_status(ZONE_STATUS)
        messages = drain(bridge.queue)

        assert [t for t, _ in messages] == ["hvac/test/42/zones/1"]
        data = json.loads(messages[0][1])
        assert data["damper_percent"] == 45
        assert data["current_state"] == "cooling"
        # No sensor, so the AC's reading is used
        assert data["current_temperature"] == 25.0

    def test_unit_status_republishes_known_zones(self, controller, bridge):
        controller.state.add_ability(ABILITY)
        controller.state.update_zone_status(ZONE_STATUS)
        drain(bridge.queue)

        controller.state.update_ac_status(AC_STATUS)
        topics = [t for t, _ in drain(bridge.queue)]

        assert topics == ["hvac/test/42/units/0", "hvac/test/42/zones/1"]

    def test_reconnect_marks_offline(self, controller, bridge):
        controller.state.add_ability(ABILITY)
        drain(bridge.queue)

        controller.state.reconnecting()
        assert drain(bridge.queue) == [("hvac/test/42/availability", "offline")]

        controller.state.update_ac_status(AC_STATUS)
        messages = drain(bridge.queue)
        assert messages[0] == ("hvac/test/42/availability", "online")

    def test_attach_is_idempotent(self, controller, bridge):
        bridge.attach(controller)
        controller.state.add_ability(ABILITY)
        topics = [t for t, _ in drain(bridge.queue)]
        assert topics.count("hvac/test/42/units/0") == 1


class TestMqttBridge:
    @pytest.mark.asyncio
    async def test_run_publishes_queued_messages(self):
        client = AsyncMock(spec=MqttClient)
        bridge = MqttBridge(client, prefix="hvac/test")
        bridge.queue.put_nowait(("hvac/test/42/availability", "online"))

        task = asyncio.create_task(bridge.run())
        await asyncio.wait_for(bridge.queue.join(), timeout=1)
        task.cancel()

        client.publish.assert_awaited_once_with("hvac/test/42/availability", "online")


class TestMqttClient:
    @pytest.mark.asyncio
    async def test_publish_connects_lazily(self):
        inner = MagicMock()
        inner.__aenter__ = AsyncMock(return_value=inner)
        inner.publish = AsyncMock()
        with patch("pyairtouch5.mqtt.mqtt.Client", return_value=inner):
            client = MqttClient()
            await client.publish("hvac/test/42/availability", "online")

        inner.__aenter__.assert_awaited_once()
        inner.publish.assert_awaited_once_with(
            "hvac/test/42/availability", payload="online", qos=1, retain=True
        )

    @pytest.mark.asyncio
    async def test_publish_error_marks_disconnected(self):
        inner = MagicMock()
        inner.__aenter__ = AsyncMock(return_value=inner)
        inner.publish = AsyncMock(side_effect=aiomqtt.MqttError("broker gone"))
        with patch("pyairtouch5.mqtt.mqtt.Client", return_value=inner):
            client = MqttClient()
            await client.publish("hvac/test/42/availability", "online")

        assert client._connected is False
