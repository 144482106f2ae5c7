# tests/core/test_session.py
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pyairtouch5.core.codec import (
    build_ac_control_message,
    build_zone_control_message,
    request_ac_ability,
    request_ac_error,
    request_ac_status,
    request_zone_names,
    request_zone_status,
)
from pyairtouch5.core.constants import AcMode, AcPowerControl, ZonePowerControl
from pyairtouch5.core.frame import FrameBuffer
from pyairtouch5.core.models import AcControl, Change, ZoneControl
from pyairtouch5.core.session import ControllerSession, SessionState
from pyairtouch5.core.state import ControllerState


class FakeReader:
    """StreamReader stand-in fed from the test."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue[bytes] = asyncio.Queue()

    async def read(self, n: int) -> bytes:
        return await self.queue.get()

    def push(self, data: bytes) -> None:
        self.queue.put_nowait(data)


def make_writer() -> MagicMock:
    writer = MagicMock()
    writer.is_closing = MagicMock(return_value=False)
    writer.close = MagicMock(return_value=None)
    writer.wait_closed = AsyncMock(return_value=None)
    writer.write = MagicMock(return_value=None)
    writer.drain = AsyncMock(return_value=None)
    return writer


def sent_bodies(writer: MagicMock) -> list[bytes]:
    """Bodies (between magic and CRC) of everything written so far."""
    buf = FrameBuffer()
    bodies = []
    for call in writer.write.call_args_list:
        bodies.extend(frame.body.data for frame in buf.feed(call.args[0]))
    return bodies


async def wait_until(predicate, timeout: float = 1.0) -> None:
    for _ in range(int(timeout / 0.01)):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


class TestControllerSession:
    """Test cases for ControllerSession."""

    @pytest.fixture
    def reader(self):
        return FakeReader()

    @pytest.fixture
    def writer(self):
        return make_writer()

    @pytest.fixture
    def listener(self):
        return MagicMock(spec=ControllerState)

    @pytest.fixture
    def session(self, listener):
        return ControllerSession(
            "192.0.2.10",
            listener,
            reconnect_delay=60,
            connect_attempts=2,
            connect_retry_wait=0,
        )

    @pytest.mark.asyncio
    async def test_connect_sends_ability_request(self, session, reader, writer):
        with patch("asyncio.open_connection", AsyncMock(return_value=(reader, writer))) as open_conn:
            assert await session.connect() is True
            open_conn.assert_awaited_once_with("192.0.2.10", 9005)
            assert session.state == SessionState.AWAITING_ABILITY
            assert session.is_connected()
            assert sent_bodies(writer) == [request_ac_ability()]
            await session.stop()
        assert session.state == SessionState.DISCONNECTED
        writer.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_connect_failure_retries_then_schedules_reconnect(self, session):
        with patch("asyncio.open_connection", AsyncMock(side_effect=OSError("refused"))) as open_conn:
            assert await session.connect() is False
            assert open_conn.await_count == 2
            assert session.state == SessionState.DISCONNECTED
            assert session._reconnect_task is not None
            await session.stop()

    @pytest.mark.asyncio
    async def test_bootstrap_order(
        self, session, reader, writer, listener, extended_frame, standard_frame,
        ability_record, ac_record, zone_record, zone_names_data,
    ):
        with patch("asyncio.open_connection", AsyncMock(return_value=(reader, writer))):
            await session.connect()

            reader.push(extended_frame(0x11, ability_record(0)))
            await wait_until(lambda: len(sent_bodies(writer)) == 3)
            assert sent_bodies(writer) == [
                request_ac_ability(),
                request_ac_status(),
                request_zone_status(),
            ]
            assert session.state == SessionState.AWAITING_ZONE_STATUS
            listener.add_ability.assert_called_once()

            reader.push(standard_frame(0x23, [ac_record(0)]))
            reader.push(standard_frame(0x21, [zone_record(0), zone_record(1)]))
            await wait_until(lambda: len(sent_bodies(writer)) == 4)
            assert sent_bodies(writer)[-1] == request_zone_names()
            assert session.state == SessionState.READY
            assert listener.update_zone_status.call_count == 2

            # Later zone pushes do not ask for names again
            reader.push(standard_frame(0x21, [zone_record(0)]))
            reader.push(extended_frame(0x13, zone_names_data({0: "Living"})))
            await wait_until(lambda: listener.add_zone_name.called)
            assert len(sent_bodies(writer)) == 4
            await session.stop()

    @pytest.mark.asyncio
    async def test_zone_status_before_ability_does_not_request_names(
        self, session, reader, writer, standard_frame, zone_record
    ):
        with patch("asyncio.open_connection", AsyncMock(return_value=(reader, writer))):
            await session.connect()
            reader.push(standard_frame(0x21, [zone_record(0)]))
            await wait_until(lambda: reader.queue.empty())
            await asyncio.sleep(0.01)
            assert sent_bodies(writer) == [request_ac_ability()]
            assert session.state == SessionState.AWAITING_ABILITY
            await session.stop()

    @pytest.mark.asyncio
    async def test_fragmented_push_is_reassembled(
        self, session, reader, writer, listener, extended_frame, ability_record
    ):
        data = extended_frame(0x11, ability_record(0))
        with patch("asyncio.open_connection", AsyncMock(return_value=(reader, writer))):
            await session.connect()
            reader.push(bytes(10) + data[:7])
            reader.push(data[7:20])
            reader.push(data[20:])
            await wait_until(lambda: listener.add_ability.called)
            listener.add_ability.assert_called_once()
            await session.stop()

    @pytest.mark.asyncio
    async def test_unit_error_is_requested_once(
        self, session, reader, writer, standard_frame, ac_record
    ):
        with patch("asyncio.open_connection", AsyncMock(return_value=(reader, writer))):
            await session.connect()
            reader.push(standard_frame(0x23, [ac_record(1, error_code=5)]))
            reader.push(standard_frame(0x23, [ac_record(1, error_code=5)]))
            await wait_until(lambda: request_ac_error(1) in sent_bodies(writer))
            await asyncio.sleep(0.02)
            assert sent_bodies(writer).count(request_ac_error(1)) == 1

            # Cleared then raised again
            reader.push(standard_frame(0x23, [ac_record(1, error_code=0)]))
            reader.push(standard_frame(0x23, [ac_record(1, error_code=7)]))
            await wait_until(lambda: sent_bodies(writer).count(request_ac_error(1)) == 2)
            await session.stop()

    @pytest.mark.asyncio
    async def test_peer_close_schedules_reconnect(self, session, reader, writer):
        with patch("asyncio.open_connection", AsyncMock(return_value=(reader, writer))):
            await session.connect()
            reader.push(b"")
            await wait_until(lambda: session.state == SessionState.DISCONNECTED)
            writer.close.assert_called_once()
            assert session._reconnect_task is not None
            assert not session._reconnect_task.done()
            await session.stop()

    @pytest.mark.asyncio
    async def test_silence_triggers_exactly_one_reconnect(self, session, reader, writer, listener):
        second_reader, second_writer = FakeReader(), make_writer()
        open_conn = AsyncMock(side_effect=[(reader, writer), (second_reader, second_writer)])
        with patch("asyncio.open_connection", open_conn):
            await session.connect()
            session._last_activity = asyncio.get_running_loop().time() - 121

            assert await session.check_liveness() is True
            # Same liveness window: nothing more to do
            assert await session.check_liveness() is False

            await wait_until(lambda: session.state == SessionState.AWAITING_ABILITY)
            writer.close.assert_called_once()
            assert open_conn.await_count == 2
            listener.reconnecting.assert_called_once_with()
            assert sent_bodies(second_writer) == [request_ac_ability()]
            await session.stop()

    @pytest.mark.asyncio
    async def test_recent_activity_keeps_connection(self, session, reader, writer):
        with patch("asyncio.open_connection", AsyncMock(return_value=(reader, writer))):
            await session.connect()
            session._last_activity = asyncio.get_running_loop().time() - 60
            assert await session.check_liveness() is False
            writer.close.assert_not_called()
            await session.stop()

    @pytest.mark.asyncio
    async def test_inbound_data_refreshes_activity(self, session, reader, writer):
        with patch("asyncio.open_connection", AsyncMock(return_value=(reader, writer))):
            await session.connect()
            session._last_activity = 0.0
            reader.push(b"\x00\x01")
            await wait_until(lambda: session.last_activity > 0.0)
            await session.stop()

    @pytest.mark.asyncio
    async def test_send_when_disconnected_is_dropped(self, session, writer):
        assert await session.set_unit_power(0, True) is False
        assert await session.send(request_ac_status()) is False
        writer.write.assert_not_called()

    @pytest.mark.asyncio
    async def test_write_failure_schedules_reconnect(self, session, reader, writer):
        with patch("asyncio.open_connection", AsyncMock(return_value=(reader, writer))):
            await session.connect()
            writer.drain.side_effect = ConnectionResetError("gone")
            assert await session.set_zone_power(0, False) is False
            assert session.state == SessionState.DISCONNECTED
            assert session._reconnect_task is not None
            await session.stop()

    @pytest.mark.asyncio
    async def test_listener_failure_keeps_receiving(
        self, session, reader, writer, listener, extended_frame, standard_frame,
        ability_record, zone_record,
    ):
        listener.add_ability.side_effect = RuntimeError("listener bug")
        with patch("asyncio.open_connection", AsyncMock(return_value=(reader, writer))):
            await session.connect()
            reader.push(extended_frame(0x11, ability_record(0)))
            reader.push(standard_frame(0x21, [zone_record(0)]))
            await wait_until(lambda: listener.update_zone_status.called)

            assert not session._receive_task.done()
            assert session.is_connected()
            assert session._reconnect_task is None
            await session.stop()

    @pytest.mark.asyncio
    async def test_pending_reconnect_yields_to_newer_connection(self, listener, reader, writer):
        session = ControllerSession("192.0.2.10", listener, reconnect_delay=0.05)
        second_reader, second_writer = FakeReader(), make_writer()
        open_conn = AsyncMock(side_effect=[(reader, writer), (second_reader, second_writer)])
        with patch("asyncio.open_connection", open_conn):
            await session.connect()
            writer.drain.side_effect = ConnectionResetError("gone")
            assert await session.set_zone_power(0, True) is False
            pending = session._reconnect_task
            assert pending is not None

            # A caller reconnects before the backoff elapses
            assert await session.connect() is True
            await asyncio.wait_for(pending, timeout=1)

            assert open_conn.await_count == 2
            listener.reconnecting.assert_not_called()
            assert session.is_connected()
            assert session._reconnect_task is None
            await session.stop()

    @pytest.mark.asyncio
    async def test_sends_are_serialized(self, session, reader, writer):
        active = 0
        peak = 0

        async def slow_drain():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        with patch("asyncio.open_connection", AsyncMock(return_value=(reader, writer))):
            await session.connect()
            writer.drain.side_effect = slow_drain
            results = await asyncio.gather(
                session.set_unit_power(0, True),
                session.set_unit_fan_speed(0, 2),
                session.set_zone_power(1, True),
                session.set_zone_damper_percent(1, 30),
                session.set_zone_target_temperature(1, 21.0),
            )
            assert results == [True] * 5
            assert peak == 1
            assert len(sent_bodies(writer)) == 6
            await session.stop()

    @pytest.mark.asyncio
    async def test_command_encoding(self, session, reader, writer):
        with patch("asyncio.open_connection", AsyncMock(return_value=(reader, writer))):
            await session.connect()
            await session.set_unit_target_mode(1, AcMode.COOL)
            await session.set_unit_target_temperature(1, 23.5)
            await session.set_zone_damper_percent(3, 50)
            await session.set_zone_target_temperature(2, 21.5)
            bodies = sent_bodies(writer)[1:]
            assert bodies == [
                build_ac_control_message(
                    AcControl(unit_number=1, power=Change(AcPowerControl.ON), mode=Change(AcMode.COOL))
                ),
                build_ac_control_message(AcControl(unit_number=1, setpoint=Change(23.5))),
                build_zone_control_message(
                    ZoneControl(zone_number=3, power=Change(ZonePowerControl.ON), damper_percent=Change(50))
                ),
                build_zone_control_message(
                    ZoneControl(zone_number=2, power=Change(ZonePowerControl.ON), setpoint=Change(21.5))
                ),
            ]
            await session.stop()

    @pytest.mark.asyncio
    async def test_invalid_command_raises(self, session, reader, writer):
        with patch("asyncio.open_connection", AsyncMock(return_value=(reader, writer))):
            await session.connect()
            with pytest.raises(ValueError):
                await session.set_unit_target_temperature(0, 40.0)
            with pytest.raises(ValueError):
                await session.set_zone_damper_percent(0, 150)
            await session.stop()
