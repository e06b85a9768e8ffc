"""Tests for the feed WebSocket transport.

picows is replaced by a fake connector that drives the listener callbacks
the same way the real library does.
"""

import asyncio
import logging
from unittest.mock import MagicMock

import orjson
import pytest
from picows import WSCloseCode, WSMsgType

from fxpulse.clients.feed_ws import FeedTransport
from fxpulse.services.message_router import ConsumerRegistration, MessageRouter
from fxpulse_core.errors import FeedConnectionError


class FakeTransport:
    """Stand-in for picows.WSTransport."""

    def __init__(self, listener):
        self.listener = listener
        self.sent: list[tuple] = []
        self.close_codes: list = []
        self.pongs: list[bytes] = []
        self.closed = False

    def send(self, msg_type, data):
        self.sent.append((msg_type, data))

    def send_close(self, close_code=None, close_message=None):
        self.close_codes.append(close_code)

    def send_pong(self, payload=None):
        self.pongs.append(payload)

    def disconnect(self):
        if not self.closed:
            self.closed = True
            self.listener.on_ws_disconnected(self)

    def drop(self):
        """Simulate the connection dying without a close frame."""
        self.disconnect()


class FakeFrame:
    def __init__(self, msg_type, payload=b"", close_code=None):
        self.msg_type = msg_type
        self._payload = payload
        self._close_code = close_code

    def get_payload_as_bytes(self):
        return self._payload

    def get_close_code(self):
        return self._close_code


class FakeConnector:
    """Records connection attempts; fails while ``fail`` is set."""

    def __init__(self):
        self.calls = 0
        self.fail = False
        self.transports: list[FakeTransport] = []

    async def __call__(self, listener_factory, url, **kwargs):
        self.calls += 1
        await asyncio.sleep(0)
        if self.fail:
            raise OSError("connection refused")
        listener = listener_factory()
        transport = FakeTransport(listener)
        self.transports.append(transport)
        listener.on_ws_connected(transport)
        return transport, listener

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


@pytest.fixture
def router():
    return MessageRouter()


@pytest.fixture
def consumer(router):
    registration = ConsumerRegistration(
        message_handler=MagicMock(),
        on_connect=MagicMock(),
        on_disconnect=MagicMock(),
        on_error=MagicMock(),
    )
    router.register_consumer("test", registration)
    return registration


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def transport(router, connector):
    return FeedTransport(
        "wss://feed.test/market",
        router,
        base_delay=0.001,
        max_reconnect_attempts=3,
        connector=connector,
    )


class TestConnect:
    """Tests for connect()."""

    @pytest.mark.asyncio
    async def test_connect_notifies_consumers(self, transport, consumer, connector):
        """Opening the socket notifies consumers."""
        await transport.connect()
        assert transport.is_connected
        assert connector.calls == 1
        consumer.on_connect.assert_called_once()

    @pytest.mark.asyncio
    async def test_connect_idempotent(self, transport, connector):
        """Concurrent connects share one attempt."""
        await asyncio.gather(transport.connect(), transport.connect())
        await transport.connect()
        assert connector.calls == 1

    @pytest.mark.asyncio
    async def test_connect_failure(self, transport, consumer, connector):
        """A failed connect raises and notifies consumers."""
        connector.fail = True
        with pytest.raises(FeedConnectionError, match="connection refused"):
            await transport.connect()
        assert not transport.is_connected
        assert transport.status()["connection_error"] == "connection refused"
        consumer.on_error.assert_called_once()


class TestFrames:
    @pytest.mark.asyncio
    async def test_text_frame_routed(self, transport, consumer, connector):
        """Text frames are routed to consumers."""
        await transport.connect()
        listener = connector.last.listener
        payload = orjson.dumps({"type": "ticks", "data": [{"symbol": "EURUSDm", "bid": 1.1}]})
        listener.on_ws_frame(connector.last, FakeFrame(WSMsgType.TEXT, payload))

        consumer.message_handler.assert_called_once()
        assert consumer.message_handler.call_args.args[0].type == "ticks"

    @pytest.mark.asyncio
    async def test_invalid_json_dropped(self, transport, consumer, connector, caplog):
        """Invalid JSON is logged and dropped."""
        await transport.connect()
        with caplog.at_level(logging.WARNING):
            connector.last.listener.on_ws_frame(connector.last, FakeFrame(WSMsgType.TEXT, b"{not json"))
        consumer.message_handler.assert_not_called()
        assert "Failed to parse" in caplog.text

    @pytest.mark.asyncio
    async def test_ping_answered(self, transport, connector):
        """Pings are answered with pongs."""
        await transport.connect()
        connector.last.listener.on_ws_frame(connector.last, FakeFrame(WSMsgType.PING, b"hb"))
        assert connector.last.pongs == [b"hb"]


class TestSend:
    @pytest.mark.asyncio
    async def test_send_dict_as_json_text(self, transport, connector):
        """Dicts are sent as JSON text frames."""
        await transport.connect()
        assert transport.send({"action": "subscribe", "symbol": "EURUSDm"}) is True
        msg_type, data = connector.last.sent[-1]
        assert msg_type == WSMsgType.TEXT
        assert orjson.loads(data) == {"action": "subscribe", "symbol": "EURUSDm"}

    def test_send_when_disconnected(self, transport, caplog):
        """Sending while disconnected logs and returns False."""
        with caplog.at_level(logging.WARNING):
            assert transport.send({"action": "subscribe"}) is False
        assert "not connected" in caplog.text


class TestReconnect:
    """Tests for close handling and backoff."""

    def test_backoff_doubles(self, router):
        """Reconnect delays double each attempt."""
        transport = FeedTransport("wss://feed.test", router, base_delay=1.0)
        assert [transport.next_delay(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_abnormal_close_reconnects(self, transport, consumer, connector):
        """An abnormal close reconnects and resets the counter."""
        await transport.connect()
        connector.last.drop()
        consumer.on_disconnect.assert_called_once()
        assert transport.reconnect_attempts == 1

        await asyncio.sleep(0.05)
        assert transport.is_connected
        assert connector.calls == 2
        assert transport.reconnect_attempts == 0  # reset on open
        assert consumer.on_connect.call_count == 2

    @pytest.mark.asyncio
    async def test_reconnect_gives_up_after_max_attempts(self, transport, consumer, connector):
        """Reconnects stop after the maximum attempts."""
        await transport.connect()
        connector.fail = True
        connector.last.drop()

        await asyncio.sleep(0.1)
        assert not transport.is_connected
        assert connector.calls == 1 + 3
        assert transport.status()["connection_error"] == "Max reconnection attempts reached"
        assert isinstance(consumer.on_error.call_args.args[0], FeedConnectionError)

    @pytest.mark.asyncio
    async def test_manual_disconnect_does_not_reconnect(self, transport, consumer, connector):
        """A manual disconnect closes cleanly without reconnecting."""
        await transport.connect()
        transport.disconnect()
        assert connector.last.close_codes == [WSCloseCode.OK]
        assert not transport.is_connected

        await asyncio.sleep(0.05)
        assert connector.calls == 1
        event = consumer.on_disconnect.call_args.args[0]
        assert event["clean"] is True

    @pytest.mark.asyncio
    async def test_server_normal_close_does_not_reconnect(self, transport, connector):
        """A normal server close does not reconnect."""
        await transport.connect()
        listener = connector.last.listener
        listener.on_ws_frame(connector.last, FakeFrame(WSMsgType.CLOSE, close_code=WSCloseCode.OK))

        await asyncio.sleep(0.05)
        assert not transport.is_connected
        assert connector.calls == 1

    @pytest.mark.asyncio
    async def test_server_error_close_reconnects(self, transport, connector):
        """An error close from the server reconnects."""
        await transport.connect()
        listener = connector.last.listener
        listener.on_ws_frame(connector.last, FakeFrame(WSMsgType.CLOSE, close_code=WSCloseCode.GOING_AWAY))

        await asyncio.sleep(0.05)
        assert transport.is_connected
        assert connector.calls == 2

    @pytest.mark.asyncio
    async def test_disconnect_during_handshake(self, transport, consumer, connector):
        """disconnect() while connecting closes the socket once it opens."""
        task = asyncio.create_task(transport.connect())
        await asyncio.sleep(0)
        transport.disconnect()
        await task

        assert not transport.is_connected
        assert connector.last.close_codes == [WSCloseCode.OK]
        assert connector.last.closed
        consumer.on_connect.assert_not_called()
        consumer.on_disconnect.assert_not_called()

        await asyncio.sleep(0.05)
        assert connector.calls == 1

    @pytest.mark.asyncio
    async def test_connect_after_disconnect_allowed(self, transport, connector):
        """connect() after disconnect() opens again."""
        await transport.connect()
        transport.disconnect()
        await transport.connect()
        assert transport.is_connected
        assert connector.calls == 2

    @pytest.mark.asyncio
    async def test_registrations_survive_reconnect(self, transport, router, consumer, connector):
        """Consumers stay registered across reconnects."""
        await transport.connect()
        connector.last.drop()
        await asyncio.sleep(0.05)
        assert router.is_registered("test")

        payload = orjson.dumps({"type": "pong"})
        connector.last.listener.on_ws_frame(connector.last, FakeFrame(WSMsgType.TEXT, payload))
        consumer.message_handler.assert_called_once()
