"""Market feed WebSocket client using picows.

One connection is shared by every dashboard consumer. Inbound text frames
are decoded with orjson and handed to the ``MessageRouter`` synchronously,
inside the frame callback, so cache updates happen in arrival order.
"""

import asyncio
import logging
from typing import Any, Callable

import orjson
from picows import WSCloseCode, WSFrame, WSListener, WSMsgType, WSTransport, ws_connect

from fxpulse.services.message_router import MessageRouter
from fxpulse_core.errors import FeedConnectionError

logger = logging.getLogger(__name__)


class FeedListener(WSListener):
    """picows listener forwarding socket events to a ``FeedTransport``."""

    def __init__(self, client: "FeedTransport"):
        self._client = client

    def on_ws_connected(self, transport: WSTransport):
        """Called when WebSocket connection is established."""
        logger.info("picows: feed WebSocket connected")
        self._client._on_open(transport)

    def on_ws_disconnected(self, transport: WSTransport):
        """Called when WebSocket is disconnected."""
        logger.info("picows: feed WebSocket disconnected")
        self._client._on_close()

    def on_ws_frame(self, transport: WSTransport, frame: WSFrame):
        """Called when a new frame is received."""
        if frame.msg_type == WSMsgType.TEXT:
            self._client._handle_payload(frame.get_payload_as_bytes())
        elif frame.msg_type == WSMsgType.PING:
            transport.send_pong(frame.get_payload_as_bytes())
        elif frame.msg_type == WSMsgType.CLOSE:
            self._client._close_code = frame.get_close_code()
            transport.send_close(frame.get_close_code())
            transport.disconnect()


class FeedTransport:
    """Single WebSocket connection to the market feed with bounded reconnects.

    After an abnormal close, reconnection is attempted up to
    ``max_reconnect_attempts`` times with delays ``base_delay * 2**(n-1)``.
    The attempt counter resets whenever a connection opens. ``disconnect()``
    closes with code 1000 and suppresses reconnection until ``connect()`` is
    called again.
    """

    def __init__(
        self,
        url: str,
        router: MessageRouter,
        base_delay: float = 1.0,
        max_reconnect_attempts: int = 3,
        connector: Callable[..., Any] = ws_connect,
    ):
        self.url = url
        self.router = router
        self.base_delay = base_delay
        self.max_reconnect_attempts = max_reconnect_attempts
        self._connector = connector

        self._transport: WSTransport | None = None
        self._connect_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._reconnect_attempts = 0
        self._manual_close = False
        self._close_code: int | None = None
        self.connection_error: str | None = None

    @property
    def is_connected(self) -> bool:
        return self._transport is not None

    @property
    def is_connecting(self) -> bool:
        return self._connect_task is not None and not self._connect_task.done()

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection. No-op if already open or opening.

        Raises:
            FeedConnectionError: If the socket cannot be opened.
        """
        self._manual_close = False
        self._cancel_reconnect()
        if self.is_connected:
            return
        if not self.is_connecting:
            self._connect_task = asyncio.create_task(self._open())
        await asyncio.shield(self._connect_task)

    async def _open(self) -> None:
        self._close_code = None
        logger.info(f"Connecting to {self.url}")
        try:
            await self._connector(
                lambda: FeedListener(self),
                self.url,
                enable_auto_ping=True,
                auto_ping_idle_timeout=30,
                auto_ping_reply_timeout=10,
            )
        except Exception as e:
            self.connection_error = str(e) or type(e).__name__
            logger.error(f"Feed connection error: {self.connection_error}")
            self.router.notify_error(e)
            raise FeedConnectionError(f"Failed to connect to {self.url}: {self.connection_error}") from e

    def disconnect(self) -> None:
        """Close the connection normally and stop reconnecting."""
        self._manual_close = True
        self._cancel_reconnect()
        self._reconnect_attempts = 0
        if self._transport is not None:
            logger.info("Disconnecting from feed")
            self._close_code = WSCloseCode.OK
            self._transport.send_close(WSCloseCode.OK)
            self._transport.disconnect()

    def _on_open(self, transport: WSTransport) -> None:
        if self._manual_close:
            # disconnect() was called while the handshake was in flight
            logger.info("Closing feed connection opened after disconnect()")
            transport.send_close(WSCloseCode.OK)
            transport.disconnect()
            return
        self._transport = transport
        self._reconnect_attempts = 0
        self.connection_error = None
        self.router.notify_connect()

    def _on_close(self) -> None:
        if self._transport is None:
            return
        self._transport = None
        code = self._close_code
        clean = code == WSCloseCode.OK
        logger.info(f"Feed connection closed: code={code} clean={clean}")
        self.router.notify_disconnect({"code": code, "clean": clean})

        if self._manual_close or clean:
            return
        self.schedule_reconnect()

    # ------------------------------------------------------------------
    # Reconnection
    # ------------------------------------------------------------------

    def schedule_reconnect(self) -> bool:
        """Schedule the next reconnect attempt.

        Returns False once ``max_reconnect_attempts`` is exhausted.
        """
        if self._manual_close:
            return False
        if self._reconnect_attempts >= self.max_reconnect_attempts:
            self.connection_error = "Max reconnection attempts reached"
            logger.error(f"{self.connection_error} ({self.max_reconnect_attempts})")
            self.router.notify_error(FeedConnectionError(self.connection_error))
            return False

        self._reconnect_attempts += 1
        delay = self.next_delay(self._reconnect_attempts)
        logger.info(
            f"Reconnecting in {delay}s "
            f"(attempt {self._reconnect_attempts}/{self.max_reconnect_attempts})"
        )
        self._cancel_reconnect()
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_after(delay))
        return True

    def next_delay(self, attempt: int) -> float:
        """Delay before reconnect *attempt* (1-based)."""
        return self.base_delay * 2 ** (attempt - 1)

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._manual_close or self.is_connected:
            return
        try:
            await self._open()
        except FeedConnectionError:
            # Clear the handle first so scheduling doesn't cancel this task
            self._reconnect_task = None
            self.schedule_reconnect()

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    def send(self, payload: dict | str | bytes) -> bool:
        """Send a message. Returns False (and logs) when not connected."""
        if self._transport is None:
            logger.warning("Cannot send message, feed not connected")
            return False
        if isinstance(payload, bytes):
            data = payload
        elif isinstance(payload, str):
            data = payload.encode()
        else:
            data = orjson.dumps(payload)
        try:
            self._transport.send(WSMsgType.TEXT, data)
        except Exception as e:
            logger.error(f"Failed to send message: {e}")
            return False
        return True

    def _handle_payload(self, payload: bytes) -> None:
        try:
            message = orjson.loads(payload)
        except orjson.JSONDecodeError as e:
            logger.warning(f"Failed to parse feed message: {e}")
            return
        self.router.route_message(message)

    def status(self) -> dict:
        """Return connection status."""
        return {
            "url": self.url,
            "is_connected": self.is_connected,
            "is_connecting": self.is_connecting,
            "connection_error": self.connection_error,
            "reconnect_attempts": self._reconnect_attempts,
        }
