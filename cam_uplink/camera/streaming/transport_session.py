"""
Transport Session

One WebSocket connection to the ingestion endpoint, used in both
directions. The inbound reader applies server feedback and queues ping
payloads; the outbound sender drains the frame queue and the pong queue,
paces itself from the shared congestion state and turns send failures
into congestion signals and a single reconnect attempt.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp
from aiohttp import WSMsgType

from cam_uplink.config import AppConfig

from ..camera_exceptions import StreamingError, TransportConnectError
from .protocol import (
    apply_feedback,
    build_frame_message,
    build_join_message,
    parse_server_message,
)
from .shared_frame_queue import Frame, FrameQueue
from .shared_state import SharedTelemetry
from .streaming_stats import UplinkStats

logger = logging.getLogger(__name__)

PONG_QUEUE_CAPACITY = 10

# Consecutive-result thresholds for the shared congestion flag
FAILURES_TO_CONGEST = 3
FRAME_SUCCESSES_TO_CLEAR = 10
PONG_SUCCESSES_TO_CLEAR = 4

TRANSIENT_ERRORS = (aiohttp.ClientError, OSError, asyncio.TimeoutError)

WebSocketFactory = Callable[[], Awaitable[Any]]


class TransportSession:
    """
    Uplink WebSocket session

    connect() must succeed once; after that every I/O error is absorbed.
    A failed send costs one reconnect attempt, and if that attempt fails
    the sender stops for good and the rest of the pipeline keeps running
    without an uplink.
    """

    def __init__(
        self,
        config: AppConfig,
        frame_queue: FrameQueue,
        telemetry: SharedTelemetry,
        camera_id: str,
        stats: Optional[UplinkStats] = None,
        ws_factory: Optional[WebSocketFactory] = None,
    ):
        self.config = config
        self.frame_queue = frame_queue
        self.telemetry = telemetry
        self.camera_id = camera_id
        self.stats = stats or UplinkStats()

        self._ws_factory = ws_factory
        self._session: Optional[aiohttp.ClientSession] = None
        self.ws = None
        self._reader_task: Optional[asyncio.Task] = None

        self.pong_queue: asyncio.Queue = asyncio.Queue(maxsize=PONG_QUEUE_CAPACITY)

        # Owned by the sender
        self.consecutive_failures = 0
        self.consecutive_successes = 0

        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def connected(self) -> bool:
        return self.ws is not None and not self.ws.closed

    async def _open_websocket(self):
        if self._ws_factory is not None:
            return await self._ws_factory()

        if self._session is None:
            self._session = aiohttp.ClientSession()
        return await self._session.ws_connect(self.config.server_url, autoping=False)

    async def _handshake(self):
        ws = await self._open_websocket()
        join = build_join_message(self.camera_id, self.config.min_quality, self.config.max_quality)
        try:
            await ws.send_str(join)
        except TRANSIENT_ERRORS:
            await ws.close()
            raise
        return ws

    async def connect(self):
        """
        Open the connection, send the join message and start the reader

        Raises:
            TransportConnectError: If the endpoint cannot be reached
        """
        logger.info(f"🔌 Connecting to {self.config.server_url} as {self.camera_id}")
        try:
            self.ws = await self._handshake()
        except TRANSIENT_ERRORS as e:
            raise TransportConnectError(details=f"{self.config.server_url}: {e}") from e

        self._start_reader()
        logger.info("✅ Connected to ingestion endpoint")

    async def reconnect(self) -> bool:
        """
        Replace the current connection with a fresh one

        Returns:
            bool: True if the new connection is up and joined
        """
        logger.info(f"🔄 Reconnecting to {self.config.server_url}")
        await self._stop_reader()
        await self._close_ws()

        try:
            self.ws = await self._handshake()
        except TRANSIENT_ERRORS as e:
            self.stats.reconnect_failures += 1
            logger.error(f"❌ Failed to reconnect: {e}")
            return False

        self._start_reader()
        self.stats.reconnects += 1
        logger.info("✅ Reconnected to ingestion endpoint")
        return True

    # Inbound

    def _start_reader(self):
        self._reader_task = asyncio.create_task(self._read_loop(self.ws), name="transport_reader")

    async def _stop_reader(self):
        task = self._reader_task
        self._reader_task = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _read_loop(self, ws):
        while True:
            try:
                msg = await ws.receive()
            except TRANSIENT_ERRORS as e:
                logger.warning(f"⚠️  Receive failed: {e}")
                return

            if msg.type == WSMsgType.TEXT:
                self.handle_text(msg.data)
            elif msg.type == WSMsgType.PING:
                # Replies go out through the sender, never from here
                await self.pong_queue.put(msg.data)
            elif msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED, WSMsgType.ERROR):
                logger.info("🔚 Server closed the connection")
                return

    def handle_text(self, text: str):
        """Apply a text message from the server to shared telemetry"""
        message = parse_server_message(text)
        if message is None:
            self.stats.malformed_messages += 1
            logger.debug("Ignoring malformed server message")
            return

        self.stats.feedback_messages += 1
        was_congested = self.telemetry.network_congested
        congested = apply_feedback(message, self.telemetry)
        if congested != was_congested:
            logger.info(f"📡 Server reports congestion: {congested}")

    # Outbound

    async def run(self):
        """
        Send loop

        Waits on the frame queue and the pong queue at the same time and
        services whichever is ready, picking at random when both are.
        Returns when stopped or when a reconnect attempt fails.
        """
        if self.ws is None:
            raise StreamingError(details="run() called before connect()")

        self._running = True
        frame_task: Optional[asyncio.Task] = None
        pong_task: Optional[asyncio.Task] = None
        logger.info("📤 Uplink sender started")

        try:
            while self._running:
                if frame_task is None:
                    frame_task = asyncio.create_task(self.frame_queue.get())
                if pong_task is None:
                    pong_task = asyncio.create_task(self.pong_queue.get())

                done, _ = await asyncio.wait({frame_task, pong_task}, return_when=asyncio.FIRST_COMPLETED)
                ready = random.choice(tuple(done))

                if ready is pong_task:
                    pong_task = None
                    keep_going = await self._send_pong(ready.result())
                else:
                    frame_task = None
                    keep_going = await self._send_frame(ready.result())

                if not keep_going:
                    logger.error("❌ Uplink sender stopped, no connection to the ingestion endpoint")
                    break
        finally:
            self._running = False
            for task in (frame_task, pong_task):
                if task is not None and not task.done():
                    task.cancel()

    async def _send_frame(self, frame: Frame) -> bool:
        occupancy = self.telemetry.queue_occupancy
        payload = build_frame_message(
            self.camera_id, frame, self.telemetry.resolution, self.telemetry.quality
        )

        try:
            await self.ws.send_str(payload)
        except TRANSIENT_ERRORS as e:
            logger.warning(f"⚠️  Failed to send frame {frame.sequence}: {e}")
            if not await self._recover_from_failure():
                return False
        else:
            self.stats.frames_sent += 1
            self.stats.bytes_sent += len(payload)
            self.consecutive_successes += 1
            self.consecutive_failures = 0
            if self.consecutive_successes > FRAME_SUCCESSES_TO_CLEAR:
                self.telemetry.network_congested = False

        await asyncio.sleep(self.send_delay(occupancy))
        return True

    async def _send_pong(self, data: bytes) -> bool:
        try:
            await self.ws.pong(data)
        except TRANSIENT_ERRORS as e:
            logger.warning(f"⚠️  Failed to send pong: {e}")
            return await self._recover_from_failure()

        self.stats.pongs_sent += 1
        self.consecutive_successes += 1
        if self.consecutive_successes > PONG_SUCCESSES_TO_CLEAR:
            self.telemetry.network_congested = False
            self.consecutive_failures = 0
        return True

    async def _recover_from_failure(self) -> bool:
        self.stats.send_failures += 1
        self.consecutive_failures += 1
        self.consecutive_successes = 0
        if self.consecutive_failures > FAILURES_TO_CONGEST:
            self.telemetry.network_congested = True

        await asyncio.sleep(self.config.reconnect_delay)
        return await self.reconnect()

    def send_delay(self, occupancy: int) -> float:
        """Pause after a frame, from the congestion flag and the backlog seen at dequeue"""
        if self.telemetry.network_congested:
            delay = self.config.congested_send_delay
        else:
            delay = self.config.normal_send_delay

        if occupancy > self.config.backlog_threshold:
            delay += self.config.backlog_send_delay
        return delay

    def stop(self):
        self._running = False

    async def close(self):
        """Stop the reader and close the connection and HTTP session"""
        self._running = False
        await self._stop_reader()
        await self._close_ws()
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def _close_ws(self):
        ws = self.ws
        self.ws = None
        if ws is None or ws.closed:
            return
        try:
            await ws.close()
        except TRANSIENT_ERRORS as e:
            logger.debug(f"Error closing websocket: {e}")

    def get_status(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "sending": self._running,
            "consecutive_failures": self.consecutive_failures,
            "consecutive_successes": self.consecutive_successes,
            "pending_pongs": self.pong_queue.qsize(),
        }
