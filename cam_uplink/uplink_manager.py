"""
Uplink Manager

Builds the streaming components around one shared telemetry object and
supervises the tasks that run them.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

import uvicorn

from cam_uplink.config import AppConfig
from cam_uplink.camera.camera_exceptions import TransportConnectError
from cam_uplink.camera.encoder_supervisor import EncoderSupervisor
from cam_uplink.camera.health_api import create_status_app
from cam_uplink.camera.streaming.adaptation_controller import AdaptationController
from cam_uplink.camera.streaming.shared_frame_queue import FrameQueue
from cam_uplink.camera.streaming.shared_state import NOMINAL_PROFILE, SharedTelemetry
from cam_uplink.camera.streaming.streaming_stats import UplinkStats
from cam_uplink.camera.streaming.transport_session import TransportSession, WebSocketFactory

logger = logging.getLogger(__name__)

STATUS_API_SHUTDOWN_TIMEOUT = 5.0


def generate_camera_id(prefix: str) -> str:
    """Random per-run camera identifier"""
    return f"{prefix}-{uuid.uuid4()}"


class UplinkManager:
    """
    Owns the uplink pipeline

    start() raises on the two fatal conditions (capture process does not
    spawn, endpoint unreachable at startup). After that, runtime failures
    are absorbed by the components themselves; an unexpected exception in
    a supervised task requests a stop.
    """

    def __init__(self, config: AppConfig, ws_factory: Optional[WebSocketFactory] = None):
        self.config = config
        self.camera_id = generate_camera_id(config.camera_id_prefix)

        self.telemetry = SharedTelemetry(NOMINAL_PROFILE)
        self.stats = UplinkStats()
        self.frame_queue = FrameQueue(self.telemetry, capacity=config.frame_queue_capacity)

        self.encoder = EncoderSupervisor(config, self.frame_queue, self.telemetry, self.stats)
        self.transport = TransportSession(
            config,
            self.frame_queue,
            self.telemetry,
            self.camera_id,
            stats=self.stats,
            ws_factory=ws_factory,
        )
        self.controller = AdaptationController(config, self.telemetry, self.encoder, self.stats)

        self.tasks: Dict[str, asyncio.Task] = {}
        self.fatal_error: Optional[BaseException] = None
        self._status_server: Optional[uvicorn.Server] = None
        self._stop_event = asyncio.Event()
        self._stopped = False

    async def start(self):
        """
        Start the capture process, connect, and schedule the tasks

        Raises:
            EncoderStartError: If the capture process cannot be spawned
            TransportConnectError: If the endpoint cannot be reached
        """
        logger.info(f"🚀 Starting camera uplink as {self.camera_id}")

        await self.encoder.start(NOMINAL_PROFILE)
        try:
            await self.transport.connect()
        except TransportConnectError:
            await self.encoder.stop()
            raise

        self._spawn("transport", self.transport.run())
        self._spawn("controller", self.controller.run())

        if self.config.status_api_enabled:
            self._start_status_api()

        logger.info("✅ Camera uplink running")

    def _start_status_api(self):
        app = create_status_app(self)
        server_config = uvicorn.Config(
            app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
            log_config=None,
        )
        self._status_server = uvicorn.Server(server_config)
        self._spawn("status_api", self._status_server.serve())
        logger.info(f"🔗 Status API on http://{self.config.host}:{self.config.port}")

    def _spawn(self, name: str, coro):
        task = asyncio.create_task(coro, name=name)
        task.add_done_callback(lambda t: self._on_task_done(name, t))
        self.tasks[name] = task

    def _on_task_done(self, name: str, task: asyncio.Task):
        if task.cancelled() or self._stopped:
            return

        error = task.exception()
        if error is not None:
            logger.critical(f"💥 Task '{name}' failed: {error}", exc_info=error)
            self.fatal_error = error
            self.request_stop()
        elif name == "transport":
            logger.warning("⚠️  Uplink sender has exited; capture continues without an uplink")

    def request_stop(self):
        """Ask wait() to return; safe to call from a signal handler"""
        self._stop_event.set()

    async def wait(self):
        """Block until a stop is requested"""
        await self._stop_event.wait()

    async def stop(self):
        """Stop every task, kill the capture process and close the connection"""
        if self._stopped:
            return
        self._stopped = True
        self._stop_event.set()
        logger.info("🛑 Stopping camera uplink...")

        self.transport.stop()
        self.controller.stop()

        status_task = self.tasks.get("status_api")
        if self._status_server is not None and status_task is not None:
            self._status_server.should_exit = True
            await asyncio.wait({status_task}, timeout=STATUS_API_SHUTDOWN_TIMEOUT)

        pending = [task for task in self.tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        await self.encoder.stop()
        await self.transport.close()

        logger.info(f"📊 Final session stats: {self.stats.export_stats_summary()}")
        logger.info("✅ Camera uplink stopped")

    def is_healthy(self) -> bool:
        return self.encoder.is_running and self.transport.is_running

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of the pipeline for the status API and the final log"""
        running_profile = self.encoder.running_profile
        return {
            "camera_id": self.camera_id,
            "healthy": self.is_healthy(),
            "telemetry": self.telemetry.snapshot(),
            "controller": self.controller.get_status(),
            "transport": self.transport.get_status(),
            "encoder": {
                "running": self.encoder.is_running,
                "pid": self.encoder.pid,
                "profile": running_profile.to_dict() if running_profile else None,
            },
            "queue": self.frame_queue.get_queue_metrics(),
            "stats": self.stats.get_comprehensive_stats(),
            "recent_profile_changes": self.stats.get_recent_profile_changes(),
            "tasks": {name: ("done" if task.done() else "running") for name, task in self.tasks.items()},
        }
