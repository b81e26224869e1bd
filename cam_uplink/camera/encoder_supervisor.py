"""
Encoder Supervisor

Owns the external capture/encode process. Each start spawns the process
with the command template filled from a stream profile and attaches a
fresh FrameExtractor to its stdout; a restart tears both down first.
"""

import asyncio
import contextlib
import logging
from typing import Optional

from cam_uplink.config import AppConfig

from .camera_exceptions import handle_encoder_error
from .frame_extractor import FrameExtractor
from .streaming.shared_frame_queue import FrameQueue
from .streaming.shared_state import SharedTelemetry, StreamProfile
from .streaming.streaming_stats import UplinkStats

logger = logging.getLogger(__name__)

EXTRACTOR_DRAIN_TIMEOUT = 1.0


class EncoderSupervisor:
    """Starts, restarts and stops the single capture process"""

    def __init__(
        self,
        config: AppConfig,
        frame_queue: FrameQueue,
        telemetry: SharedTelemetry,
        stats: Optional[UplinkStats] = None,
    ):
        self.config = config
        self.frame_queue = frame_queue
        self.telemetry = telemetry
        self.stats = stats or UplinkStats()

        self.process: Optional[asyncio.subprocess.Process] = None
        self.extractor: Optional[FrameExtractor] = None
        self._extractor_task: Optional[asyncio.Task] = None
        self._running_profile: Optional[StreamProfile] = None
        self._last_sequence = 0

    @property
    def running_profile(self) -> Optional[StreamProfile]:
        return self._running_profile

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    @property
    def is_running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    @handle_encoder_error
    async def start(self, profile: StreamProfile):
        """
        Spawn the capture process for a profile

        Raises:
            EncoderStartError: If the process cannot be spawned
        """
        args = self.config.build_capture_args(profile.width, profile.height, profile.quality)
        logger.info(f"🎥 Starting capture process at {profile.resolution}, quality {profile.quality}")
        logger.debug(f"Capture command: {args}")

        self.process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL,
        )

        self.extractor = FrameExtractor(
            self.frame_queue,
            self.telemetry,
            stats=self.stats,
            high_water=self.config.queue_high_water,
            read_chunk_size=self.config.read_chunk_size,
            max_buffer_bytes=self.config.max_buffer_bytes,
            buffer_keep_bytes=self.config.buffer_keep_bytes,
            start_sequence=self._last_sequence,
        )
        self._extractor_task = asyncio.create_task(
            self.extractor.run(self.process.stdout), name="frame_extractor"
        )
        self._running_profile = profile
        self.stats.encoder_starts += 1

        logger.info(f"✅ Capture process running (pid {self.process.pid})")

    async def restart(self, profile: StreamProfile):
        """Kill the running process and start a new one with the given profile"""
        logger.info(f"🔄 Restarting capture process with {profile.resolution}, quality {profile.quality}")
        await self._terminate()
        await self.start(profile)

    async def stop(self):
        """Kill the capture process and retire its extractor"""
        if self.process is None and self._extractor_task is None:
            return
        await self._terminate()
        logger.info("🛑 Capture process stopped")

    async def _terminate(self):
        process = self.process
        if process is not None:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
            await process.wait()
            self.process = None

        task = self._extractor_task
        if task is not None:
            # EOF normally ends the extractor once the process is gone
            done, _ = await asyncio.wait({task}, timeout=EXTRACTOR_DRAIN_TIMEOUT)
            if not done:
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            self._extractor_task = None
            self._last_sequence = self.extractor.sequence
            self.extractor = None
