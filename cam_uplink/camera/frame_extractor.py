"""
Frame Extractor

Demuxes the capture process output, a continuous stream of concatenated
JPEG images, into discrete frames and offers them to the frame queue
under backpressure.

Known limitation: a frame whose payload contains the two-byte start or
end marker will be split incorrectly. JPEG encoders byte-stuff 0xFF inside
entropy-coded data, so this only matters for unusual inputs.
"""

import asyncio
import logging
from typing import List, Optional

from .streaming.shared_frame_queue import Frame, FrameQueue
from .streaming.shared_state import SharedTelemetry
from .streaming.streaming_stats import UplinkStats

logger = logging.getLogger(__name__)

START_MARKER = b"\xff\xd8"
END_MARKER = b"\xff\xd9"

READ_CHUNK_SIZE = 512 * 1024
MAX_BUFFER_BYTES = 10 * 1024 * 1024
BUFFER_KEEP_BYTES = 1024 * 1024
HIGH_WATER_MARK = 50
YIELD_SECONDS = 0.001


class FrameExtractor:
    """
    Incremental JPEG frame extractor

    feed() is synchronous and usable on its own; run() drives it from an
    asyncio.StreamReader until the stream ends. One extractor is created
    per capture process; it never restarts itself.
    """

    def __init__(
        self,
        frame_queue: FrameQueue,
        telemetry: SharedTelemetry,
        stats: Optional[UplinkStats] = None,
        high_water: int = HIGH_WATER_MARK,
        read_chunk_size: int = READ_CHUNK_SIZE,
        max_buffer_bytes: int = MAX_BUFFER_BYTES,
        buffer_keep_bytes: int = BUFFER_KEEP_BYTES,
        start_sequence: int = 0,
    ):
        self.frame_queue = frame_queue
        self.telemetry = telemetry
        self.stats = stats or UplinkStats()
        self.high_water = high_water
        self.read_chunk_size = read_chunk_size
        self.max_buffer_bytes = max_buffer_bytes
        self.buffer_keep_bytes = buffer_keep_bytes

        self._buffer = bytearray()
        self._sequence = start_sequence

    @property
    def sequence(self) -> int:
        """Sequence number of the last extracted frame"""
        return self._sequence

    @property
    def buffered_bytes(self) -> int:
        return len(self._buffer)

    def extract_frames(self) -> List[bytes]:
        """
        Pull every complete frame out of the accumulation buffer

        Garbage before a start marker is discarded. A start marker without
        a matching end marker stays buffered until more bytes arrive.
        """
        frames = []
        buffer = self._buffer
        position = 0

        while True:
            start = buffer.find(START_MARKER, position)
            if start < 0:
                # Keep a trailing 0xFF, it may be the first half of a marker
                position = max(position, len(buffer) - 1)
                break

            end = buffer.find(END_MARKER, start + 2)
            if end < 0:
                position = start
                break

            frames.append(bytes(buffer[start:end + 2]))
            position = end + 2

        if position > 0:
            del buffer[:position]

        if len(buffer) > self.max_buffer_bytes:
            logger.warning(
                f"⚠️  Frame buffer exceeded {self.max_buffer_bytes} bytes without a complete frame, "
                f"keeping last {self.buffer_keep_bytes}"
            )
            del buffer[:len(buffer) - self.buffer_keep_bytes]
            self.stats.buffer_truncations += 1

        return frames

    def feed(self, data: bytes) -> int:
        """
        Append newly read bytes and offer any completed frames to the queue

        Returns:
            int: Number of frames extracted (queued or dropped)
        """
        self._buffer.extend(data)
        self.stats.bytes_read += len(data)

        frames = self.extract_frames()
        for payload in frames:
            self._offer(payload)
        return len(frames)

    def _offer(self, payload: bytes):
        self._sequence += 1
        self.stats.frames_extracted += 1

        if self.telemetry.queue_occupancy >= self.high_water:
            self.stats.frames_dropped_backpressure += 1
            logger.debug("Network congested, skipping frame")
            return

        frame = Frame(payload, sequence=self._sequence)
        if not self.frame_queue.try_put(frame):
            self.stats.frames_dropped_queue_full += 1
            logger.debug("Frame queue full, skipping frame")

    async def run(self, stream: asyncio.StreamReader):
        """Read the capture output until EOF or a read error"""
        logger.info("🎞️  Frame extraction started")

        while True:
            try:
                data = await stream.read(self.read_chunk_size)
            except OSError as e:
                logger.error(f"❌ Error reading capture output: {e}")
                break

            if not data:
                logger.info("🔚 End of capture stream")
                break

            self.feed(data)

            # Let the sender and controller run between read passes
            await asyncio.sleep(YIELD_SECONDS)
