"""
Frame Queue for the Uplink

Bounded FIFO between the frame extractor and the transport session. The
queue keeps the shared occupancy counter in step with enqueue/dequeue so
the extractor can apply backpressure and the controller can read pressure
without touching the queue itself.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, Any

from .shared_state import SharedTelemetry


def now_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Frame:
    """
    One complete JPEG frame extracted from the capture stream

    Never mutated after extraction.
    """
    data: bytes
    sequence: int = 0
    captured_at: int = field(default_factory=now_millis)

    @property
    def size(self) -> int:
        return len(self.data)

    def to_dict(self) -> Dict[str, Any]:
        """Frame metadata without the payload"""
        return {
            "sequence": self.sequence,
            "captured_at": self.captured_at,
            "size": self.size,
        }


class FrameQueue:
    """
    Bounded frame queue with an approximate shared occupancy counter

    A single consumer drains frames in order. Producers can be replaced
    across encoder restarts; they only ever use try_put().
    """

    def __init__(self, telemetry: SharedTelemetry, capacity: int = 60):
        self.capacity = capacity
        self.telemetry = telemetry
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)

        # Performance tracking
        self.total_frames_added = 0
        self.total_frames_consumed = 0
        self.overflow_count = 0
        self.peak_size = 0

    def try_put(self, frame: Frame) -> bool:
        """
        Add frame to queue (non-blocking)

        Returns:
            bool: True if the frame was queued, False if the queue was full
        """
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            self.overflow_count += 1
            return False

        self.telemetry.queue_occupancy += 1
        self.total_frames_added += 1
        self.peak_size = max(self.peak_size, self._queue.qsize())
        return True

    async def get(self) -> Frame:
        """Wait for the oldest frame and remove it (FIFO)"""
        frame = await self._queue.get()
        self.telemetry.queue_occupancy = max(0, self.telemetry.queue_occupancy - 1)
        self.total_frames_consumed += 1
        return frame

    def qsize(self) -> int:
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()

    def get_queue_metrics(self) -> Dict[str, Any]:
        """
        Get queue performance metrics

        Returns:
            dict: Queue depth, shared occupancy and counters
        """
        queue_size = self._queue.qsize()
        return {
            "queue_size": queue_size,
            "occupancy_counter": self.telemetry.queue_occupancy,
            "capacity": self.capacity,
            "utilization": queue_size / self.capacity if self.capacity > 0 else 0.0,
            "total_frames_added": self.total_frames_added,
            "total_frames_consumed": self.total_frames_consumed,
            "overflow_count": self.overflow_count,
            "peak_size": self.peak_size,
        }

    def __len__(self) -> int:
        return self._queue.qsize()
