"""
Shared Streaming State

Stream profiles and the telemetry scalars shared between the frame
extractor, the adaptation controller and the transport session.
"""

from dataclasses import dataclass
from typing import Dict, Any, Tuple

QUALITY_FLOOR = 20

NOMINAL_SIZE = (1280, 720)
DEGRADED_SIZE = (640, 480)


@dataclass(frozen=True)
class StreamProfile:
    """Resolution and JPEG quality requested of the capture process"""
    width: int
    height: int
    quality: int

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    @property
    def is_degraded(self) -> bool:
        return self.size == DEGRADED_SIZE

    def with_quality(self, quality: int) -> 'StreamProfile':
        return StreamProfile(self.width, self.height, quality)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "quality": self.quality,
            "resolution": self.resolution,
        }


NOMINAL_PROFILE = StreamProfile(*NOMINAL_SIZE, quality=70)


def degraded_profile(quality: int) -> StreamProfile:
    """640x480 profile with the quality floor applied"""
    return StreamProfile(*DEGRADED_SIZE, quality=max(QUALITY_FLOOR, quality))


class SharedTelemetry:
    """
    Scalars shared across the uplink tasks

    Every task runs on the same event loop, so individual attribute reads
    and writes are atomic. Nothing guards compound updates: readers may see
    a quality from one writer and a resolution from another, which the
    control loop tolerates.

    Writers:
        queue_occupancy    FrameQueue (producer increments, consumer decrements)
        network_congested  TransportSession and AdaptationController
        quality/width/height  AdaptationController, overridden by server feedback
    """

    def __init__(self, profile: StreamProfile = NOMINAL_PROFILE):
        self.queue_occupancy = 0
        self.network_congested = False
        self.quality = profile.quality
        self.width = profile.width
        self.height = profile.height

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    def publish_profile(self, profile: StreamProfile):
        """Publish a new running profile for readers"""
        self.quality = profile.quality
        self.width = profile.width
        self.height = profile.height

    def snapshot(self) -> Dict[str, Any]:
        return {
            "queue_occupancy": self.queue_occupancy,
            "network_congested": self.network_congested,
            "quality": self.quality,
            "resolution": self.resolution,
        }
