"""
Camera Streaming Module

Frame queue, shared telemetry, congestion estimation, wire protocol and
streaming statistics for the camera uplink.
"""

from .shared_frame_queue import Frame, FrameQueue
from .shared_state import SharedTelemetry, StreamProfile
from .quality_adaptation import CongestionEstimator, NetworkState, Recommendation
from .streaming_stats import UplinkStats

__all__ = [
    'Frame',
    'FrameQueue',
    'SharedTelemetry',
    'StreamProfile',
    'CongestionEstimator',
    'NetworkState',
    'Recommendation',
    'UplinkStats'
]
