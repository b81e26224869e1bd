"""
Camera Uplink Components

Capture process supervision, frame extraction and the uplink exception
hierarchy.
"""

from .camera_exceptions import (
    UplinkError,
    ConfigurationError,
    EncoderStartError,
    TransportConnectError,
    StreamingError
)

__all__ = [
    'UplinkError',
    'ConfigurationError',
    'EncoderStartError',
    'TransportConnectError',
    'StreamingError'
]
