"""
Adaptive Camera Uplink

Streams JPEG frames from an external capture process to a WebSocket
ingestion endpoint and adapts resolution and quality to the network.
"""

__version__ = "1.0.0"
