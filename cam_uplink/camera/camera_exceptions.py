"""
Uplink-specific exceptions and error handling

Provides a hierarchy of custom exceptions for the camera uplink. Only
startup failures surface as exceptions; runtime I/O problems are absorbed
by the streaming components and turned into congestion signals.
"""

import functools
from typing import Optional


class UplinkError(Exception):
    """Base exception for all uplink-related errors"""

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigurationError(UplinkError):
    """Raised when the uplink configuration is invalid"""

    def __init__(self, message: str = "Invalid uplink configuration", details: Optional[str] = None):
        super().__init__(message, details)


class EncoderStartError(UplinkError):
    """Raised when the capture/encode process cannot be spawned"""

    def __init__(self, message: str = "Capture process failed to start", details: Optional[str] = None):
        super().__init__(message, details)


class TransportConnectError(UplinkError):
    """Raised when the initial connection to the ingestion endpoint fails"""

    def __init__(self, message: str = "Could not connect to ingestion endpoint", details: Optional[str] = None):
        super().__init__(message, details)


class StreamingError(UplinkError):
    """Raised when streaming operations fail"""

    def __init__(self, message: str = "Streaming operation failed", details: Optional[str] = None):
        super().__init__(message, details)


def handle_encoder_error(func):
    """
    Decorator for coroutines that spawn the capture process

    Converts the OS-level failures raised by process creation into
    EncoderStartError with a hint about what to check.
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except UplinkError:
            raise
        except FileNotFoundError as e:
            raise EncoderStartError(
                "Capture command not found",
                f"Check CAPTURE_COMMAND and that the binary is installed ({e})"
            ) from e
        except PermissionError as e:
            raise EncoderStartError(
                "Capture command not executable",
                str(e)
            ) from e
        except OSError as e:
            raise EncoderStartError(
                f"Unexpected OS error in {func.__name__}",
                str(e)
            ) from e

    return wrapper
