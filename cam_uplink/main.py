"""
Adaptive Camera Uplink - entry point

Streams JPEG frames from a capture process to a WebSocket ingestion
endpoint, adapting resolution and quality to network conditions.
"""

import asyncio
import contextlib
import logging
import signal
import sys

from cam_uplink.camera.camera_exceptions import ConfigurationError, UplinkError
from cam_uplink.config import AppConfig, get_config
from cam_uplink.logging_config import setup_logging
from cam_uplink.uplink_manager import UplinkManager

logger = logging.getLogger(__name__)


def install_signal_handlers(manager: UplinkManager, loop: asyncio.AbstractEventLoop):
    """Register SIGINT/SIGTERM handlers that ask the manager to stop"""
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, manager.request_stop)


async def run(config: AppConfig) -> int:
    """Run the uplink until a signal or a fatal error; returns the exit status"""
    manager = UplinkManager(config)
    install_signal_handlers(manager, asyncio.get_running_loop())

    try:
        await manager.start()
    except UplinkError as e:
        logger.critical(f"❌ Startup failed: {e}")
        await manager.stop()
        return 1

    try:
        await manager.wait()
    finally:
        await manager.stop()

    return 1 if manager.fatal_error else 0


def main():
    try:
        config = get_config()
    except ConfigurationError as e:
        setup_logging()
        logger.critical(f"❌ {e}")
        sys.exit(1)

    setup_logging(config.log_level)
    config.log_summary()

    sys.exit(asyncio.run(run(config)))


if __name__ == "__main__":
    main()
