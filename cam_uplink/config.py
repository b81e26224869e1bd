"""
Configuration management for the adaptive camera uplink
Handles environment variables with an optional .env file
"""

import logging
import os
import shlex
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, List

from cam_uplink.camera.camera_exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CAPTURE_COMMAND = (
    "gst-launch-1.0 libcamerasrc ! "
    "video/x-raw,width={width},height={height} ! "
    "videoconvert ! jpegenc quality={quality} ! fdsink"
)


@dataclass
class AppConfig:
    """Application configuration with environment variable support"""

    # Ingestion endpoint
    server_url: str
    camera_id_prefix: str

    # Capture process
    capture_command: str

    # Frame pipeline
    frame_queue_capacity: int
    queue_high_water: int
    read_chunk_size: int
    max_buffer_bytes: int
    buffer_keep_bytes: int

    # Transport pacing and recovery
    reconnect_delay: float
    normal_send_delay: float
    congested_send_delay: float
    backlog_send_delay: float
    backlog_threshold: int

    # Adaptation loop
    fast_check_interval: float
    slow_check_interval: float
    min_quality: int
    max_quality: int
    controller_publishes_congestion: bool
    reset_counters_on_profile_change: bool

    # Status API
    status_api_enabled: bool
    host: str
    port: int

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Create configuration from environment variables with defaults"""

        def get_bool(key: str, default: bool) -> bool:
            value = os.getenv(key, str(default)).lower()
            return value in ('true', '1', 'yes', 'on')

        def get_int(key: str, default: int) -> int:
            try:
                return int(os.getenv(key, str(default)))
            except ValueError:
                return default

        def get_float(key: str, default: float) -> float:
            try:
                return float(os.getenv(key, str(default)))
            except ValueError:
                return default

        def get_str(key: str, default: str) -> str:
            return os.getenv(key, default)

        return cls(
            server_url=get_str('SERVER_URL', 'ws://127.0.0.1:3001'),
            camera_id_prefix=get_str('CAMERA_ID_PREFIX', 'camera-py'),

            capture_command=get_str('CAPTURE_COMMAND', DEFAULT_CAPTURE_COMMAND),

            frame_queue_capacity=get_int('FRAME_QUEUE_CAPACITY', 60),
            queue_high_water=get_int('QUEUE_HIGH_WATER', 50),
            read_chunk_size=get_int('READ_CHUNK_SIZE', 512 * 1024),
            max_buffer_bytes=get_int('MAX_BUFFER_BYTES', 10 * 1024 * 1024),
            buffer_keep_bytes=get_int('BUFFER_KEEP_BYTES', 1024 * 1024),

            reconnect_delay=get_float('RECONNECT_DELAY', 5.0),
            normal_send_delay=get_float('NORMAL_SEND_DELAY', 0.01),
            congested_send_delay=get_float('CONGESTED_SEND_DELAY', 0.1),
            backlog_send_delay=get_float('BACKLOG_SEND_DELAY', 0.05),
            backlog_threshold=get_int('BACKLOG_THRESHOLD', 30),

            fast_check_interval=get_float('FAST_CHECK_INTERVAL', 2.0),
            slow_check_interval=get_float('SLOW_CHECK_INTERVAL', 5.0),
            min_quality=get_int('MIN_QUALITY', 20),
            max_quality=get_int('MAX_QUALITY', 90),
            controller_publishes_congestion=get_bool('CONTROLLER_PUBLISHES_CONGESTION', True),
            reset_counters_on_profile_change=get_bool('RESET_COUNTERS_ON_PROFILE_CHANGE', False),

            status_api_enabled=get_bool('STATUS_API_ENABLED', False),
            host=get_str('HOST', '127.0.0.1'),
            port=get_int('PORT', 8003),

            log_level=get_str('LOG_LEVEL', 'INFO').upper(),
        )

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = []

        if not self.server_url.startswith(('ws://', 'wss://')):
            errors.append("SERVER_URL must start with ws:// or wss://")

        if not self.camera_id_prefix:
            errors.append("CAMERA_ID_PREFIX must not be empty")

        try:
            self.build_capture_args(1280, 720, 70)
        except (KeyError, IndexError, ValueError) as e:
            errors.append(f"CAPTURE_COMMAND is not a valid template: {e}")

        if self.frame_queue_capacity < 1:
            errors.append("FRAME_QUEUE_CAPACITY must be at least 1")

        if not (0 < self.queue_high_water <= self.frame_queue_capacity):
            errors.append("QUEUE_HIGH_WATER must be between 1 and FRAME_QUEUE_CAPACITY")

        if self.read_chunk_size < 1:
            errors.append("READ_CHUNK_SIZE must be positive")

        if self.buffer_keep_bytes >= self.max_buffer_bytes:
            errors.append("BUFFER_KEEP_BYTES must be smaller than MAX_BUFFER_BYTES")

        delays = {
            'RECONNECT_DELAY': self.reconnect_delay,
            'NORMAL_SEND_DELAY': self.normal_send_delay,
            'CONGESTED_SEND_DELAY': self.congested_send_delay,
            'BACKLOG_SEND_DELAY': self.backlog_send_delay,
        }
        for key, value in delays.items():
            if value < 0:
                errors.append(f"{key} must not be negative")

        if self.fast_check_interval <= 0 or self.slow_check_interval <= 0:
            errors.append("Check intervals must be positive")

        if not (1 <= self.min_quality <= self.max_quality <= 100):
            errors.append("Quality bounds must satisfy 1 <= MIN_QUALITY <= MAX_QUALITY <= 100")

        if not (1 <= self.port <= 65535):
            errors.append("Port must be between 1 and 65535")

        if self.log_level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            errors.append(f"Invalid LOG_LEVEL: {self.log_level}")

        return errors

    def build_capture_args(self, width: int, height: int, quality: int) -> List[str]:
        """Fill the capture command template and split it into argv"""
        command = self.capture_command.format(width=width, height=height, quality=quality)
        args = shlex.split(command)
        if not args:
            raise ValueError("empty command")
        return args

    def to_public_dict(self) -> Dict[str, Any]:
        """Configuration values safe to expose over the status API"""
        return asdict(self)

    def log_summary(self):
        """Log configuration summary for debugging"""
        logger.info("📋 Configuration Summary:")
        logger.info(f"   🌐 Endpoint: {self.server_url} (camera prefix {self.camera_id_prefix})")
        logger.info(f"   🎥 Capture: {self.capture_command}")
        logger.info(f"   📦 Queue: capacity={self.frame_queue_capacity}, high-water={self.queue_high_water}")
        logger.info(f"   🎯 Quality bounds: {self.min_quality}-{self.max_quality}")
        logger.info(f"   🔄 Checks: {self.fast_check_interval}s/{self.slow_check_interval}s, "
                    f"reconnect delay {self.reconnect_delay}s")
        if self.status_api_enabled:
            logger.info(f"   🔗 Status API: {self.host}:{self.port}")


def load_env_file(env_file: str = '.env'):
    """Load environment variables from a .env file without overriding the real environment"""
    if not os.path.exists(env_file):
        return False

    with open(env_file, 'r') as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith('#') and '=' in line:
                key, value = line.split('=', 1)
                os.environ.setdefault(key.strip(), value.strip())
    return True


def load_config() -> AppConfig:
    """Load and validate configuration"""
    if load_env_file():
        logger.debug("📄 Loaded configuration from .env")

    config = AppConfig.from_env()

    errors = config.validate()
    if errors:
        raise ConfigurationError("Invalid configuration", "; ".join(errors))

    return config


# Global configuration instance
app_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get global configuration instance"""
    global app_config
    if app_config is None:
        app_config = load_config()
    return app_config
