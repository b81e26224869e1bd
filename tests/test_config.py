"""Unit tests for configuration loading and validation."""

from dataclasses import replace

import pytest

from cam_uplink import config as config_module
from cam_uplink.camera.camera_exceptions import ConfigurationError
from cam_uplink.config import AppConfig, load_config, load_env_file


class TestFromEnv:

    def test_defaults(self):
        config = AppConfig.from_env()

        assert config.server_url == "ws://127.0.0.1:3001"
        assert config.frame_queue_capacity == 60
        assert config.queue_high_water == 50
        assert config.read_chunk_size == 512 * 1024
        assert config.reconnect_delay == 5.0
        assert config.controller_publishes_congestion is True
        assert config.reset_counters_on_profile_change is False
        assert config.status_api_enabled is False
        assert config.validate() == []

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("SERVER_URL", "wss://ingest.example:443/cams")
        monkeypatch.setenv("FRAME_QUEUE_CAPACITY", "120")
        monkeypatch.setenv("STATUS_API_ENABLED", "yes")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        config = AppConfig.from_env()

        assert config.server_url == "wss://ingest.example:443/cams"
        assert config.frame_queue_capacity == 120
        assert config.status_api_enabled is True
        assert config.log_level == "DEBUG"

    def test_unparseable_numbers_fall_back_to_defaults(self, monkeypatch):
        monkeypatch.setenv("PORT", "eighty")
        monkeypatch.setenv("RECONNECT_DELAY", "soon")

        config = AppConfig.from_env()

        assert config.port == 8003
        assert config.reconnect_delay == 5.0


class TestValidation:

    @pytest.mark.parametrize("overrides, fragment", [
        ({"server_url": "http://host"}, "SERVER_URL"),
        ({"capture_command": "gst {framerate}"}, "CAPTURE_COMMAND"),
        ({"capture_command": "gst {width"}, "CAPTURE_COMMAND"),
        ({"capture_command": "   "}, "CAPTURE_COMMAND"),
        ({"queue_high_water": 61}, "QUEUE_HIGH_WATER"),
        ({"buffer_keep_bytes": 20 * 1024 * 1024}, "BUFFER_KEEP_BYTES"),
        ({"reconnect_delay": -1.0}, "RECONNECT_DELAY"),
        ({"min_quality": 95}, "Quality bounds"),
        ({"port": 70000}, "Port"),
        ({"log_level": "VERBOSE"}, "LOG_LEVEL"),
    ])
    def test_reports_problem(self, overrides, fragment):
        config = replace(AppConfig.from_env(), **overrides)

        errors = config.validate()

        assert any(fragment in error for error in errors)

    def test_build_capture_args_fills_default_pipeline(self):
        args = AppConfig.from_env().build_capture_args(640, 480, 36)

        assert args[0] == "gst-launch-1.0"
        assert "video/x-raw,width=640,height=480" in args
        assert "quality=36" in args
        assert args[-1] == "fdsink"


class TestLoading:

    def test_env_file_does_not_override_environment(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("# comment\nSERVER_URL=ws://from-file:1\nPORT=9000\n")
        monkeypatch.setenv("SERVER_URL", "ws://from-env:2")
        monkeypatch.delenv("PORT", raising=False)

        assert load_env_file(str(env_file)) is True
        config = AppConfig.from_env()

        assert config.server_url == "ws://from-env:2"
        assert config.port == 9000

    def test_missing_env_file(self, tmp_path):
        assert load_env_file(str(tmp_path / "absent.env")) is False

    def test_load_config_raises_with_every_problem(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("SERVER_URL", "tcp://nowhere")
        monkeypatch.setenv("PORT", "0")

        with pytest.raises(ConfigurationError) as excinfo:
            load_config()

        assert "SERVER_URL" in str(excinfo.value)
        assert "Port" in str(excinfo.value)

    def test_get_config_caches(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(config_module, "app_config", None)

        first = config_module.get_config()

        assert config_module.get_config() is first
