"""Tests for EncoderSupervisor using the Python interpreter as a fake capture command."""

import asyncio
import shlex
import sys

import pytest

from cam_uplink.camera.camera_exceptions import EncoderStartError
from cam_uplink.camera.encoder_supervisor import EncoderSupervisor
from cam_uplink.camera.streaming.shared_state import StreamProfile


PYTHON = shlex.quote(sys.executable)

# Writes three frames whose body names the requested profile, then exits
EMIT_FRAMES = (
    PYTHON + ' -c "import sys; body = sys.argv[1].encode(); '
    "sys.stdout.buffer.write((b'\\xff\\xd8' + body + b'\\xff\\xd9') * 3); "
    'sys.stdout.flush()" {width}x{height}q{quality}'
)

SLEEPER = PYTHON + ' -c "import time; time.sleep(30)" {width} {height} {quality}'


@pytest.fixture
def make_supervisor(make_config, frame_queue, telemetry, stats):
    def factory(command: str) -> EncoderSupervisor:
        return EncoderSupervisor(make_config(capture_command=command), frame_queue, telemetry, stats)
    return factory


class TestEncoderSupervisor:

    @pytest.mark.asyncio
    async def test_start_feeds_frames_into_queue(self, make_supervisor, frame_queue, stats):
        supervisor = make_supervisor(EMIT_FRAMES)

        await supervisor.start(StreamProfile(640, 480, 36))
        frames = [await asyncio.wait_for(frame_queue.get(), timeout=10) for _ in range(3)]
        await supervisor.stop()

        assert all(frame.data == b"\xff\xd8640x480q36\xff\xd9" for frame in frames)
        assert stats.encoder_starts == 1
        assert supervisor.running_profile == StreamProfile(640, 480, 36)

    @pytest.mark.asyncio
    async def test_sequence_continues_across_restarts(self, make_supervisor, frame_queue):
        supervisor = make_supervisor(EMIT_FRAMES)

        await supervisor.start(StreamProfile(1280, 720, 70))
        first = [await asyncio.wait_for(frame_queue.get(), timeout=10) for _ in range(3)]
        await supervisor.restart(StreamProfile(640, 480, 40))
        second = [await asyncio.wait_for(frame_queue.get(), timeout=10) for _ in range(3)]
        await supervisor.stop()

        assert [f.sequence for f in first + second] == [1, 2, 3, 4, 5, 6]
        assert second[0].data == b"\xff\xd8640x480q40\xff\xd9"

    @pytest.mark.asyncio
    async def test_restart_replaces_process(self, make_supervisor, stats):
        supervisor = make_supervisor(SLEEPER)

        await supervisor.start(StreamProfile(1280, 720, 70))
        first_pid = supervisor.pid
        assert supervisor.is_running

        await supervisor.restart(StreamProfile(640, 480, 40))

        assert supervisor.is_running
        assert supervisor.pid != first_pid
        assert supervisor.running_profile == StreamProfile(640, 480, 40)
        assert stats.encoder_starts == 2

        await supervisor.stop()
        assert not supervisor.is_running
        assert supervisor.pid is None

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self, make_supervisor):
        supervisor = make_supervisor("definitely-not-a-capture-binary {width} {height} {quality}")

        with pytest.raises(EncoderStartError):
            await supervisor.start(StreamProfile(1280, 720, 70))

        assert not supervisor.is_running

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self, make_supervisor):
        supervisor = make_supervisor(SLEEPER)

        await supervisor.stop()

        assert supervisor.pid is None
