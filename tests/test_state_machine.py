"""Tests for the capture scheduler: lifecycle, failure policy and lock-file cancellation."""

import os
import subprocess
import sys
import threading
import time
from pathlib import Path

import pytest

from snapshot.adapters.sink.image_sink import ImageSink
from snapshot.orchestrator import errors
from snapshot.orchestrator.contracts import CaptureState
from snapshot.orchestrator.errors import DeviceOpenFailure, FrameWriteFailure
from snapshot.orchestrator.state_machine import CaptureScheduler

from conftest import ScriptedCamera

REPO_ROOT = Path(__file__).resolve().parents[1]


def _frames(settings):
    return sorted(p.name for p in settings.output_folder.glob("*.png"))


def _scheduler(settings, camera, status, clock=None, sink=None):
    sink = sink or ImageSink.for_settings(settings, status)
    kwargs = {}
    if clock is not None:
        kwargs = dict(clock=clock, sleep=clock.sleep)
    return CaptureScheduler(settings, camera, sink, status, **kwargs)


def _unlock_on_pull(settings, n):
    def hook(pull):
        if pull == n:
            settings.lock_file.unlink()
    return hook


class TestStartup:

    def test_lock_created_while_running(self, make_settings, status, clock):
        settings = make_settings()
        seen = []

        def hook(pull):
            seen.append(settings.lock_file.exists())
            settings.lock_file.unlink()

        result = _scheduler(settings, ScriptedCamera(on_pull=hook), status, clock).run()
        assert seen == [True]
        assert result.ok

    def test_existing_lock_fails_without_frames(self, make_settings, status, clock):
        settings = make_settings()
        settings.lock_file.write_text("held elsewhere")
        camera = ScriptedCamera()

        result = _scheduler(settings, camera, status, clock).run()

        assert not result.ok
        assert result.state == CaptureState.FAILED
        assert result.error_code == errors.ERR_LOCKED
        assert errors.exit_code_for(result.error_code) == errors.EXIT_LOCKED
        assert camera.opened is False
        assert camera.pulls == 0
        assert _frames(settings) == []
        # someone else's lock stays put
        assert settings.lock_file.read_text() == "held elsewhere"

    def test_device_open_failure_releases_lock(self, make_settings, status, clock):
        settings = make_settings()
        camera = ScriptedCamera(open_error=DeviceOpenFailure("no such device"))

        result = _scheduler(settings, camera, status, clock).run()

        assert result.state == CaptureState.FAILED
        assert result.error_code == errors.ERR_DEVICE_OPEN
        assert errors.exit_code_for(result.error_code) == errors.EXIT_DEVICE
        assert errors.EXIT_DEVICE != errors.EXIT_LOCKED
        assert not settings.lock_file.exists()
        assert camera.pulls == 0


class TestSampleLoop:

    def test_three_frames_then_lock_removed(self, make_settings, status, clock):
        settings = make_settings(sample_interval=5000, sample_idle=100)
        camera = ScriptedCamera(on_pull=_unlock_on_pull(settings, 3))

        result = _scheduler(settings, camera, status, clock).run()

        assert result.ok
        assert result.state == CaptureState.STOPPED
        assert result.frames_written == 3
        assert _frames(settings) == ["00000000.png", "00000001.png", "00000002.png"]
        assert camera.pulls == 3
        assert camera.closed
        assert not settings.lock_file.exists()

    def test_n_pulls_make_n_gap_free_files(self, make_settings, status, clock):
        settings = make_settings(sample_interval=200, sample_idle=50)
        camera = ScriptedCamera(on_pull=_unlock_on_pull(settings, 7))

        result = _scheduler(settings, camera, status, clock).run()

        assert result.frames_written == 7
        assert _frames(settings) == [f"{n:08d}.png" for n in range(7)]

    def test_sleeps_in_idle_steps_between_ticks(self, make_settings, status, clock):
        settings = make_settings(sample_interval=1000, sample_idle=300)
        camera = ScriptedCamera(on_pull=_unlock_on_pull(settings, 2))

        _scheduler(settings, camera, status, clock).run()

        # first cycle waits out 1000ms as 300+300+300+100
        assert clock.sleeps[:4] == pytest.approx([0.3, 0.3, 0.3, 0.1])
        assert max(clock.sleeps) <= 0.3

    def test_overrun_cycle_does_not_sleep(self, make_settings, status, clock):
        settings = make_settings(sample_interval=5000, sample_idle=100)

        def hook(pull):
            clock.advance(6.0)  # slower than the interval
            if pull == 3:
                settings.lock_file.unlink()

        result = _scheduler(settings, ScriptedCamera(on_pull=hook), status, clock).run()

        assert result.frames_written == 3
        assert clock.sleeps == []

    def test_lock_removal_observed_within_idle(self, make_settings, status, clock):
        settings = make_settings(sample_interval=5000, sample_idle=100)
        camera = ScriptedCamera()
        start = clock.now
        removed_at = []

        def on_sleep(c):
            if not removed_at and c.now - start >= 7.25:
                settings.lock_file.unlink()
                removed_at.append(c.now)

        clock.on_sleep = on_sleep
        result = _scheduler(settings, camera, status, clock).run()

        assert result.ok
        assert removed_at
        assert clock.now - removed_at[0] <= 0.1 + 1e-9
        # pulls at t=0 and t=5; none after the removal at 7.25
        assert camera.pulls == 2
        assert result.frames_written == 2


class TestFailurePolicy:

    def test_transient_failure_skips_without_consuming_number(self, make_settings, status, clock):
        settings = make_settings()
        camera = ScriptedCamera(["frame", "transient", "frame"], on_pull=_unlock_on_pull(settings, 3))

        result = _scheduler(settings, camera, status, clock).run()

        assert result.ok
        assert result.transient_failures == 1
        assert _frames(settings) == ["00000000.png", "00000001.png"]

    def test_timeout_on_call_two_of_five(self, make_settings, status, clock):
        settings = make_settings(sample_interval=5000, sample_idle=100)
        camera = ScriptedCamera(
            ["frame", "timeout", "frame", "frame", "frame"],
            on_pull=_unlock_on_pull(settings, 5),
        )

        result = _scheduler(settings, camera, status, clock).run()

        assert result.ok
        assert result.state == CaptureState.STOPPED
        assert camera.pulls == 5
        assert result.frames_written == 4
        assert _frames(settings) == [f"{n:08d}.png" for n in range(4)]
        assert not settings.lock_file.exists()

    def test_fatal_failure_ends_run_and_releases_lock(self, make_settings, status, clock):
        settings = make_settings()
        camera = ScriptedCamera(["frame", "frame", "fatal"])

        result = _scheduler(settings, camera, status, clock).run()

        assert not result.ok
        assert result.state == CaptureState.FAILED
        assert result.error_code == errors.ERR_DEVICE_LOST
        assert errors.exit_code_for(result.error_code) != 0
        assert result.frames_written == 2
        assert camera.closed
        assert not settings.lock_file.exists()
        assert status.last_error is not None

    def test_consecutive_failures_escalate_when_limited(self, make_settings, status, clock):
        settings = make_settings(max_consecutive_failures=3)
        camera = ScriptedCamera(["frame", "transient", "frame", "transient", "transient", "transient"])

        result = _scheduler(settings, camera, status, clock).run()

        assert result.error_code == errors.ERR_DEVICE_LOST
        assert camera.pulls == 6
        assert result.frames_written == 2
        assert not settings.lock_file.exists()

    def test_unlimited_transient_failures_never_escalate(self, make_settings, status, clock):
        settings = make_settings(max_consecutive_failures=0)
        camera = ScriptedCamera(["transient"] * 20, on_pull=_unlock_on_pull(settings, 21))

        result = _scheduler(settings, camera, status, clock).run()

        assert result.ok
        assert result.transient_failures == 20
        assert result.frames_written == 1

    def test_write_failure_is_absorbed(self, make_settings, status, clock):
        settings = make_settings()

        class FlakySink(ImageSink):
            calls = 0

            def write(self, frame, sequence_number):
                FlakySink.calls += 1
                if FlakySink.calls == 1:
                    raise FrameWriteFailure("disk hiccup")
                return super().write(frame, sequence_number)

        sink = FlakySink(settings.output_folder, status)
        camera = ScriptedCamera(on_pull=_unlock_on_pull(settings, 3))

        result = _scheduler(settings, camera, status, clock, sink=sink).run()

        assert result.ok
        assert result.write_failures == 1
        assert _frames(settings) == ["00000000.png", "00000001.png"]

    def test_unexpected_exception_still_cleans_up(self, make_settings, status, clock):
        settings = make_settings()

        def hook(pull):
            raise RuntimeError("driver bug")

        camera = ScriptedCamera(on_pull=hook)
        result = _scheduler(settings, camera, status, clock).run()

        assert result.state == CaptureState.FAILED
        assert result.error_code == errors.ERR_UNKNOWN
        assert camera.closed
        assert not settings.lock_file.exists()


class TestPullTimeout:

    def test_stalled_read_is_bounded_and_never_overlapped(self, make_settings, status):
        settings = make_settings(sample_interval=20, sample_idle=10, pull_timeout=50)
        camera = ScriptedCamera(on_pull=_unlock_on_pull(settings, 3))
        gate = threading.Event()
        original = camera.next_frame
        active = []
        overlaps = []

        def stalling_pull():
            active.append(1)
            if len(active) > 1:
                overlaps.append(len(active))
            try:
                if camera.pulls == 0:
                    gate.wait(timeout=5)
                return original()
            finally:
                active.pop()

        camera.next_frame = stalling_pull
        threading.Timer(0.3, gate.set).start()

        started = time.monotonic()
        result = _scheduler(settings, camera, status).run()
        elapsed = time.monotonic() - started

        assert result.ok
        assert result.transient_failures >= 2
        assert overlaps == []
        # the stalled first read finished late and its frame was discarded
        assert camera.pulls == 3
        assert result.frames_written == 2
        assert elapsed < 3

    def test_late_unexpected_error_fails_the_run(self, make_settings, status):
        settings = make_settings(sample_interval=20, sample_idle=10, pull_timeout=50)
        gate = threading.Event()
        camera = ScriptedCamera()
        original = camera.next_frame

        def failing_late():
            if camera.pulls == 0:
                gate.wait(timeout=5)
                camera.pulls += 1
                raise RuntimeError("driver bug")
            return original()

        camera.next_frame = failing_late
        threading.Timer(0.2, gate.set).start()
        # backstop so a regression cannot loop forever
        backstop = threading.Timer(5, lambda: settings.lock_file.unlink(missing_ok=True))
        backstop.daemon = True
        backstop.start()

        result = _scheduler(settings, camera, status).run()
        backstop.cancel()

        assert result.state == CaptureState.FAILED
        assert result.error_code == errors.ERR_UNKNOWN
        assert "driver bug" in result.error
        assert camera.closed
        assert not settings.lock_file.exists()


WEDGED_RUN = """
import sys
import threading
from pathlib import Path

from snapshot.adapters.camera.base import CameraAdapter
from snapshot.adapters.sink.image_sink import ImageSink
from snapshot.orchestrator.contracts import CaptureSettings
from snapshot.orchestrator.state_machine import CaptureScheduler
from snapshot.services.status_store import StatusStore


class WedgedCamera(CameraAdapter):
    def open(self):
        pass

    def next_frame(self):
        threading.Event().wait()

    def close(self):
        pass


root = Path(sys.argv[1])
settings = CaptureSettings(
    output_folder=root / "frames", log_folder=root / "logs", lock_file=root / "capture.lock",
    sample_interval=50, sample_idle=10, pull_timeout=100,
)
status = StatusStore()
threading.Timer(0.5, (root / "capture.lock").unlink).start()
result = CaptureScheduler(settings, WedgedCamera(), ImageSink(settings.output_folder, status), status).run()
print(result.state.value, flush=True)
"""


class TestWedgedDevice:

    def test_process_exits_after_clean_stop(self, tmp_path):
        (tmp_path / "frames").mkdir()
        env = dict(os.environ, PYTHONPATH=str(REPO_ROOT))
        proc = subprocess.run(
            [sys.executable, "-c", WEDGED_RUN, str(tmp_path)],
            cwd=REPO_ROOT, env=env, capture_output=True, text=True, timeout=20,
        )

        assert proc.returncode == 0, proc.stderr
        assert proc.stdout.strip() == "stopped"
        assert not (tmp_path / "capture.lock").exists()
