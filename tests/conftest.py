"""Shared pytest fixtures: scripted cameras, a fake clock and settings factories."""

import threading
from pathlib import Path

import numpy as np
import pytest

from snapshot.adapters.camera.base import CameraAdapter
from snapshot.orchestrator.contracts import CaptureSettings, Frame
from snapshot.orchestrator.errors import FrameFatalFailure, FrameTimeout, FrameTransientFailure
from snapshot.services.status_store import StatusStore


def pytest_addoption(parser):
    parser.addoption(
        "--run-hardware",
        action="store_true",
        default=False,
        help="Run tests that require a physical capture device",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-hardware"):
        return
    skip_hardware = pytest.mark.skip(reason="Need --run-hardware option to run")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hardware)


class FakeClock:
    """Monotonic clock that only moves when sleep() is called (or advance())."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []
        self.on_sleep = None

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds
        if self.on_sleep is not None:
            self.on_sleep(self)


class ScriptedCamera(CameraAdapter):
    """Plays back a script of pull outcomes: "frame", "transient", "timeout", "fatal".

    Once the script runs out every pull returns a frame. on_pull(n) is called
    with the 1-based pull number before the outcome is produced.
    """

    def __init__(self, script=(), on_pull=None, open_error: Exception | None = None, size=(32, 24)):
        self.script = list(script)
        self.on_pull = on_pull
        self.open_error = open_error
        self.size = size
        self.pulls = 0
        self.opened = False
        self.closed = False
        self.in_flight = 0
        self.max_in_flight = 0
        self._guard = threading.Lock()

    def open(self):
        if self.open_error is not None:
            raise self.open_error
        self.opened = True

    def next_frame(self) -> Frame:
        with self._guard:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.pulls += 1
            n = self.pulls
            if self.on_pull is not None:
                self.on_pull(n)
            outcome = self.script[n - 1] if n <= len(self.script) else "frame"
            if outcome == "transient":
                raise FrameTransientFailure(f"dropped frame on pull {n}")
            if outcome == "timeout":
                raise FrameTimeout(f"pull {n} timed out")
            if outcome == "fatal":
                raise FrameFatalFailure("device unplugged")
            w, h = self.size
            return Frame.from_array(np.full((h, w, 3), n % 256, dtype=np.uint8))
        finally:
            with self._guard:
                self.in_flight -= 1

    def close(self):
        self.closed = True


@pytest.fixture
def status() -> StatusStore:
    return StatusStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_settings(tmp_path: Path):
    def _make(**overrides) -> CaptureSettings:
        out = tmp_path / "frames"
        out.mkdir(exist_ok=True)
        values = dict(
            output_folder=out,
            log_folder=tmp_path / "logs",
            lock_file=tmp_path / "capture.lock",
            sample_interval=5000,
            sample_idle=100,
            backend="mock",
            resolution="32x24",
            framerate="1",
            device="",
            pixel_format="",
        )
        values.update(overrides)
        return CaptureSettings(**values)
    return _make


@pytest.fixture
def write_manifest(tmp_path: Path):
    def _write(config_extra: str = "", settings_extra: str = "", **settings) -> Path:
        s = dict(backend="mock", resolution="32x24", framerate="1", device="", pixel_format="")
        s.update(settings)
        settings_lines = "\n".join(f'{k} = "{v}"' for k, v in s.items())
        text = f"""
[config]
output_folder = "{(tmp_path / 'frames').as_posix()}"
log_folder = "{(tmp_path / 'logs').as_posix()}"
lock_file = "{(tmp_path / 'capture.lock').as_posix()}"
sample_interval = 20
sample_idle = 10
{config_extra}

[settings]
{settings_lines}
{settings_extra}

[export]
export_file = "{(tmp_path / 'out.webm').as_posix()}"
export_framerate = 12
"""
        path = tmp_path / "manifest.toml"
        path.write_text(text, encoding="utf-8")
        return path
    return _write
