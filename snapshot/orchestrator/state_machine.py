import threading
import time
from typing import Callable, Optional

from snapshot.adapters.camera.base import CameraAdapter
from snapshot.adapters.sink.image_sink import ImageSink
from snapshot.orchestrator import errors
from snapshot.orchestrator.contracts import CaptureResult, CaptureSettings, CaptureState, Frame
from snapshot.orchestrator.errors import (
    FrameFatalFailure, FrameTimeout, FrameTransientFailure, FrameWriteFailure,
    LockReleaseFailure, SnapshotError,
)
from snapshot.resources.lock_file import LockFile


class DeviceRead:
    """One camera.next_frame() call running on a daemon thread.

    A read that never returns is abandoned rather than joined, so a wedged
    device cannot keep the process alive after the run has finished.
    """

    def __init__(self, read: Callable[[], Frame]):
        self._read = read
        self._done = threading.Event()
        self.frame: Optional[Frame] = None
        self.error: Optional[Exception] = None
        self._thread = threading.Thread(target=self._run, name="device-pull", daemon=True)
        self._thread.start()

    def _run(self):
        try:
            self.frame = self._read()
        except Exception as e:
            self.error = e
        finally:
            self._done.set()

    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: float) -> bool:
        return self._done.wait(timeout)

    def result(self) -> Frame:
        if self.error is not None:
            raise self.error
        return self.frame


class CaptureScheduler:
    """Runs one capture session: lock -> open device -> sample loop -> cleanup.

    The loop keeps going for as long as the lock file exists. Dropped frames
    and failed writes are logged and skipped; only a lost device ends the run
    early. run() never raises, it reports through CaptureResult.
    """

    def __init__(
        self,
        settings: CaptureSettings,
        camera: CameraAdapter,
        sink: ImageSink,
        status_store,
        lock: Optional[LockFile] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.camera = camera
        self.sink = sink
        self.status = status_store
        self.lock = lock or LockFile(settings.lock_file)
        self._clock = clock
        self._sleep = sleep
        self._pending: Optional[DeviceRead] = None
        self._consecutive_failures = 0
        self.write_failures = 0

    @classmethod
    def from_settings(cls, settings: CaptureSettings, status_store, **kwargs) -> "CaptureScheduler":
        from snapshot.adapters.camera.factory import create_camera
        camera = create_camera(settings, status_store)
        sink = ImageSink.for_settings(settings, status_store)
        return cls(settings, camera, sink, status_store, **kwargs)

    def run(self) -> CaptureResult:
        t0 = self._clock()
        self.status.set_state(CaptureState.STARTING)
        s = self.settings
        self.status.log(
            f"capture start: interval={s.sample_interval}ms idle={s.sample_idle}ms "
            f"output={s.output_folder} lock={s.lock_file}"
        )

        try:
            self.lock.acquire()
        except errors.LockAlreadyHeld as e:
            # Not ours, so never released here
            return self._failed(e, t0)

        failure: Optional[Exception] = None
        try:
            self.camera.open()
            self.status.set_state(CaptureState.RUNNING)
            self._run_loop()
            self.status.set_state(CaptureState.DRAINING)
        except SnapshotError as e:
            failure = e
        except Exception as e:
            self.status.error(f"unexpected {type(e).__name__}: {e}")
            failure = e
        finally:
            self._shutdown()

        if failure is not None:
            return self._failed(failure, t0)

        self.status.set_state(CaptureState.STOPPED)
        dt = self._elapsed_ms(t0)
        self.status.log(f"capture stopped: {self.status.frames_written} frames in {dt}ms")
        return self._result(ok=True, t0=t0)

    # -- sample loop ---------------------------------------------------------

    def _run_loop(self):
        while self.lock.is_still_held():
            cycle_start = self._clock()
            self._sample_once()
            if not self._wait_for_next_tick(cycle_start):
                break
        self.status.log("lock removed, halting capture")

    def _sample_once(self):
        try:
            frame = self._pull()
        except FrameTransientFailure as e:
            self.status.transient_failures += 1
            self._consecutive_failures += 1
            self.status.warn(f"frame dropped ({self._consecutive_failures} in a row): {e}")
            limit = self.settings.max_consecutive_failures
            if limit and self._consecutive_failures >= limit:
                raise FrameFatalFailure(f"{self._consecutive_failures} consecutive frame failures, giving up") from e
            return
        self._consecutive_failures = 0

        try:
            path = self.sink.save(frame)
        except FrameWriteFailure as e:
            self.write_failures += 1
            self.status.warn(f"frame lost: {e}")
            return
        self.status.frames_written += 1
        self.status.last_frame = path
        self.status.log(f"captured: {frame.width}x{frame.height} image -> {path.name}")

    def _wait_for_next_tick(self, cycle_start: float) -> bool:
        """Sleep out the rest of the interval in sample_idle steps.

        Returns False as soon as the lock disappears. An overrun cycle returns
        True straight away; missed ticks are not made up.
        """
        interval = self.settings.sample_interval / 1000.0
        idle = self.settings.sample_idle / 1000.0
        while True:
            remaining = interval - (self._clock() - cycle_start)
            if remaining <= 0:
                return True
            if not self.lock.is_still_held():
                return False
            self._sleep(min(idle, remaining))

    # -- device pull ---------------------------------------------------------

    def _pull(self) -> Frame:
        if self._pending is not None:
            if not self._pending.done():
                raise FrameTimeout("previous device read still pending")
            late, self._pending = self._pending, None
            if late.error is None:
                self.status.log("discarding late frame from a timed out read")
            elif isinstance(late.error, FrameTransientFailure):
                self.status.log(f"discarding late failure from a timed out read: {late.error}")
            else:
                raise late.error

        read = DeviceRead(self.camera.next_frame)
        if not read.wait(self.settings.pull_timeout / 1000.0):
            self._pending = read
            raise FrameTimeout(f"device read exceeded {self.settings.pull_timeout}ms")
        return read.result()

    # -- teardown ------------------------------------------------------------

    def _shutdown(self):
        if self._pending is not None and not self._pending.done():
            # closing a handle mid-read is undefined for most backends
            if not self._pending.wait(self.settings.pull_timeout / 1000.0):
                self.status.warn("device read still stalled at shutdown, abandoning it")
        try:
            self.camera.close()
        except Exception as e:
            self.status.warn(f"camera close failed: {type(e).__name__}: {e}")
        self._pending = None
        try:
            self.lock.release()
        except LockReleaseFailure as e:
            self.status.warn(str(e))

    def _failed(self, e: Exception, t0: float) -> CaptureResult:
        code = getattr(e, "code", errors.ERR_UNKNOWN)
        self.status.error(f"capture failed [{code}]: {e}")
        self.status.set_state(CaptureState.FAILED)
        return self._result(ok=False, t0=t0, error_code=code, error=str(e))

    def _result(self, ok: bool, t0: float, error_code: Optional[str] = None, error: Optional[str] = None) -> CaptureResult:
        return CaptureResult(
            ok=ok,
            state=self.status.state,
            frames_written=self.status.frames_written,
            duration_ms=self._elapsed_ms(t0),
            transient_failures=self.status.transient_failures,
            write_failures=self.write_failures,
            error_code=error_code,
            error=error,
            last_frame=self.status.last_frame,
        )

    def _elapsed_ms(self, t0: float) -> int:
        return int((self._clock() - t0) * 1000)
