"""
Mock camera: replays image files from a folder, or synthesises frames.

backend = "mock" in the manifest selects it. device names the folder to
replay (sorted by filename); leave it empty to get generated gradient frames
at the configured resolution. Set mock_repeat = "1" to loop the folder;
otherwise running out of frames looks like the device going away.

Older manifests select it with use_mock = "1" instead; their folder and loop
keys (use_mock_folder, use_mock_repeat_frames) are read as well.
"""
import cv2
import numpy as np

from snapshot.adapters.camera.base import CameraAdapter
from snapshot.adapters.camera.cv2_camera import parse_resolution
from snapshot.orchestrator.contracts import CaptureSettings, Frame
from snapshot.orchestrator.errors import ConfigInvalid, DeviceOpenFailure, FrameFatalFailure, FrameTransientFailure
from snapshot.resources.resource_folder import enumerate_files, require_existing_folder

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".bmp"}


def mock_folder(settings: CaptureSettings) -> str:
    if settings.extra.get("use_mock_folder"):
        return str(settings.extra["use_mock_folder"])
    if settings.backend.strip().lower() == "mock":
        return settings.device
    return ""


class MockCamera(CameraAdapter):
    def __init__(self, settings: CaptureSettings, status_store):
        self.settings = settings
        self.status = status_store
        self.frames = []
        self.repeat = settings.flag("mock_repeat") or settings.flag("use_mock_repeat_frames")
        self.folder = mock_folder(settings)
        self.offset = -1
        self.size = (0, 0)
        self._open = False

    def open(self):
        if self.folder:
            try:
                folder = require_existing_folder(self.folder)
            except ConfigInvalid as e:
                raise DeviceOpenFailure(f"mock_camera: {e}") from e
            self.frames = [p for p in enumerate_files(folder) if p.suffix.lower() in IMAGE_SUFFIXES]
            if not self.frames:
                raise DeviceOpenFailure(f"mock_camera: no frames in {folder}")
            self.status.log(f"mock_camera: replaying {len(self.frames)} frames from {folder} repeat={self.repeat}")
        else:
            self.size = parse_resolution(self.settings.resolution)
            self.status.log(f"mock_camera: generating {self.size[0]}x{self.size[1]} frames")
        self.offset = -1
        self._open = True

    def next_frame(self) -> Frame:
        if not self._open:
            raise FrameFatalFailure("mock_camera: device not open")
        self.offset += 1
        if not self.frames:
            return Frame.from_array(self._generate(self.offset))

        if self.offset >= len(self.frames):
            if not self.repeat:
                raise FrameFatalFailure("mock_camera: ran out of mock frames")
            self.offset = 0
        path = self.frames[self.offset]
        img = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if img is None:
            raise FrameTransientFailure(f"mock_camera: unable to decode {path.name}")
        return Frame.from_array(img)

    def _generate(self, n: int) -> np.ndarray:
        w, h = self.size
        ramp = np.linspace(0, 255, w, dtype=np.uint8)
        img = np.empty((h, w, 3), dtype=np.uint8)
        img[:, :, 0] = ramp
        img[:, :, 1] = np.uint8((n * 17) % 256)
        img[:, :, 2] = ramp[::-1]
        return img

    def close(self):
        self._open = False
