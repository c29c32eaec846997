"""
OpenCV capture adapter.

The [settings] section of the manifest is passed through as-is:
  backend       v4l2 | dshow | msmf | avfoundation | gstreamer | ffmpeg | any
  device        index ("0") or backend-specific path/name ("/dev/video0")
  resolution    WxH, e.g. 1280x720
  framerate     requested device fps
  pixel_format  ffmpeg-style name (yuyv422, mjpeg) or a raw FOURCC (MJPG)
"""
import cv2

from snapshot.adapters.camera.base import CameraAdapter
from snapshot.orchestrator.contracts import CaptureSettings, Frame
from snapshot.orchestrator.errors import DeviceOpenFailure, FrameFatalFailure, FrameTransientFailure

DEFAULT_RESOLUTION = "640x480"
DEFAULT_FRAMERATE = 1.0

BACKENDS = {
    "": cv2.CAP_ANY,
    "any": cv2.CAP_ANY,
    "v4l2": cv2.CAP_V4L2,
    "video4linux2": cv2.CAP_V4L2,
    "dshow": cv2.CAP_DSHOW,
    "msmf": cv2.CAP_MSMF,
    "avfoundation": cv2.CAP_AVFOUNDATION,
    "gstreamer": cv2.CAP_GSTREAMER,
    "ffmpeg": cv2.CAP_FFMPEG,
}

PIXEL_FORMATS = {
    "yuyv422": "YUYV",
    "yuyv": "YUYV",
    "mjpeg": "MJPG",
    "mjpg": "MJPG",
    "h264": "H264",
    "nv12": "NV12",
    "uyvy422": "UYVY",
}


def parse_resolution(value: str) -> tuple[int, int]:
    value = value.strip() or DEFAULT_RESOLUTION
    parts = value.lower().split("x")
    hint = "use the format AAAxBBB, eg. 640x480"
    if len(parts) != 2:
        raise DeviceOpenFailure(f"{value} is not a valid resolution; {hint}")
    dims = []
    for part in parts:
        try:
            n = int(part)
        except ValueError:
            raise DeviceOpenFailure(f"{part} in {value} is not a valid resolution; {hint}") from None
        if n <= 0:
            raise DeviceOpenFailure(f"{part} in {value} is not a valid resolution; {hint}")
        dims.append(n)
    return dims[0], dims[1]


def parse_framerate(value: str) -> float:
    if not value.strip():
        return DEFAULT_FRAMERATE
    try:
        fps = float(value)
    except ValueError:
        raise DeviceOpenFailure(f"{value} is not a valid framerate") from None
    if fps <= 0:
        raise DeviceOpenFailure(f"{value} is not a valid framerate")
    return fps


def resolve_fourcc(pixel_format: str) -> str | None:
    token = pixel_format.strip()
    if not token:
        return None
    mapped = PIXEL_FORMATS.get(token.lower())
    if mapped:
        return mapped
    if len(token) == 4:
        return token.upper()
    return None


class CV2Camera(CameraAdapter):
    def __init__(self, settings: CaptureSettings, status_store):
        self.settings = settings
        self.status = status_store
        self._cap = None

    def _device_arg(self):
        device = self.settings.device.strip()
        if device == "" or device.isdigit():
            return int(device or "0")
        return device

    def open(self):
        backend_name = self.settings.backend.strip().lower()
        if backend_name not in BACKENDS:
            raise DeviceOpenFailure(
                f"unknown backend '{self.settings.backend}'; expected one of {sorted(k for k in BACKENDS if k)}"
            )
        width, height = parse_resolution(self.settings.resolution)
        fps = parse_framerate(self.settings.framerate)
        device = self._device_arg()

        self.status.log(f"cv2_camera: opening {device!r} backend={backend_name or 'any'} {width}x{height}@{fps:g}")
        try:
            cap = cv2.VideoCapture(device, BACKENDS[backend_name])
        except cv2.error as e:
            raise DeviceOpenFailure(f"cv2_camera: failed to open device {device!r}: {e}") from e
        if not cap.isOpened():
            cap.release()
            raise DeviceOpenFailure(f"cv2_camera: failed to open device {device!r}")

        fourcc = resolve_fourcc(self.settings.pixel_format)
        if fourcc:
            cap.set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*fourcc))
        elif self.settings.pixel_format:
            self.status.warn(f"cv2_camera: ignoring unrecognised pixel_format '{self.settings.pixel_format}'")
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        cap.set(cv2.CAP_PROP_FPS, fps)

        actual_w = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        actual_h = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        if (actual_w, actual_h) != (width, height):
            self.status.warn(f"cv2_camera: device negotiated {actual_w}x{actual_h} instead of {width}x{height}")
        self._cap = cap

    def next_frame(self) -> Frame:
        if self._cap is None or not self._cap.isOpened():
            raise FrameFatalFailure("device state is invalid; device closed or never opened")
        try:
            ret, frame = self._cap.read()
        except cv2.error as e:
            raise FrameTransientFailure(f"cv2_camera: read error: {e}") from e
        if not ret or frame is None:
            if not self._cap.isOpened():
                raise FrameFatalFailure("cv2_camera: device no longer available")
            raise FrameTransientFailure("cv2_camera: frame capture failed")
        return Frame.from_array(frame)

    def close(self):
        if self._cap is not None:
            self._cap.release()
            self._cap = None
