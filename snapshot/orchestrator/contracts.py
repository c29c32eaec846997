from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Literal, Mapping, Optional

import numpy as np

from snapshot.orchestrator.errors import ConfigInvalid

NumberingPolicy = Literal["restart", "continue"]
ImageFormat = Literal["png", "jpg"]


class CaptureState(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class CaptureSettings:
    output_folder: Path
    log_folder: Path
    lock_file: Path
    sample_interval: int        # ms between frame captures
    sample_idle: int            # ms polling granularity while waiting
    backend: str = ""
    resolution: str = ""
    framerate: str = ""
    device: str = ""
    pixel_format: str = ""
    pull_timeout: int = 5000    # ms before a pending device read counts as a dropped frame
    max_consecutive_failures: int = 0   # 0 = never escalate transient failures
    numbering: NumberingPolicy = "restart"
    sequence_origin: int = 0
    image_format: ImageFormat = "png"
    # Extra backend-specific keys from the [settings] section, e.g. mock_repeat
    extra: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if self.sample_idle <= 0:
            raise ConfigInvalid(f"sample_idle must be > 0, got {self.sample_idle}")
        if self.sample_interval < self.sample_idle:
            raise ConfigInvalid(
                f"sample_interval ({self.sample_interval}) must be >= sample_idle ({self.sample_idle})"
            )
        if self.pull_timeout <= 0:
            raise ConfigInvalid(f"pull_timeout must be > 0, got {self.pull_timeout}")
        if self.max_consecutive_failures < 0:
            raise ConfigInvalid("max_consecutive_failures must be >= 0")
        if self.sequence_origin < 0:
            raise ConfigInvalid("sequence_origin must be >= 0")
        if self.numbering not in ("restart", "continue"):
            raise ConfigInvalid(f"numbering must be 'restart' or 'continue', got {self.numbering!r}")
        if self.image_format not in ("png", "jpg"):
            raise ConfigInvalid(f"image_format must be 'png' or 'jpg', got {self.image_format!r}")

    def flag(self, key: str) -> bool:
        """True when an extra setting is set to 1 / yes / true."""
        return str(self.extra.get(key, "")).lower() in ("1", "yes", "true")


@dataclass
class Frame:
    pixels: np.ndarray          # HxWx3 BGR, as OpenCV hands it out
    width: int
    height: int
    pixel_format: str = "bgr24"

    @classmethod
    def from_array(cls, pixels: np.ndarray, pixel_format: str = "bgr24") -> "Frame":
        h, w = pixels.shape[:2]
        return cls(pixels=pixels, width=w, height=h, pixel_format=pixel_format)


@dataclass
class CaptureResult:
    ok: bool
    state: CaptureState
    frames_written: int
    duration_ms: int
    transient_failures: int = 0
    write_failures: int = 0
    error_code: Optional[str] = None
    error: Optional[str] = None
    last_frame: Optional[Path] = None
