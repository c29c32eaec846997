from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Literal, Optional


def _as_str(v):
    # TOML lets people write framerate = 30; the device layer wants strings
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


class ManifestConfig(BaseModel):
    output_folder: str
    log_folder: str
    lock_file: str
    sample_interval: int = Field(gt=0)      # ms between frames
    sample_idle: int = Field(gt=0)          # ms between lock checks while waiting
    pull_timeout: int = Field(default=5000, gt=0)
    max_consecutive_failures: int = Field(default=0, ge=0)
    numbering: Literal["restart", "continue"] = "restart"
    sequence_origin: int = Field(default=0, ge=0)
    image_format: Literal["png", "jpg"] = "png"


class ManifestSettings(BaseModel):
    # Device parameters are handed to the backend untouched; extra keys are kept
    model_config = ConfigDict(extra="allow")

    backend: str
    resolution: str
    framerate: str
    device: str
    pixel_format: str

    @field_validator("backend", "resolution", "framerate", "device", "pixel_format", mode="before")
    @classmethod
    def _stringify(cls, v):
        return _as_str(v)

    def extras(self) -> dict[str, str]:
        return {k: str(_as_str(v)) for k, v in (self.model_extra or {}).items()}


class ManifestExport(BaseModel):
    export_file: str = "output.webm"
    export_framerate: int = Field(default=24, gt=0)


class Manifest(BaseModel):
    config: ManifestConfig
    settings: ManifestSettings
    export: ManifestExport = Field(default_factory=ManifestExport)


class StatusResponse(BaseModel):
    running: bool
    lock_file: str
    output_folder: str
    frames: int
    last_frame: Optional[str] = None
    last_frame_at: Optional[str] = None   # ISO-8601 UTC mtime of last_frame


class StopResponse(BaseModel):
    ok: bool
    was_running: bool
    error: Optional[str] = None
