"""
Manifest loading.

A manifest is a TOML file with [config], [settings] and optional [export]
sections. SNAPSHOT_MANIFEST (from the environment or a .env file) names the
default manifest when the CLI is run without one.
"""
import os
import tomllib
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from snapshot.orchestrator.contracts import CaptureSettings
from snapshot.orchestrator.errors import ConfigInvalid
from snapshot.services.models import Manifest

load_dotenv(override=False)

DEFAULT_MANIFEST = "snapshot.toml"


def default_manifest_path() -> str:
    return os.getenv("SNAPSHOT_MANIFEST", DEFAULT_MANIFEST)


def log_level() -> str:
    return os.getenv("SNAPSHOT_LOG_LEVEL", "DEBUG")


def parse_manifest(text: str) -> Manifest:
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigInvalid(f"invalid manifest: {e}") from e
    try:
        return Manifest.model_validate(data)
    except ValidationError as e:
        raise ConfigInvalid(f"invalid manifest: {e}") from e


def load_manifest(path: str | Path) -> Manifest:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigInvalid(f"unable to read manifest {path}: {e}") from e
    return parse_manifest(text)


def to_capture_settings(manifest: Manifest) -> CaptureSettings:
    c = manifest.config
    s = manifest.settings
    return CaptureSettings(
        output_folder=Path(c.output_folder),
        log_folder=Path(c.log_folder),
        lock_file=Path(c.lock_file),
        sample_interval=c.sample_interval,
        sample_idle=c.sample_idle,
        backend=s.backend,
        resolution=s.resolution,
        framerate=s.framerate,
        device=s.device,
        pixel_format=s.pixel_format,
        pull_timeout=c.pull_timeout,
        max_consecutive_failures=c.max_consecutive_failures,
        numbering=c.numbering,
        sequence_origin=c.sequence_origin,
        image_format=c.image_format,
        extra=s.extras(),
    )


def load_settings(path: str | Path) -> CaptureSettings:
    return to_capture_settings(load_manifest(path))
