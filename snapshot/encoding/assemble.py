from pathlib import Path

from snapshot.encoding.ffmpeg_exporter import invoke_ffmpeg_cli, resolve_output_path
from snapshot.orchestrator.errors import AssemblyFailure
from snapshot.resources.resource_folder import require_existing_folder
from snapshot.services.models import Manifest


def assemble(manifest: Manifest) -> Path:
    """Encode the manifest's frame folder into its export file. Capture must be stopped."""
    lock_file = Path(manifest.config.lock_file)
    if lock_file.exists():
        raise AssemblyFailure(f"capture still running ({lock_file} exists); remove the lock and retry")

    input_folder = require_existing_folder(manifest.config.output_folder)
    fmt = manifest.config.image_format
    if not any(input_folder.glob(f"*.{fmt}")):
        raise AssemblyFailure(f"no .{fmt} frames in {input_folder}")

    output = resolve_output_path(manifest.export.export_file)
    invoke_ffmpeg_cli(input_folder, output, manifest.export.export_framerate, fmt)
    return output
