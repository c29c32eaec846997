"""
Stitch a captured frame folder into a video with the ffmpeg CLI.

Runs, inside the frame folder:
  ffmpeg -y -framerate 24 -pattern_type glob -i '*.png' \
         -c:v libvpx-vp9 -pix_fmt yuva420p -lossless 1 /abs/out.webm

Only works if ffmpeg is installed and on PATH.
"""
import logging
import shutil
import subprocess
import sys
from pathlib import Path

from snapshot.orchestrator.errors import AssemblyFailure

logger = logging.getLogger("snapshot.encoding")

DEFAULT_OUTPUT_NAME = "output.webm"


def ffmpeg_binary() -> str:
    return "ffmpeg.exe" if sys.platform == "win32" else "ffmpeg"


def build_command(output_file: str, framerate: int, image_format: str = "png", binary: str | None = None) -> list[str]:
    return [
        binary or ffmpeg_binary(),
        "-y",
        "-framerate", str(framerate),
        "-pattern_type", "glob",
        "-i", f"*.{image_format}",
        "-c:v", "libvpx-vp9",
        "-pix_fmt", "yuva420p",
        "-lossless", "1",
        output_file,
    ]


def resolve_output_path(export_file: str) -> Path:
    """Absolute output path; the parent must exist, the name defaults to output.webm."""
    output = Path(export_file).expanduser()
    name = output.name or DEFAULT_OUTPUT_NAME
    parent = output.parent
    try:
        parent = parent.resolve(strict=True)
    except OSError as e:
        raise AssemblyFailure(f"unable to resolve '{export_file}' to an absolute path: {e}") from e
    return parent / name


def invoke_ffmpeg_cli(input_folder: Path, output_file: Path, framerate: int, image_format: str = "png") -> int:
    binary = shutil.which(ffmpeg_binary())
    if binary is None:
        raise AssemblyFailure(f"{ffmpeg_binary()} not found on PATH")

    cmd = build_command(str(output_file), framerate, image_format, binary=binary)
    logger.info("assemble: %s (cwd=%s)", " ".join(cmd), input_folder)
    try:
        result = subprocess.run(
            cmd,
            cwd=str(input_folder),
            stdin=subprocess.DEVNULL,
            check=False,
        )
    except OSError as e:
        raise AssemblyFailure(f"failed to run ffmpeg: {e}") from e

    logger.info("video encoding status: %s", result.returncode)
    if result.returncode != 0:
        raise AssemblyFailure(f"ffmpeg exited with status {result.returncode}")
    return result.returncode
