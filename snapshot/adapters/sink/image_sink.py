"""
Writes captured frames to the output folder as 00000000.png, 00000001.png, ...

Filenames sort in capture order. Each file is encoded in memory, written to a
hidden temp file and renamed into place, so a failed write never leaves a
partial frame behind for the assembler to pick up.
"""
import os
import re
from dataclasses import dataclass
from pathlib import Path

import cv2

from snapshot.orchestrator.contracts import CaptureSettings, Frame
from snapshot.orchestrator.errors import FrameWriteFailure

SEQUENCE_WIDTH = 8
_FRAME_NAME = re.compile(r"^(\d+)\.(png|jpg)$")


@dataclass
class SequenceCounter:
    value: int = 0

    def advance(self) -> int:
        self.value += 1
        return self.value


def frame_filename(sequence_number: int, image_format: str = "png") -> str:
    return f"{sequence_number:0{SEQUENCE_WIDTH}d}.{image_format}"


def existing_sequence_numbers(folder: Path) -> list[int]:
    numbers = []
    for entry in folder.iterdir():
        m = _FRAME_NAME.match(entry.name)
        if m and entry.is_file():
            numbers.append(int(m.group(1)))
    return sorted(numbers)


class ImageSink:
    def __init__(self, output_folder: Path, status_store, image_format: str = "png", origin: int = 0):
        self.output_folder = Path(output_folder)
        self.status = status_store
        self.image_format = image_format
        self.counter = SequenceCounter(origin)

    @classmethod
    def for_settings(cls, settings: CaptureSettings, status_store) -> "ImageSink":
        folder = Path(settings.output_folder)
        origin = settings.sequence_origin
        existing = existing_sequence_numbers(folder) if folder.is_dir() else []
        if existing:
            if settings.numbering == "continue":
                origin = max(origin, existing[-1] + 1)
                status_store.log(f"image_sink: {len(existing)} frames in {folder}, continuing at {origin}")
            else:
                status_store.warn(
                    f"image_sink: {folder} already holds {len(existing)} frames; "
                    f"numbering restarts at {origin} and may overwrite them"
                )
        return cls(folder, status_store, image_format=settings.image_format, origin=origin)

    @property
    def next_sequence(self) -> int:
        return self.counter.value

    def write(self, frame: Frame, sequence_number: int) -> Path:
        name = frame_filename(sequence_number, self.image_format)
        path = self.output_folder / name
        tmp = self.output_folder / f".{name}.partial"
        try:
            ok, buf = cv2.imencode(f".{self.image_format}", frame.pixels)
        except cv2.error as e:
            raise FrameWriteFailure(f"failed to encode frame {sequence_number}: {e}") from e
        if not ok:
            raise FrameWriteFailure(f"failed to encode frame {sequence_number}")
        try:
            tmp.write_bytes(buf.tobytes())
            os.replace(tmp, path)
        except OSError as e:
            try:
                tmp.unlink()
            except OSError:
                pass
            raise FrameWriteFailure(f"failed to save frame to {path}: {e}") from e
        return path

    def save(self, frame: Frame) -> Path:
        """Write the frame under the next sequence number; the counter only moves on success."""
        path = self.write(frame, self.counter.value)
        self.counter.advance()
        return path
