"""
Status service for a capture run.

Everything here is read from the run's filesystem artifacts (lock file and
frame folder), so it can run in its own process next to `snapshot`.
POST /stop deletes the lock file, which is how a capture run is asked to end.
"""
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI

from snapshot.adapters.sink.image_sink import existing_sequence_numbers, frame_filename
from snapshot.services.models import Manifest, StatusResponse, StopResponse


def create_app(manifest: Manifest) -> FastAPI:
    app = FastAPI(title="snapshot status")

    lock_file = Path(manifest.config.lock_file)
    output_folder = Path(manifest.config.output_folder)
    fmt = manifest.config.image_format

    @app.get("/health")
    def health():
        return {
            "api": True,
            "output_folder": output_folder.is_dir(),
            "lock_folder": lock_file.parent.is_dir(),
        }

    @app.get("/status", response_model=StatusResponse)
    def get_status():
        numbers = existing_sequence_numbers(output_folder) if output_folder.is_dir() else []
        last_name = last_at = None
        if numbers:
            last = output_folder / frame_filename(numbers[-1], fmt)
            if last.exists():
                last_name = last.name
                last_at = datetime.fromtimestamp(last.stat().st_mtime, tz=timezone.utc).isoformat()
        return StatusResponse(
            running=lock_file.exists(),
            lock_file=str(lock_file),
            output_folder=str(output_folder),
            frames=len(numbers),
            last_frame=last_name,
            last_frame_at=last_at,
        )

    @app.post("/stop", response_model=StopResponse)
    def stop():
        try:
            lock_file.unlink()
        except FileNotFoundError:
            return StopResponse(ok=True, was_running=False)
        except OSError as e:
            return StopResponse(ok=False, was_running=True, error=str(e))
        return StopResponse(ok=True, was_running=True)

    return app
