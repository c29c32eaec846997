from pathlib import Path

from snapshot.orchestrator.errors import ConfigInvalid


def require_folder(path: str | Path) -> Path:
    """Return the folder as a Path, creating it (and parents) if missing."""
    folder = Path(path)
    try:
        folder.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigInvalid(f"unable to create folder {folder}: {e}") from e
    if not folder.is_dir():
        raise ConfigInvalid(f"{folder} exists but is not a folder")
    return folder


def require_existing_folder(path: str | Path) -> Path:
    folder = Path(path)
    if not folder.is_dir():
        raise ConfigInvalid(f"no such folder: {folder}")
    return folder


def enumerate_files(folder: Path, pattern: str = "*") -> list[Path]:
    # sorted so frame sequences replay in filename order
    return sorted(p for p in folder.glob(pattern) if p.is_file() and not p.name.startswith("."))
