"""
Lock file that marks a capture run as active.

The file's existence is the only "keep running" signal. Anyone (an operator,
a cron script, the status service) stops a run by deleting it.
"""
import os
import uuid
from pathlib import Path

from snapshot.orchestrator.errors import LockAlreadyHeld, LockReleaseFailure


class LockFile:
    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.owned = False
        self._token = f"LOCK {os.getpid()} {uuid.uuid4().hex}\n"

    def acquire(self) -> "LockFile":
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            raise LockAlreadyHeld(
                f"{self.path} already exists; another capture is running or a previous run "
                f"did not clean up. Remove it by hand to start a new run."
            ) from None
        except OSError as e:
            raise LockAlreadyHeld(f"unable to create lock {self.path}: {e}") from e
        try:
            os.write(fd, self._token.encode("ascii"))
        finally:
            os.close(fd)
        self.owned = True
        return self

    def is_still_held(self) -> bool:
        return self.path.exists()

    def release(self):
        """Delete the lock if it is still the one we created.

        A lock removed externally (the normal stop path) is not an error, and a
        lock recreated by a newer run in the meantime is left in place.
        """
        if not self.owned:
            return
        self.owned = False
        try:
            if self.path.read_text(encoding="ascii", errors="replace") != self._token:
                return
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise LockReleaseFailure(f"unable to remove lock {self.path}: {e}") from e
