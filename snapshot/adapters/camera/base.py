from abc import ABC, abstractmethod

from snapshot.orchestrator.contracts import Frame


class CameraAdapter(ABC):
    """Device Source boundary used by the capture scheduler.

    open() raises DeviceOpenFailure; next_frame() raises FrameTransientFailure
    for a dropped frame and FrameFatalFailure once the device is gone.
    close() must be safe to call more than once.
    """

    @abstractmethod
    def open(self) -> None:
        ...

    @abstractmethod
    def next_frame(self) -> Frame:
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
