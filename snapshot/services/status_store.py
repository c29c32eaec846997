import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List

from snapshot.orchestrator.contracts import CaptureState

logger = logging.getLogger("snapshot")


@dataclass
class StatusStore:
    state: CaptureState = CaptureState.STARTING
    frames_written: int = 0
    transient_failures: int = 0
    last_frame: Optional[Path] = None
    last_error: Optional[str] = None
    logs: List[str] = field(default_factory=list)

    def set_state(self, state: CaptureState):
        if state != self.state:
            self.log(f"state {self.state.value} -> {state.value}")
        self.state = state

    def log(self, msg: str, level: int = logging.INFO):
        logger.log(level, msg)
        self.logs.append(msg)
        if len(self.logs) > 200:
            self.logs = self.logs[-200:]

    def warn(self, msg: str):
        self.log(msg, logging.WARNING)

    def error(self, msg: str):
        self.last_error = msg
        self.log(msg, logging.ERROR)
