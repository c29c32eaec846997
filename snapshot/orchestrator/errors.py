ERR_CONFIG = "CONFIG_INVALID"
ERR_LOCKED = "LOCK_ALREADY_HELD"
ERR_DEVICE_OPEN = "DEVICE_OPEN_FAILED"
ERR_DEVICE_LOST = "DEVICE_LOST"
ERR_ASSEMBLY = "ASSEMBLY_FAILED"
ERR_UNKNOWN = "UNKNOWN"

# Process exit codes, one per operator remediation path
EXIT_OK = 0
EXIT_CONFIG = 2
EXIT_LOCKED = 3
EXIT_DEVICE = 4
EXIT_ASSEMBLY = 5
EXIT_UNKNOWN = 1

EXIT_CODES = {
    ERR_CONFIG: EXIT_CONFIG,
    ERR_LOCKED: EXIT_LOCKED,
    ERR_DEVICE_OPEN: EXIT_DEVICE,
    ERR_DEVICE_LOST: EXIT_DEVICE,
    ERR_ASSEMBLY: EXIT_ASSEMBLY,
}


def exit_code_for(error_code: str | None) -> int:
    if error_code is None:
        return EXIT_OK
    return EXIT_CODES.get(error_code, EXIT_UNKNOWN)


class SnapshotError(Exception):
    code = ERR_UNKNOWN


class ConfigInvalid(SnapshotError):
    code = ERR_CONFIG


class LockAlreadyHeld(SnapshotError):
    code = ERR_LOCKED


class LockReleaseFailure(SnapshotError):
    pass


class DeviceOpenFailure(SnapshotError):
    code = ERR_DEVICE_OPEN


class FrameTransientFailure(SnapshotError):
    """A single dropped or corrupt frame. The run continues."""


class FrameTimeout(FrameTransientFailure):
    pass


class FrameFatalFailure(SnapshotError):
    """The device handle is gone. The run ends."""
    code = ERR_DEVICE_LOST


class FrameWriteFailure(SnapshotError):
    pass


class AssemblyFailure(SnapshotError):
    code = ERR_ASSEMBLY
