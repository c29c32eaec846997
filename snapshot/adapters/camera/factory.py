from snapshot.adapters.camera.base import CameraAdapter
from snapshot.orchestrator.contracts import CaptureSettings


def create_camera(settings: CaptureSettings, status_store) -> CameraAdapter:
    """Pick the camera adapter for the manifest's backend. Does not open it."""
    if settings.backend.strip().lower() == "mock" or settings.flag("use_mock"):
        from snapshot.adapters.camera.mock_camera import MockCamera
        camera = MockCamera(settings, status_store)
    else:
        from snapshot.adapters.camera.cv2_camera import CV2Camera
        camera = CV2Camera(settings, status_store)
    status_store.log(f"camera adapter: {type(camera).__name__}")
    return camera
