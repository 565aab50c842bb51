"""
Shared pytest fixtures for DepthStream tests.
"""

import threading
from typing import List

import numpy as np
import pytest

from depthstream.core.config import DepthStreamConfig
from depthstream.core.observers import ProgressObserver, RecordingObserver, SessionObserver
from depthstream.core.schema import (
    CalibrationData,
    DepthAccuracy,
    DepthQuality,
    DeviceState,
    FramePair,
)
from depthstream.persistence.dataset import DatasetManager
from depthstream.persistence.preferences import PreferenceStore
from depthstream.persistence.writer import PersistenceWorkerPool


FRAME_WIDTH = 32
FRAME_HEIGHT = 24


@pytest.fixture
def sample_depth_image():
    """Create a sample depth map (meters) with invalid pixels."""
    depth = np.ones((FRAME_HEIGHT, FRAME_WIDTH), dtype=np.float32) * 2.5
    depth[4:12, 6:14] = 1.25  # Object at 1.25m
    depth[0, :] = 0.0         # Invalid row
    return depth


@pytest.fixture
def sample_color_image():
    """Create a sample RGBA color image."""
    image = np.zeros((FRAME_HEIGHT, FRAME_WIDTH, 4), dtype=np.uint8)
    image[..., 0] = 200
    image[4:12, 6:14, 1] = 180
    image[..., 3] = 255
    return image


@pytest.fixture
def sample_calibration():
    """Calibration whose reference size is twice the frame size."""
    return CalibrationData(
        intrinsic_matrix=np.array([
            [60.0, 0.0, 32.0],
            [0.0, 60.0, 24.0],
            [0.0, 0.0, 1.0],
        ], dtype=np.float32),
        intrinsic_reference_dims=(FRAME_WIDTH * 2, FRAME_HEIGHT * 2),
        pixel_size=0.003,
        accuracy=DepthAccuracy.ABSOLUTE,
        quality=DepthQuality.HIGH,
        lens_distortion_center=(32.0, 24.0),
        lens_distortion_table=np.array([0.1, -0.05, 0.0, 0.0, 0.01], dtype=np.float32),
    )


@pytest.fixture
def sample_device():
    return DeviceState(
        device_type="Test Sensor",
        serial="TEST-123",
        firmware="1.2.3",
        color_width=FRAME_WIDTH,
        color_height=FRAME_HEIGHT,
        settings={"ExposureDuration": 8000, "Gain": 32},
    )


@pytest.fixture
def make_pair(sample_depth_image, sample_color_image, sample_calibration, sample_device):
    """Factory for frame pairs with a given timestamp."""
    def _make(timestamp_ms: int) -> FramePair:
        return FramePair(
            timestamp_ms=timestamp_ms,
            depth=sample_depth_image + np.float32(timestamp_ms * 1e-4),
            color=sample_color_image.copy(),
            calibration=sample_calibration,
            device=sample_device,
        )
    return _make


@pytest.fixture
def preferences(tmp_path):
    """Initialized preference store outside the data root."""
    store = PreferenceStore(tmp_path / "state" / "preferences.db")
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def data_root(tmp_path):
    root = tmp_path / "data"
    root.mkdir()
    return root


@pytest.fixture
def dataset_manager(data_root, preferences):
    return DatasetManager(data_root, preferences)


@pytest.fixture
def worker_pool():
    pool = PersistenceWorkerPool(max_workers=4)
    yield pool
    pool.shutdown()


@pytest.fixture
def sample_config():
    """Sample configuration dictionary for testing."""
    return {
        "framework": {"name": "DepthStream", "version": "0.1.0"},
        "sensor": {
            "backend": "synthetic",
            "resolution": [FRAME_WIDTH, FRAME_HEIGHT],
            "fps": 30,
        },
        "recording": {
            "frame_count": 5,
            "inter_frame_delay_ms": 100,
            "dataset_prefix": "X",
            "max_workers": 2,
        },
        "storage": {
            "data_root": "data",
            "preferences_path": "state/preferences.db",
        },
        "server": {
            "enabled": False,
            "port": 0,
        },
        "logging": {"level": "DEBUG", "console": False},
    }


@pytest.fixture
def depthstream_config(sample_config, tmp_path):
    """Create a DepthStreamConfig whose relative paths resolve under tmp_path."""
    return DepthStreamConfig.from_dict(sample_config, config_path=tmp_path / "config.yaml")


# Recording observers

class RecordingEvents(RecordingObserver):
    """Collects recording events for assertions."""

    def __init__(self):
        self.admitted: List[int] = []
        self.completed = []
        self.stopped: List[int] = []
        self.errors: List[str] = []
        self.done = threading.Event()

    def on_frame_admitted(self, count):
        self.admitted.append(count)

    def on_capture_complete(self, dataset):
        self.completed.append(dataset)
        self.done.set()

    def on_recording_stopped(self, frames_captured):
        self.stopped.append(frames_captured)
        self.done.set()

    def on_error(self, message):
        self.errors.append(message)


class ProgressEvents(ProgressObserver):
    """Collects compression events for assertions."""

    def __init__(self):
        self.started = 0
        self.fractions: List[float] = []
        self.completed = []
        self.errors: List[str] = []

    def on_compression_started(self):
        self.started += 1

    def on_progress(self, fraction):
        self.fractions.append(fraction)

    def on_compression_completed(self, result):
        self.completed.append(result)

    def on_error(self, message):
        self.errors.append(message)


class SessionEvents(SessionObserver):
    """Collects terminal session failures."""

    def __init__(self):
        self.failures = []

    def on_session_failed(self, status, message):
        self.failures.append((status, message))


@pytest.fixture
def recording_events():
    return RecordingEvents()


@pytest.fixture
def progress_events():
    return ProgressEvents()


@pytest.fixture
def session_events():
    return SessionEvents()
