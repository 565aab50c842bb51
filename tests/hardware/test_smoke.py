"""Hardware smoke tests for DepthStream.

Tests verify that a RealSense camera is accessible and delivers complete
frame pairs. These tests should be run on the actual hardware platform.

Tests are marked with pytest.mark.hardware to skip on CI/non-hardware systems.
"""

import numpy as np
import pytest

from depthstream.capture.realsense import (
    RealSenseSensor,
    is_realsense_available,
    list_realsense_devices,
)
from depthstream.capture.session import CaptureSession, SessionStatus
from depthstream.core.schema import SessionConfig
from depthstream.persistence.writer import PersistenceWorkerPool
from depthstream.recording.recorder import Recorder


# =============================================================================
# Hardware Availability Markers
# =============================================================================

def realsense_connected() -> bool:
    """Check if the SDK is installed and a camera is plugged in."""
    if not is_realsense_available():
        return False
    try:
        return len(list_realsense_devices()) > 0
    except RuntimeError:
        return False


REALSENSE_CONNECTED = realsense_connected()

realsense_required = pytest.mark.skipif(
    not REALSENSE_CONNECTED,
    reason="RealSense camera not available"
)


# =============================================================================
# RealSense Hardware Tests
# =============================================================================

@pytest.mark.hardware
@realsense_required
class TestRealSenseHardware:
    """Tests for a connected RealSense camera."""

    def test_device_listed(self):
        devices = list_realsense_devices()
        assert devices
        assert all(d["serial"] for d in devices)

        print(f"\nRealSense devices: {devices}")

    def test_single_frame(self):
        """Capture one synchronized tick and check both halves."""
        sensor = RealSenseSensor(width=640, height=480, fps=30, warmup_frames=10)
        assert sensor.request_access()
        sensor.open()
        sensor.start()
        try:
            frames = sensor.wait_for_frames(2000)
        finally:
            sensor.stop()
            sensor.close()

        assert frames is not None
        pair = frames.to_frame_pair()
        assert pair is not None
        assert pair.depth.dtype == np.float32
        assert pair.depth.shape == (480, 640)
        assert pair.color.shape == (480, 640, 4)
        assert pair.calibration.intrinsic_matrix.shape == (3, 3)

        valid = pair.depth[pair.depth > 0]
        print(f"\nValid depth pixels: {valid.size}, median {np.median(valid):.3f} m")

    def test_record_short_dataset(self, dataset_manager, recording_events):
        """Record three pairs 100 ms apart from the live stream."""
        pool = PersistenceWorkerPool(max_workers=2)
        recorder = Recorder(dataset_manager, pool, prefix="HW", observer=recording_events)
        session = CaptureSession(RealSenseSensor(warmup_frames=10), observers=[recorder])
        try:
            assert session.start().result(timeout=30) == SessionStatus.READY
            recorder.start(SessionConfig(3, 100))
            assert recording_events.done.wait(timeout=30)
            assert recorder.wait_idle(timeout=30)
        finally:
            session.close()
            recorder.close()
            pool.shutdown()

        sealed = recording_events.completed[0]
        assert sealed.name == "HWDataset_01"
        assert dataset_manager.verify(sealed.path).consistent
