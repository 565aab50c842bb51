"""Sensor capture: backends and the synchronized capture session."""

from depthstream.capture.backend import DepthSensorBackend, SyncedFrames
from depthstream.capture.session import CaptureSession, SessionStatus
from depthstream.capture.synthetic import SyntheticSensor
from depthstream.capture.realsense import (
    REALSENSE_AVAILABLE,
    RealSenseSensor,
    is_realsense_available,
    list_realsense_devices,
)

__all__ = [
    "DepthSensorBackend",
    "SyncedFrames",
    "CaptureSession",
    "SessionStatus",
    "SyntheticSensor",
    "REALSENSE_AVAILABLE",
    "RealSenseSensor",
    "is_realsense_available",
    "list_realsense_devices",
]
