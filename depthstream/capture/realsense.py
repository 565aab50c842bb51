"""Intel RealSense backend for DepthStream.

Streams RGBA color and z16 depth from one device, optionally aligns depth to
the color frame, and converts depth to float32 meters.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import numpy as np

try:
    import pyrealsense2 as rs
    REALSENSE_AVAILABLE = True
except ImportError:
    REALSENSE_AVAILABLE = False

from depthstream.capture.backend import DepthSensorBackend, SyncedFrames
from depthstream.core.config import SensorConfig
from depthstream.core.errors import ConfigurationError
from depthstream.core.schema import (
    CalibrationData,
    DepthAccuracy,
    DepthQuality,
    DeviceState,
)

logger = logging.getLogger(__name__)


# Frame metadata copied into the camera-metadata record when supported
_FRAME_METADATA_KEYS = {
    "actual_exposure": "ExposureDuration",
    "gain_level": "Gain",
    "auto_exposure": "AutoExposureEnabled",
    "white_balance": "WhiteBalance",
    "auto_white_balance_temperature": "AutoWhiteBalanceTemperature",
    "brightness": "Brightness",
    "contrast": "Contrast",
    "saturation": "Saturation",
    "backlight_compensation": "BacklightCompensation",
    "actual_fps": "ActualFps",
}


def intrinsics_to_matrix(intr) -> np.ndarray:
    """Return the 3x3 camera matrix of an rs.intrinsics."""
    return np.array([
        [intr.fx, 0, intr.ppx],
        [0, intr.fy, intr.ppy],
        [0, 0, 1],
    ], dtype=np.float32)


def extrinsics_to_matrix(extr) -> np.ndarray:
    """Return the 4x4 row-major transform of an rs.extrinsics."""
    matrix = np.eye(4, dtype=np.float32)
    # librealsense stores the rotation column-major
    matrix[:3, :3] = np.asarray(extr.rotation, dtype=np.float32).reshape(3, 3).T
    matrix[:3, 3] = np.asarray(extr.translation, dtype=np.float32)
    return matrix


class RealSenseSensor(DepthSensorBackend):
    """Single RealSense device producing synchronized depth/color ticks."""

    def __init__(
        self,
        width: int = 640,
        height: int = 480,
        fps: int = 30,
        serial: Optional[str] = None,
        align_depth: bool = True,
        depth_filtering: bool = False,
        warmup_frames: int = 30,
        pixel_size_mm: float = 0.003,
    ):
        """Initialize RealSense sensor.

        Args:
            width: Frame width
            height: Frame height
            fps: Frames per second
            serial: Device serial number (first device if None)
            align_depth: Align depth to color frame
            depth_filtering: Apply spatial and temporal depth filters
            warmup_frames: Frames discarded after start for auto-exposure
            pixel_size_mm: Depth sensor pixel size written to calibration
        """
        if not REALSENSE_AVAILABLE:
            raise ImportError(
                "pyrealsense2 not installed. Install with: pip install pyrealsense2"
            )

        self.width = width
        self.height = height
        self.fps = fps
        self.serial = serial
        self.align_depth = align_depth
        self.depth_filtering = depth_filtering
        self.warmup_frames = warmup_frames
        self.pixel_size_mm = pixel_size_mm

        self._pipeline: Optional[rs.pipeline] = None
        self._config: Optional[rs.config] = None
        self._align: Optional[rs.align] = None
        self._filters: List[Any] = []
        self._started = False
        self._depth_scale = 0.001

        self._calibration: Optional[CalibrationData] = None
        self._color_intrinsics = np.eye(3, dtype=np.float32)
        self._device_info: Dict[str, str] = {}

    @classmethod
    def from_config(cls, config: SensorConfig) -> RealSenseSensor:
        """Create sensor from configuration."""
        return cls(
            width=config.resolution[0],
            height=config.resolution[1],
            fps=config.fps,
            serial=config.serial if config.serial else None,
            align_depth=config.align_depth,
            depth_filtering=config.depth_filtering,
            warmup_frames=config.warmup_frames,
            pixel_size_mm=config.pixel_size_mm,
        )

    @property
    def name(self) -> str:
        return self._device_info.get("name", "RealSense")

    def request_access(self) -> bool:
        """Check that the device nodes can be opened by this user."""
        try:
            rs.context().query_devices()
        except RuntimeError as e:
            if "permission" in str(e).lower():
                logger.error("Access to RealSense device denied: %s", e)
                return False
            raise
        return True

    def open(self) -> None:
        """Resolve the stream configuration against an attached device."""
        self._pipeline = rs.pipeline()
        self._config = rs.config()

        if self.serial:
            self._config.enable_device(self.serial)

        self._config.enable_stream(
            rs.stream.color, self.width, self.height, rs.format.rgba8, self.fps,
        )
        self._config.enable_stream(
            rs.stream.depth, self.width, self.height, rs.format.z16, self.fps,
        )

        wrapper = rs.pipeline_wrapper(self._pipeline)
        if not self._config.can_resolve(wrapper):
            raise ConfigurationError(
                f"No RealSense device supports {self.width}x{self.height}@{self.fps} depth+color"
            )
        try:
            profile = self._config.resolve(wrapper)
        except RuntimeError as e:
            raise ConfigurationError(f"Could not configure RealSense device: {e}") from e

        device = profile.get_device()
        self._device_info = {
            "name": device.get_info(rs.camera_info.name),
            "serial": device.get_info(rs.camera_info.serial_number),
            "firmware": device.get_info(rs.camera_info.firmware_version),
        }

        if self.align_depth:
            self._align = rs.align(rs.stream.color)
        if self.depth_filtering:
            self._filters = [rs.spatial_filter(), rs.temporal_filter()]

        logger.info("Configured %s (serial %s)", self._device_info["name"], self._device_info["serial"])

    def start(self) -> None:
        """Start the camera pipeline."""
        if self._started:
            return
        if self._pipeline is None:
            raise ConfigurationError("RealSense sensor was not opened")

        try:
            profile = self._pipeline.start(self._config)
        except RuntimeError as e:
            raise ConfigurationError(f"Could not start RealSense pipeline: {e}") from e

        depth_sensor = profile.get_device().first_depth_sensor()
        self._depth_scale = depth_sensor.get_depth_scale()
        self._calibration, self._color_intrinsics = self._read_calibration(profile)

        self._started = True
        self._warmup()

    def _warmup(self) -> None:
        """Discard initial frames to let auto-exposure stabilize."""
        for _ in range(self.warmup_frames):
            self._pipeline.try_wait_for_frames(1000)

    def _read_calibration(self, profile):
        color_profile = profile.get_stream(rs.stream.color).as_video_stream_profile()
        depth_profile = profile.get_stream(rs.stream.depth).as_video_stream_profile()
        color_intr = color_profile.get_intrinsics()

        if self.align_depth:
            # Aligned depth shares the color camera's geometry
            depth_intr = color_intr
            extrinsics = np.eye(4, dtype=np.float32)
        else:
            depth_intr = depth_profile.get_intrinsics()
            extrinsics = extrinsics_to_matrix(depth_profile.get_extrinsics_to(color_profile))

        coeffs = np.asarray(depth_intr.coeffs, dtype=np.float32)
        inverse_model = depth_intr.model == rs.distortion.inverse_brown_conrady

        calibration = CalibrationData(
            intrinsic_matrix=intrinsics_to_matrix(depth_intr),
            intrinsic_reference_dims=(depth_intr.width, depth_intr.height),
            pixel_size=self.pixel_size_mm,
            extrinsic_matrix=extrinsics,
            accuracy=DepthAccuracy.ABSOLUTE,
            quality=DepthQuality.HIGH,
            lens_distortion_center=(float(depth_intr.ppx), float(depth_intr.ppy)),
            lens_distortion_table=None if inverse_model else coeffs,
            inverse_lens_distortion_table=coeffs if inverse_model else None,
        )
        return calibration, intrinsics_to_matrix(color_intr)

    def stop(self) -> None:
        """Stop the camera pipeline."""
        if self._started and self._pipeline:
            self._pipeline.stop()
            self._started = False

    def close(self) -> None:
        self.stop()
        self._pipeline = None
        self._config = None

    def wait_for_frames(self, timeout_ms: int) -> Optional[SyncedFrames]:
        """Wait for the next frameset; None on timeout."""
        if not self._started:
            return None

        ok, frames = self._pipeline.try_wait_for_frames(timeout_ms)
        if not ok:
            return None

        timestamp_ms = int(frames.get_timestamp())
        if self._align:
            frames = self._align.process(frames)

        color = None
        color_frame = frames.get_color_frame()
        if color_frame:
            color = np.array(np.asanyarray(color_frame.get_data()), dtype=np.uint8, copy=True)

        depth = None
        depth_frame = frames.get_depth_frame()
        if depth_frame:
            for depth_filter in self._filters:
                depth_frame = depth_filter.process(depth_frame)
            depth_raw = np.asanyarray(depth_frame.get_data())
            # z16 value 0 means no measurement and stays 0.0
            depth = depth_raw.astype(np.float32) * np.float32(self._depth_scale)

        return SyncedFrames(
            timestamp_ms=timestamp_ms,
            depth=depth,
            color=color,
            calibration=self._calibration,
            color_intrinsics=self._color_intrinsics,
            device=self._device_state(color_frame),
            depth_filtered=bool(self._filters),
        )

    def _device_state(self, color_frame) -> DeviceState:
        settings: Dict[str, Any] = {}
        if color_frame:
            for attr, key in _FRAME_METADATA_KEYS.items():
                value = getattr(rs.frame_metadata_value, attr, None)
                if value is not None and color_frame.supports_frame_metadata(value):
                    settings[key] = int(color_frame.get_frame_metadata(value))

        return DeviceState(
            device_type=self._device_info.get("name", "RealSense"),
            serial=self._device_info.get("serial", ""),
            firmware=self._device_info.get("firmware", ""),
            color_width=self.width,
            color_height=self.height,
            media_type="vide",
            media_subtype="RGBA",
            fps=self.fps,
            settings=settings,
        )

    @property
    def depth_scale(self) -> float:
        """Get depth scale (meters per unit)."""
        return self._depth_scale

    @property
    def device_info(self) -> Dict[str, str]:
        """Get device information."""
        return self._device_info.copy()


def list_realsense_devices() -> List[Dict[str, str]]:
    """List all connected RealSense devices.

    Returns:
        List of device info dictionaries
    """
    if not REALSENSE_AVAILABLE:
        return []

    ctx = rs.context()
    devices = []

    for device in ctx.query_devices():
        info = {
            "name": device.get_info(rs.camera_info.name),
            "serial": device.get_info(rs.camera_info.serial_number),
            "firmware": device.get_info(rs.camera_info.firmware_version),
        }

        if device.supports(rs.camera_info.usb_type_descriptor):
            info["usb_type"] = device.get_info(rs.camera_info.usb_type_descriptor)

        devices.append(info)

    return devices


def is_realsense_available() -> bool:
    """Check if RealSense SDK is available."""
    return REALSENSE_AVAILABLE
