"""Frame, calibration and recording-state data structures for DepthStream.

A FramePair is produced once per synchronized sensor tick and handed from the
capture session to the cadence gate and then to the persistence pool. It is
never mutated after construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import numpy as np


# Depth pixels without a valid measurement carry this value
INVALID_DEPTH = 0.0


class DepthAccuracy(Enum):
    """Whether depth values are relative or metric."""

    RELATIVE = 0
    ABSOLUTE = 1


class DepthQuality(Enum):
    """Sensor-reported depth quality."""

    LOW = 0
    HIGH = 1


@dataclass(frozen=True)
class CalibrationData:
    """Depth camera calibration, stored and serialized but not interpreted.

    Attributes:
        intrinsic_matrix: 3x3 pinhole matrix relative to intrinsic_reference_dims
        intrinsic_reference_dims: (width, height) the intrinsics refer to
        pixel_size: Sensor pixel size in millimeters
        extrinsic_matrix: 4x4 depth-to-color transform (row-major)
        accuracy: Relative or absolute depth
        quality: Low or high quality depth
        lens_distortion_center: Optional (x, y) distortion center
        lens_distortion_table: Optional forward distortion coefficients
        inverse_lens_distortion_table: Optional inverse distortion coefficients
    """

    intrinsic_matrix: np.ndarray
    intrinsic_reference_dims: Tuple[int, int]
    pixel_size: float = 0.0
    extrinsic_matrix: np.ndarray = field(
        default_factory=lambda: np.eye(4, dtype=np.float32)
    )
    accuracy: DepthAccuracy = DepthAccuracy.ABSOLUTE
    quality: DepthQuality = DepthQuality.HIGH
    lens_distortion_center: Optional[Tuple[float, float]] = None
    lens_distortion_table: Optional[np.ndarray] = None
    inverse_lens_distortion_table: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        if np.shape(self.intrinsic_matrix) != (3, 3):
            raise ValueError("intrinsic_matrix must be 3x3")
        if np.shape(self.extrinsic_matrix) not in ((4, 4), (3, 4)):
            raise ValueError("extrinsic_matrix must be 4x4 or 3x4")

    def intrinsics_for(self, width: int, height: int) -> np.ndarray:
        """Rescale the intrinsic matrix to an image of the given size."""
        ref_w, ref_h = self.intrinsic_reference_dims
        scale_x = ref_w / float(width)
        scale_y = ref_h / float(height)

        matrix = np.array(self.intrinsic_matrix, dtype=np.float64)
        matrix[0, 0] /= scale_x  # fx
        matrix[0, 2] /= scale_x  # ppx
        matrix[1, 1] /= scale_y  # fy
        matrix[1, 2] /= scale_y  # ppy
        return matrix


@dataclass(frozen=True)
class DeviceState:
    """Device and color-stream state at capture time.

    Attributes:
        device_type: Sensor model name
        serial: Device serial number
        firmware: Firmware version
        color_width: Active color format width
        color_height: Active color format height
        media_type: Media type of the color stream
        media_subtype: Pixel format of the color stream
        fps: Configured frame rate
        settings: Exposure, focus and white-balance values
    """

    device_type: str = "unknown"
    serial: str = ""
    firmware: str = ""
    color_width: int = 0
    color_height: int = 0
    media_type: str = "vide"
    media_subtype: str = "RGBA"
    fps: int = 30
    settings: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FramePair:
    """A time-aligned depth map and color image.

    Attributes:
        timestamp_ms: Monotonic capture clock in milliseconds
        depth: float32 depth map (H, W) in meters, INVALID_DEPTH where unknown
        color: uint8 RGBA image (H, W, 4)
        calibration: Depth calibration for this frame
        color_intrinsics: 3x3 intrinsic matrix of the color camera
        device: Device state at capture time
        depth_filtered: Whether the driver smoothed the depth map
    """

    timestamp_ms: int
    depth: np.ndarray
    color: np.ndarray
    calibration: CalibrationData
    color_intrinsics: np.ndarray = field(
        default_factory=lambda: np.eye(3, dtype=np.float32)
    )
    device: DeviceState = field(default_factory=DeviceState)
    depth_filtered: bool = False

    def __post_init__(self) -> None:
        if self.depth.ndim != 2:
            raise ValueError(f"depth must be 2D, got shape {self.depth.shape}")
        if self.depth.dtype != np.float32:
            raise ValueError(f"depth must be float32, got {self.depth.dtype}")
        if self.color.ndim != 3 or self.color.shape[2] != 4:
            raise ValueError(f"color must be (H, W, 4) RGBA, got shape {self.color.shape}")
        if np.shape(self.color_intrinsics) != (3, 3):
            raise ValueError("color_intrinsics must be 3x3")

    @property
    def depth_size(self) -> Tuple[int, int]:
        """(width, height) of the depth map."""
        return self.depth.shape[1], self.depth.shape[0]

    @property
    def color_size(self) -> Tuple[int, int]:
        """(width, height) of the color image."""
        return self.color.shape[1], self.color.shape[0]

    @property
    def depth_filename(self) -> str:
        return f"depth_{self.timestamp_ms}.png"

    @property
    def color_filename(self) -> str:
        return f"rgb_{self.timestamp_ms}.png"


@dataclass(frozen=True)
class SessionConfig:
    """Recording parameters, frozen for the duration of a run."""

    requested_frame_count: int = 10
    min_inter_frame_delay_ms: int = 33

    def __post_init__(self) -> None:
        if self.requested_frame_count < 1:
            raise ValueError("requested_frame_count must be >= 1")
        if self.min_inter_frame_delay_ms < 0:
            raise ValueError("min_inter_frame_delay_ms must be >= 0")


class RecordingPhase(Enum):
    """Phase of the recording lifecycle."""

    IDLE = "idle"
    RECORDING = "recording"
    FINALIZING = "finalizing"


@dataclass(frozen=True)
class RecordingState:
    """Snapshot of the recorder lifecycle."""

    phase: RecordingPhase = RecordingPhase.IDLE
    frames_captured: int = 0
    started_at: Optional[datetime] = None

    @classmethod
    def idle(cls) -> RecordingState:
        return cls()

    @classmethod
    def recording(cls, frames_captured: int, started_at: datetime) -> RecordingState:
        return cls(RecordingPhase.RECORDING, frames_captured, started_at)

    def finalizing(self) -> RecordingState:
        return RecordingState(RecordingPhase.FINALIZING, self.frames_captured, self.started_at)

    @property
    def is_idle(self) -> bool:
        return self.phase == RecordingPhase.IDLE

    @property
    def is_recording(self) -> bool:
        return self.phase == RecordingPhase.RECORDING


@dataclass
class DatasetReport:
    """Component counts of a dataset directory.

    A dataset is consistent when images and metadata records agree in
    count and the metadata timestamps follow capture order.
    """

    path: Path
    depth_images: int = 0
    color_images: int = 0
    depth_records: int = 0
    camera_records: int = 0
    ordered: bool = True

    @property
    def consistent(self) -> bool:
        counts = {self.depth_images, self.color_images, self.depth_records, self.camera_records}
        return len(counts) == 1 and self.ordered

    @property
    def frame_count(self) -> int:
        return min(self.depth_images, self.color_images, self.depth_records, self.camera_records)


@dataclass
class SealedDataset:
    """A finalized, numbered dataset directory."""

    name: str
    path: Path
    sequence: int
    frame_count: int
    failed_frames: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": str(self.path),
            "sequence": self.sequence,
            "frame_count": self.frame_count,
            "failed_frames": self.failed_frames,
        }
