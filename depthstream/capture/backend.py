"""Sensor backend interface for synchronized RGB-D capture."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from depthstream.core.schema import CalibrationData, DeviceState, FramePair


@dataclass
class SyncedFrames:
    """Raw output of one synchronized sensor tick.

    Either half may be missing when the driver dropped its buffer.

    Attributes:
        timestamp_ms: Capture time of the tick in milliseconds
        depth: float32 depth map in meters, or None if dropped
        color: RGBA color image, or None if dropped
        calibration: Depth calibration for the tick
        color_intrinsics: 3x3 color camera matrix
        device: Device state at capture time
        depth_filtered: Whether the driver filtered the depth map
    """

    timestamp_ms: int
    depth: Optional[np.ndarray]
    color: Optional[np.ndarray]
    calibration: CalibrationData
    color_intrinsics: np.ndarray = field(default_factory=lambda: np.eye(3, dtype=np.float32))
    device: DeviceState = field(default_factory=DeviceState)
    depth_filtered: bool = False

    @property
    def complete(self) -> bool:
        """True when both halves of the pair are present."""
        return self.depth is not None and self.color is not None

    def to_frame_pair(self) -> Optional[FramePair]:
        """Build a FramePair, or None if either half was dropped."""
        if not self.complete:
            return None
        return FramePair(
            timestamp_ms=int(self.timestamp_ms),
            depth=self.depth,
            color=self.color,
            calibration=self.calibration,
            color_intrinsics=self.color_intrinsics,
            device=self.device,
            depth_filtered=self.depth_filtered,
        )


class DepthSensorBackend(ABC):
    """Base class for RGB-D sensor drivers.

    The capture session calls request_access() and open() once on its
    configuration thread, then start()/stop() any number of times, and
    wait_for_frames() in a loop on its capture thread.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name."""
        pass

    def request_access(self) -> bool:
        """Resolve permission to use the sensor.

        Returns:
            False if access is denied
        """
        return True

    @abstractmethod
    def open(self) -> None:
        """Find the device and configure both streams.

        Raises:
            ConfigurationError: If no compatible device can be configured
        """
        pass

    @abstractmethod
    def start(self) -> None:
        """Start streaming."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop streaming."""
        pass

    @abstractmethod
    def wait_for_frames(self, timeout_ms: int) -> Optional[SyncedFrames]:
        """Return the next synchronized tick, or None on timeout."""
        pass

    def close(self) -> None:
        """Release device resources."""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"
