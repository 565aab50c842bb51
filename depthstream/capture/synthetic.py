"""Generated RGB-D stream for running DepthStream without hardware.

Frames are deterministic: tick i carries timestamp start_ms + i * interval_ms
and a depth plane whose offset depends on i, so tests can predict exactly
which ticks the cadence gate admits.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable, Optional

import numpy as np

from depthstream.capture.backend import DepthSensorBackend, SyncedFrames
from depthstream.core.config import SensorConfig
from depthstream.core.errors import ConfigurationError
from depthstream.core.schema import (
    INVALID_DEPTH,
    CalibrationData,
    DepthAccuracy,
    DepthQuality,
    DeviceState,
)

logger = logging.getLogger(__name__)


class SyntheticSensor(DepthSensorBackend):
    """Deterministic depth/color generator.

    Usage:
        sensor = SyntheticSensor(width=64, height=48, interval_ms=33, realtime=False)
        sensor.open()
        sensor.start()
        frames = sensor.wait_for_frames(1000)
    """

    def __init__(
        self,
        width: int = 640,
        height: int = 480,
        fps: int = 30,
        interval_ms: Optional[float] = None,
        start_ms: int = 0,
        realtime: bool = True,
        max_frames: Optional[int] = None,
        dropped_ticks: Iterable[int] = (),
        authorized: bool = True,
        fail_configuration: bool = False,
    ):
        """Initialize synthetic sensor.

        Args:
            width: Frame width
            height: Frame height
            fps: Nominal frame rate
            interval_ms: Timestamp step between ticks (1000 / fps if None)
            start_ms: Timestamp of the first tick
            realtime: Pace ticks with the wall clock
            max_frames: End of stream after this many ticks
            dropped_ticks: Tick indices whose color half is missing
            authorized: False simulates a denied access request
            fail_configuration: True makes open() fail
        """
        if width <= 0 or height <= 0:
            raise ValueError("Synthetic frame size must be positive")
        if fps <= 0:
            raise ValueError("Synthetic fps must be positive")

        self.width = width
        self.height = height
        self.fps = fps
        self.interval_ms = interval_ms if interval_ms is not None else 1000.0 / fps
        self.start_ms = start_ms
        self.realtime = realtime
        self.max_frames = max_frames
        self.dropped_ticks = set(dropped_ticks)
        self.authorized = authorized
        self.fail_configuration = fail_configuration

        self._opened = False
        self._started = False
        self._tick = 0
        self._next_deadline = 0.0

        self._calibration = CalibrationData(
            intrinsic_matrix=np.array([
                [width * 0.9, 0, width / 2.0],
                [0, width * 0.9, height / 2.0],
                [0, 0, 1],
            ], dtype=np.float32),
            intrinsic_reference_dims=(width, height),
            pixel_size=0.003,
            accuracy=DepthAccuracy.ABSOLUTE,
            quality=DepthQuality.HIGH,
            lens_distortion_center=(width / 2.0, height / 2.0),
            lens_distortion_table=np.zeros(5, dtype=np.float32),
            inverse_lens_distortion_table=np.zeros(5, dtype=np.float32),
        )
        self._device = DeviceState(
            device_type="Synthetic RGB-D",
            serial="SYN-0001",
            firmware="0.0.0",
            color_width=width,
            color_height=height,
            fps=fps,
            settings={"ExposureDuration": 33000, "Gain": 16, "AutoExposureEnabled": 1},
        )

        rows = np.linspace(0.5, 1.5, height, dtype=np.float32)[:, None]
        cols = np.linspace(0.0, 0.5, width, dtype=np.float32)[None, :]
        self._depth_base = (rows + cols).astype(np.float32)

    @classmethod
    def from_config(cls, config: SensorConfig, **kwargs) -> SyntheticSensor:
        """Create sensor from configuration."""
        return cls(
            width=config.resolution[0],
            height=config.resolution[1],
            fps=config.fps,
            **kwargs,
        )

    @property
    def name(self) -> str:
        return "Synthetic RGB-D"

    @property
    def ticks(self) -> int:
        """Number of ticks generated so far."""
        return self._tick

    def request_access(self) -> bool:
        return self.authorized

    def open(self) -> None:
        if self.fail_configuration:
            raise ConfigurationError("Synthetic sensor configured to fail")
        self._opened = True

    def start(self) -> None:
        if not self._opened:
            raise ConfigurationError("Synthetic sensor was not opened")
        self._started = True
        self._next_deadline = time.monotonic()

    def stop(self) -> None:
        self._started = False

    def close(self) -> None:
        self._started = False
        self._opened = False

    def wait_for_frames(self, timeout_ms: int) -> Optional[SyncedFrames]:
        if not self._started:
            return None

        if self.max_frames is not None and self._tick >= self.max_frames:
            # End of stream behaves like a driver timeout
            time.sleep(min(timeout_ms, 10) / 1000.0)
            return None

        if self.realtime:
            delay = self._next_deadline - time.monotonic()
            if delay > timeout_ms / 1000.0:
                time.sleep(timeout_ms / 1000.0)
                return None
            if delay > 0:
                time.sleep(delay)
            self._next_deadline += self.interval_ms / 1000.0

        tick = self._tick
        self._tick += 1
        return self.generate(tick)

    def generate(self, tick: int) -> SyncedFrames:
        """Build the frames of tick number tick."""
        timestamp_ms = self.start_ms + int(tick * self.interval_ms)

        depth = self._depth_base + np.float32(0.001 * (tick % 1000))
        depth[0, :] = INVALID_DEPTH
        depth[:, 0] = INVALID_DEPTH

        color = np.empty((self.height, self.width, 4), dtype=np.uint8)
        color[..., 0] = (tick * 7) % 256
        color[..., 1] = np.linspace(0, 255, self.width, dtype=np.uint8)[None, :]
        color[..., 2] = np.linspace(0, 255, self.height, dtype=np.uint8)[:, None]
        color[..., 3] = 255

        return SyncedFrames(
            timestamp_ms=timestamp_ms,
            depth=depth,
            color=None if tick in self.dropped_ticks else color,
            calibration=self._calibration,
            color_intrinsics=self._calibration.intrinsic_matrix,
            device=self._device,
        )
