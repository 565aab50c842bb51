"""Per-frame metadata records and their ordered accumulation.

Two JSON records are produced for every persisted frame pair: one describing
the depth map and its calibration, one describing the color camera state.
Records are kept keyed by submission index so the flushed arrays follow
capture order no matter which worker finishes first.
"""

from __future__ import annotations

import json
import threading
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from depthstream.core.schema import FramePair


DEPTH_COLOR_SPACE = "Gray"
DEPTH_BITS_PER_COMPONENT = 32
DEPTH_MEDIA_TYPE = "vide"
DEPTH_MEDIA_SUBTYPE = "fdep"
# FourCC 'fdep' (float32 depth) as an unsigned integer
DEPTH_DATA_TYPE = int.from_bytes(b"fdep", "big")


def _row(values: Sequence[float]) -> List[float]:
    return [float(v) for v in values]


def _table(values: Optional[np.ndarray]) -> List[float]:
    if values is None:
        return []
    return [float(v) for v in np.asarray(values, dtype=np.float32).ravel()]


def depth_metadata_record(pair: FramePair) -> Dict[str, Any]:
    """Build the depth-metadata record for a frame pair.

    Matrices are written row-major, one key per row. The intrinsic matrix
    is rescaled from its reference dimensions to the depth map size.
    """
    calibration = pair.calibration
    width, height = pair.depth_size
    intrinsics = calibration.intrinsics_for(width, height)
    extrinsics = np.asarray(calibration.extrinsic_matrix, dtype=np.float64)

    center = calibration.lens_distortion_center
    return {
        "Timestamp": int(pair.timestamp_ms),
        "LensDistortionCenter": _row(center) if center is not None else None,
        "LensDistortionLookupTable": _table(calibration.lens_distortion_table),
        "LensDistortionInverseLookupTable": _table(calibration.inverse_lens_distortion_table),
        "PixelSize": float(calibration.pixel_size),
        "IntrinsicMatrixReferenceDimensions": [int(d) for d in calibration.intrinsic_reference_dims],
        "IntrinsicMatrix.0": _row(intrinsics[0]),
        "IntrinsicMatrix.1": _row(intrinsics[1]),
        "IntrinsicMatrix.2": _row(intrinsics[2]),
        "ExtrinsicMatrix.0": _row(extrinsics[0]),
        "ExtrinsicMatrix.1": _row(extrinsics[1]),
        "ExtrinsicMatrix.2": _row(extrinsics[2]),
        "Accuracy": calibration.accuracy.value,
        "Quality": calibration.quality.value,
        "DataType": DEPTH_DATA_TYPE,
        "DepthDataFiltered": bool(pair.depth_filtered),
        "Width": width,
        "Height": height,
        "MediaType": DEPTH_MEDIA_TYPE,
        "MediaSubType": DEPTH_MEDIA_SUBTYPE,
        "BytesPerRow": width * DEPTH_BITS_PER_COMPONENT // 8,
        "ColorSpace": DEPTH_COLOR_SPACE,
        "BitsPerComponent": DEPTH_BITS_PER_COMPONENT,
    }


def camera_metadata_record(pair: FramePair) -> Dict[str, Any]:
    """Build the camera-metadata record for a frame pair."""
    device = pair.device
    intrinsics = np.asarray(pair.color_intrinsics, dtype=np.float64)
    width, height = pair.color_size

    record: Dict[str, Any] = {
        "Timestamp": int(pair.timestamp_ms),
        "DeviceType": device.device_type,
        "Serial": device.serial,
        "Firmware": device.firmware,
        "ColorSpace": "sRGB",
        "FpsRange": f"[{device.fps}-{device.fps}]",
        "IntrinsicMatrix.0": _row(intrinsics[0]),
        "IntrinsicMatrix.1": _row(intrinsics[1]),
        "IntrinsicMatrix.2": _row(intrinsics[2]),
    }
    for key, value in device.settings.items():
        record.setdefault(key, value)

    # Active color format
    record["Width"] = device.color_width or width
    record["Height"] = device.color_height or height
    record["MediaType"] = device.media_type
    record["MediaSubType"] = device.media_subtype
    return record


def to_json_array(records: Sequence[Dict[str, Any]]) -> str:
    """Serialize records as one top-level JSON array."""
    return json.dumps(list(records), indent=2, sort_keys=True)


class MetadataLog:
    """Thread-safe, index-ordered accumulator for both metadata sequences.

    Workers call record() with the submission index of their frame pair;
    readers always get records sorted by that index.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._depth: Dict[int, Dict[str, Any]] = {}
        self._camera: Dict[int, Dict[str, Any]] = {}

    def record(
        self,
        index: int,
        depth_record: Dict[str, Any],
        camera_record: Dict[str, Any],
    ) -> None:
        """Store both records of one frame pair atomically."""
        with self._lock:
            if index in self._depth:
                raise ValueError(f"Metadata for index {index} already recorded")
            self._depth[index] = depth_record
            self._camera[index] = camera_record

    def depth_records(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [self._depth[i] for i in sorted(self._depth)]

    def camera_records(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [self._camera[i] for i in sorted(self._camera)]

    def clear(self) -> None:
        with self._lock:
            self._depth.clear()
            self._camera.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._depth)
