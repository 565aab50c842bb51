"""Lossless PNG encoding of depth maps and color images.

PNG has no float sample type, so a float32 depth map is stored as a
4-channel 8-bit image holding the little-endian bytes of every value.
Decoding reinterprets those bytes, which makes the round trip bit-exact
(including NaN payloads and the 0.0 invalid marker).
"""

from __future__ import annotations

from pathlib import Path
from typing import Union

import cv2
import numpy as np


PNG_EXTENSION = ".png"


def encode_depth_png(depth: np.ndarray) -> bytes:
    """Encode a float32 (H, W) depth map as PNG bytes.

    Raises:
        ValueError: If the depth map is not 2D float32 or encoding fails
    """
    if depth.ndim != 2 or depth.dtype != np.float32:
        raise ValueError(f"Expected (H, W) float32 depth, got {depth.shape} {depth.dtype}")

    h, w = depth.shape
    packed = np.ascontiguousarray(depth, dtype="<f4").view(np.uint8).reshape(h, w, 4)

    ok, buffer = cv2.imencode(PNG_EXTENSION, packed)
    if not ok:
        raise ValueError("PNG encoding of depth map failed")
    return buffer.tobytes()


def decode_depth_png(data: Union[bytes, str, Path]) -> np.ndarray:
    """Decode PNG bytes (or a PNG file) written by encode_depth_png."""
    if isinstance(data, (str, Path)):
        data = Path(data).read_bytes()

    packed = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
    if packed is None or packed.ndim != 3 or packed.shape[2] != 4:
        raise ValueError("Not a packed float32 depth PNG")

    h, w = packed.shape[:2]
    return np.ascontiguousarray(packed).view("<f4").reshape(h, w).astype(np.float32)


def encode_color_png(rgba: np.ndarray) -> bytes:
    """Encode an RGBA (H, W, 4) uint8 image as PNG bytes."""
    if rgba.ndim != 3 or rgba.shape[2] != 4 or rgba.dtype != np.uint8:
        raise ValueError(f"Expected (H, W, 4) uint8 RGBA, got {rgba.shape} {rgba.dtype}")

    # OpenCV expects BGRA channel order
    bgra = cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGRA)
    ok, buffer = cv2.imencode(PNG_EXTENSION, bgra)
    if not ok:
        raise ValueError("PNG encoding of color image failed")
    return buffer.tobytes()


def decode_color_png(data: Union[bytes, str, Path]) -> np.ndarray:
    """Decode a color PNG into an RGBA (H, W, 4) uint8 array."""
    if isinstance(data, (str, Path)):
        data = Path(data).read_bytes()

    bgra = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
    if bgra is None:
        raise ValueError("Could not decode color PNG")
    if bgra.ndim == 2:
        return cv2.cvtColor(bgra, cv2.COLOR_GRAY2RGBA)
    if bgra.shape[2] == 3:
        return cv2.cvtColor(bgra, cv2.COLOR_BGR2RGBA)
    return cv2.cvtColor(bgra, cv2.COLOR_BGRA2RGBA)
