"""
DepthStream: synchronized RGB-D capture, cadence-gated recording and dataset export

Records a bounded, evenly spaced subset of a depth sensor's frame pairs into
numbered datasets and serves them over the local network.
"""

__version__ = "0.1.0"

from depthstream.core.schema import FramePair, SessionConfig, CalibrationData
from depthstream.core.config import DepthStreamConfig

__all__ = [
    "FramePair",
    "SessionConfig",
    "CalibrationData",
    "DepthStreamConfig",
]
