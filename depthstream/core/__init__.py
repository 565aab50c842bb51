"""Core components: frame schema, configuration, observers and errors."""

from depthstream.core.schema import (
    CalibrationData,
    DatasetReport,
    DepthAccuracy,
    DepthQuality,
    DeviceState,
    FramePair,
    RecordingPhase,
    RecordingState,
    SealedDataset,
    SessionConfig,
)
from depthstream.core.config import DepthStreamConfig, get_default_config
from depthstream.core.errors import (
    AuthorizationError,
    ConfigurationError,
    DepthStreamError,
    PackagingError,
    PersistenceError,
    RecordingStateError,
    TransportError,
)
from depthstream.core.observers import (
    FrameObserver,
    ProgressObserver,
    RecordingObserver,
    SessionObserver,
)

__all__ = [
    "CalibrationData",
    "DatasetReport",
    "DepthAccuracy",
    "DepthQuality",
    "DeviceState",
    "FramePair",
    "RecordingPhase",
    "RecordingState",
    "SealedDataset",
    "SessionConfig",
    "DepthStreamConfig",
    "get_default_config",
    "AuthorizationError",
    "ConfigurationError",
    "DepthStreamError",
    "PackagingError",
    "PersistenceError",
    "RecordingStateError",
    "TransportError",
    "FrameObserver",
    "ProgressObserver",
    "RecordingObserver",
    "SessionObserver",
]
