"""Application controller wiring capture, recording, storage and export.

This is the non-visual half of the stream screen: it owns every component
for the lifetime of the application and exposes the user actions (start,
record, stop, toggle) to a CLI or UI layer.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Optional

from depthstream.capture import (
    CaptureSession,
    DepthSensorBackend,
    RealSenseSensor,
    SessionStatus,
    SyntheticSensor,
)
from depthstream.core.config import DepthStreamConfig, SensorConfig
from depthstream.core.errors import ConfigurationError
from depthstream.core.observers import ProgressObserver, RecordingObserver, SessionObserver
from depthstream.core.schema import RecordingState, SessionConfig
from depthstream.export import ExportServer, create_app
from depthstream.persistence import DatasetManager, PersistenceWorkerPool, PreferenceStore
from depthstream.recording import Recorder

logger = logging.getLogger(__name__)


SERVER_DISABLED_STATUS = "Server disabled"


def create_backend(config: SensorConfig, **kwargs) -> DepthSensorBackend:
    """Instantiate the sensor backend named in the configuration.

    Raises:
        ConfigurationError: If the backend is unknown or its SDK is missing
    """
    if config.backend == "synthetic":
        return SyntheticSensor.from_config(config, **kwargs)
    if config.backend == "realsense":
        try:
            return RealSenseSensor.from_config(config)
        except ImportError as e:
            raise ConfigurationError(str(e)) from e
    raise ConfigurationError(f"Unknown sensor backend: {config.backend}")


class StreamController:
    """Owns the capture session, recorder, dataset storage and export server.

    Usage:
        controller = StreamController(DepthStreamConfig.load())
        controller.start()
        controller.start_recording(SessionConfig(5, 100))
        controller.recorder.wait_idle()
        controller.close()
    """

    def __init__(
        self,
        config: DepthStreamConfig,
        backend: Optional[DepthSensorBackend] = None,
        recording_observer: Optional[RecordingObserver] = None,
        progress_observer: Optional[ProgressObserver] = None,
        session_observer: Optional[SessionObserver] = None,
        prefix: Optional[str] = None,
    ):
        """Initialize controller.

        Args:
            config: Application configuration
            backend: Sensor backend (created from config.sensor if None)
            recording_observer: Receives recording progress and completion
            progress_observer: Receives archive compression progress
            session_observer: Receives terminal capture failures
            prefix: Dataset name prefix (config.recording.dataset_prefix if None)
        """
        self.config = config
        base_dir = config.base_dir
        storage = config.storage

        self.preferences = PreferenceStore(storage.get_preferences_path(base_dir))
        self.preferences.initialize()

        self.dataset = DatasetManager.from_config(storage, self.preferences, base_dir)
        self.pool = PersistenceWorkerPool(max_workers=config.recording.max_workers)
        self.recorder = Recorder(
            self.dataset,
            self.pool,
            prefix=prefix or config.recording.dataset_prefix,
            observer=recording_observer,
            preferences=self.preferences,
            session_config=self.preferences.last_session_config(config.recording.session_config()),
        )

        self.session = CaptureSession(
            backend or create_backend(config.sensor),
            observers=[self.recorder],
            session_observer=session_observer,
            frame_timeout_ms=config.sensor.frame_timeout_ms,
        )

        self.server: Optional[ExportServer] = None
        if config.server.enabled:
            app = create_app(
                self.dataset,
                observer=progress_observer,
                progress_interval_s=config.server.progress_interval_s,
                status_provider=lambda: self.server_status,
            )
            self.server = ExportServer.from_config(app, config.server)

        self._closed = False

    def start(self) -> SessionStatus:
        """Reset scratch space, start the export server and the sensor.

        Returns:
            Status of the capture session after starting
        """
        self.dataset.clear_scratch()
        self.dataset.prepare_scratch()

        if self.server is not None:
            self.server.start()
            logger.info("Server status: %s", self.server_status)

        self.session.configure()
        return self.session.start().result()

    def start_recording(self, config: Optional[SessionConfig] = None) -> None:
        """Begin a recording run with config (or the last-used selections)."""
        self.recorder.start(config)

    def stop_recording(self) -> Future:
        """Stop the current run; the future resolves once outstanding work drained."""
        return self.recorder.stop()

    def toggle_recording(self) -> Optional[Future]:
        """Start recording when idle, otherwise stop."""
        if self.recorder.state.is_idle:
            self.start_recording()
            return None
        return self.stop_recording()

    @property
    def recording_state(self) -> RecordingState:
        return self.recorder.state

    @property
    def server_status(self) -> str:
        if self.server is None:
            return SERVER_DISABLED_STATUS
        return self.server.status

    def close(self) -> None:
        """Stop everything and release resources."""
        if self._closed:
            return
        self._closed = True

        self.recorder.stop().result()
        self.session.close()
        self.recorder.close()
        self.pool.shutdown()
        if self.server is not None:
            self.server.stop()
        self.preferences.close()

    def __enter__(self) -> StreamController:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
