"""Recording lifecycle: Idle -> Recording -> Finalizing -> Idle.

The Recorder is registered as a FrameObserver on the capture session. On the
sensor thread it only runs the cadence test and enqueues admitted pairs.
Waiting for the persistence barrier and sealing the dataset happen on a
dedicated finalize thread, so frame delivery never blocks on disk I/O.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Optional

from depthstream.core.errors import PackagingError, RecordingStateError
from depthstream.core.observers import FrameObserver, RecordingObserver
from depthstream.core.schema import (
    FramePair,
    RecordingPhase,
    RecordingState,
    SealedDataset,
    SessionConfig,
)
from depthstream.persistence.dataset import DatasetManager
from depthstream.persistence.preferences import PreferenceStore
from depthstream.persistence.writer import PersistenceWorkerPool
from depthstream.recording.gate import CadenceGate

logger = logging.getLogger(__name__)


def _done(result=None) -> Future:
    future: Future = Future()
    future.set_result(result)
    return future


class Recorder(FrameObserver):
    """Cadence-gated recording of frame pairs into sealed datasets.

    Usage:
        recorder = Recorder(dataset_manager, pool, prefix="Stream")
        session.add_observer(recorder)

        recorder.start(SessionConfig(requested_frame_count=5, min_inter_frame_delay_ms=100))
        recorder.wait_idle()
        print(recorder.last_dataset.name)   # StreamDataset_01
    """

    def __init__(
        self,
        dataset: DatasetManager,
        pool: PersistenceWorkerPool,
        prefix: str = "Stream",
        observer: Optional[RecordingObserver] = None,
        preferences: Optional[PreferenceStore] = None,
        session_config: Optional[SessionConfig] = None,
    ):
        """Initialize recorder.

        Args:
            dataset: Manager of the scratch area and sealed datasets
            pool: Worker pool frames are persisted on
            prefix: Dataset name prefix ("<prefix>Dataset_NN")
            observer: Receives progress and completion events
            preferences: If given, each run's selections are remembered
            session_config: Initial recording parameters
        """
        if not prefix:
            raise ValueError("Dataset prefix must not be empty")

        self.dataset = dataset
        self.pool = pool
        self.prefix = prefix
        self.observer = observer or RecordingObserver()
        self.preferences = preferences

        self._gate = CadenceGate()
        self._lock = threading.Lock()
        self._state = RecordingState.idle()
        self._session_config = session_config or SessionConfig()

        self._finalizer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="depthstream-finalize")
        self._finalize_future: Optional[Future] = None
        self._idle = threading.Event()
        self._idle.set()
        self._last_dataset: Optional[SealedDataset] = None

    # ------------------------------------------------------------------
    # Configuration

    @property
    def state(self) -> RecordingState:
        with self._lock:
            return self._state

    @property
    def session_config(self) -> SessionConfig:
        with self._lock:
            return self._session_config

    def configure(self, config: SessionConfig) -> None:
        """Replace the recording parameters.

        Raises:
            RecordingStateError: If a run is in progress
        """
        with self._lock:
            if not self._state.is_idle:
                raise RecordingStateError("Recording parameters are frozen while recording")
            self._session_config = config

    @property
    def last_dataset(self) -> Optional[SealedDataset]:
        """Dataset sealed by the most recent complete run."""
        with self._lock:
            return self._last_dataset

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self, config: Optional[SessionConfig] = None) -> None:
        """Begin a recording run.

        Raises:
            RecordingStateError: If not idle
            PackagingError: If the scratch directory cannot be prepared
        """
        with self._lock:
            if not self._state.is_idle:
                raise RecordingStateError(f"Cannot start recording while {self._state.phase.value}")
            if config is not None:
                self._session_config = config
            config = self._session_config

            scratch = self.dataset.prepare_scratch()
            self.pool.reset(scratch)
            if self.preferences is not None:
                self.preferences.remember_session_config(config)

            self._gate.enable(config)
            self._state = RecordingState.recording(0, datetime.now())
            self._idle.clear()

        logger.info(
            "Recording started: %d frames, %d ms apart",
            config.requested_frame_count,
            config.min_inter_frame_delay_ms,
        )

    def stop(self) -> Future:
        """Stop a run early.

        Outstanding work is drained on the finalize thread; the partial
        scratch dataset is kept but not sealed.

        Returns:
            Future resolving once the recorder is idle again
        """
        with self._lock:
            if self._state.is_idle:
                return _done()
            if self._state.phase == RecordingPhase.FINALIZING:
                return self._finalize_future or _done()

            self._gate.disable()
            self._state = self._state.finalizing()
            self._finalize_future = self._finalizer.submit(self._finalize, False)
            future = self._finalize_future

        logger.info("Recording stop requested")
        return future

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until the recorder is idle and observers were notified."""
        return self._idle.wait(timeout)

    def close(self) -> None:
        """Stop any run and release the finalize thread."""
        self.stop()
        self._finalizer.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Sensor thread

    def on_frame(self, pair: FramePair) -> None:
        """Gate a frame pair and enqueue it if admitted."""
        with self._lock:
            if not self._state.is_recording:
                return

            if not self._gate.accepts(pair.timestamp_ms):
                return

            # The gate only counts frames that were actually enqueued
            try:
                self.pool.submit(pair)
            except RuntimeError as e:
                logger.error("Could not enqueue frame %d: %s", pair.timestamp_ms, e)
                return
            admission = self._gate.admit(pair.timestamp_ms)

            self._state = RecordingState.recording(admission.count, self._state.started_at)
            if admission.complete:
                # The finalizer reports the last admission before completion
                self._state = self._state.finalizing()
                self._finalize_future = self._finalizer.submit(self._finalize, True, admission.count)
                return

        self._notify("on_frame_admitted", admission.count)

    # ------------------------------------------------------------------
    # Finalize thread

    def _finalize(self, seal: bool, last_admitted: Optional[int] = None) -> Optional[SealedDataset]:
        dataset = None
        try:
            if last_admitted is not None:
                self._notify("on_frame_admitted", last_admitted)
            self.pool.drain()
            if seal:
                dataset = self._seal()
        finally:
            # Always leave Finalizing, whatever failed above
            with self._lock:
                frames = self._state.frames_captured
                self._state = RecordingState.idle()
                if dataset is not None:
                    self._last_dataset = dataset
            try:
                if seal:
                    if self.pool.failed_count:
                        logger.warning(
                            "%d of %d frames could not be persisted", self.pool.failed_count, frames
                        )
                    self._notify("on_capture_complete", dataset)
                else:
                    logger.info("Recording stopped after %d frames; scratch dataset kept unsealed", frames)
                    self._notify("on_recording_stopped", frames)
            finally:
                with self._lock:
                    if self._state.is_idle:
                        self._idle.set()
        return dataset

    def _seal(self) -> Optional[SealedDataset]:
        try:
            return self.dataset.seal(
                self.prefix,
                self.pool.depth_records(),
                self.pool.camera_records(),
                failed_frames=self.pool.failed_count,
            )
        except PackagingError as e:
            logger.error("Building dataset failed: %s", e)
            self._notify("on_error", str(e))
        except Exception as e:
            logger.exception("Unexpected failure while sealing dataset")
            self._notify("on_error", f"Building dataset failed: {e}")
        return None

    def _notify(self, method: str, *args) -> None:
        try:
            getattr(self.observer, method)(*args)
        except Exception:
            logger.exception("Recording observer failed in %s", method)
