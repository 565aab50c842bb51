"""Capture session: runs a sensor backend and emits synchronized frame pairs.

All configure/start/stop calls are funneled through one serial executor so
the backend is never mutated concurrently. Frames are pulled on a dedicated
producer thread and handed to FrameObservers; ticks with a missing half are
skipped.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import List, Optional

from depthstream.capture.backend import DepthSensorBackend
from depthstream.core.errors import AuthorizationError, ConfigurationError
from depthstream.core.observers import FrameObserver, SessionObserver

logger = logging.getLogger(__name__)


class SessionStatus(Enum):
    """Configuration status of a capture session."""

    UNCONFIGURED = "unconfigured"
    READY = "ready"
    NOT_AUTHORIZED = "not_authorized"
    CONFIGURATION_FAILED = "configuration_failed"

    @property
    def terminal(self) -> bool:
        return self in (SessionStatus.NOT_AUTHORIZED, SessionStatus.CONFIGURATION_FAILED)


class CaptureSession:
    """Owns a sensor backend and forwards every complete tick to observers.

    A NOT_AUTHORIZED or CONFIGURATION_FAILED session is terminal: start()
    becomes a no-op and the failure is reported to the SessionObserver
    exactly once. Create a new session to retry.

    Usage:
        session = CaptureSession(SyntheticSensor(), observers=[recorder])
        session.configure().result()
        session.start().result()
        ...
        session.close()
    """

    def __init__(
        self,
        backend: DepthSensorBackend,
        observers: Optional[List[FrameObserver]] = None,
        session_observer: Optional[SessionObserver] = None,
        frame_timeout_ms: int = 1000,
    ):
        self.backend = backend
        self.session_observer = session_observer or SessionObserver()
        self.frame_timeout_ms = frame_timeout_ms

        self._observers: List[FrameObserver] = list(observers or [])
        self._observers_lock = threading.Lock()

        self._status = SessionStatus.UNCONFIGURED
        self._failure_reported = False
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="depthstream-session")
        self._closed = False

        self._producer: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._frames_emitted = 0
        self._frames_dropped = 0

    # ------------------------------------------------------------------
    # Observers

    def add_observer(self, observer: FrameObserver) -> None:
        with self._observers_lock:
            if observer not in self._observers:
                self._observers.append(observer)

    def remove_observer(self, observer: FrameObserver) -> None:
        with self._observers_lock:
            if observer in self._observers:
                self._observers.remove(observer)

    # ------------------------------------------------------------------
    # Status

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._producer is not None and self._producer.is_alive()

    @property
    def frames_emitted(self) -> int:
        """Complete pairs delivered to observers."""
        return self._frames_emitted

    @property
    def frames_dropped(self) -> int:
        """Ticks skipped because one half of the pair was missing."""
        return self._frames_dropped

    # ------------------------------------------------------------------
    # Serial configuration context

    def configure(self) -> Future:
        """Request sensor access and configure both streams.

        Returns:
            Future resolving to the resulting SessionStatus
        """
        return self._submit(self._configure)

    def start(self) -> Future:
        """Start frame emission; configures first if needed."""
        return self._submit(self._start)

    def stop(self) -> Future:
        """Stop frame emission. Persistence work already dispatched is unaffected."""
        return self._submit(self._stop)

    def close(self) -> None:
        """Stop the sensor and release the backend."""
        if self._closed:
            return
        self.stop().result()
        self._closed = True
        self._executor.shutdown(wait=True)
        self.backend.close()

    def _submit(self, fn) -> Future:
        if self._closed:
            raise RuntimeError("Capture session is closed")
        return self._executor.submit(fn)

    def _configure(self) -> SessionStatus:
        if self._status != SessionStatus.UNCONFIGURED:
            return self._status

        logger.info("Configuring capture session on %s", self.backend.name)
        try:
            if not self.backend.request_access():
                raise AuthorizationError(f"Access to {self.backend.name} was denied")
        except AuthorizationError as e:
            self._fail(SessionStatus.NOT_AUTHORIZED, str(e))
            return self._status

        try:
            self.backend.open()
        except ConfigurationError as e:
            self._fail(SessionStatus.CONFIGURATION_FAILED, str(e))
            return self._status

        self._status = SessionStatus.READY
        return self._status

    def _start(self) -> SessionStatus:
        if self._status == SessionStatus.UNCONFIGURED:
            self._configure()
        if self._status != SessionStatus.READY:
            logger.debug("Ignoring start on %s session", self._status.value)
            return self._status
        if self.is_running:
            return self._status

        try:
            self.backend.start()
        except ConfigurationError as e:
            self._fail(SessionStatus.CONFIGURATION_FAILED, str(e))
            return self._status

        self._stop_event.clear()
        self._producer = threading.Thread(
            target=self._run, name="depthstream-capture", daemon=True,
        )
        self._producer.start()
        logger.info("Capture session started")
        return self._status

    def _stop(self) -> SessionStatus:
        if self._producer is None:
            return self._status

        self._stop_event.set()
        self._producer.join()
        self._producer = None
        self.backend.stop()
        logger.info(
            "Capture session stopped (%d pairs emitted, %d dropped)",
            self._frames_emitted,
            self._frames_dropped,
        )
        return self._status

    def _fail(self, status: SessionStatus, message: str) -> None:
        self._status = status
        logger.error("Capture session failed (%s): %s", status.value, message)
        if self._failure_reported:
            return
        self._failure_reported = True
        try:
            self.session_observer.on_session_failed(status.value, message)
        except Exception:
            logger.exception("Session observer failed")

    # ------------------------------------------------------------------
    # Producer thread

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                frames = self.backend.wait_for_frames(self.frame_timeout_ms)
            except RuntimeError as e:
                logger.error("Sensor stream failed: %s", e)
                break

            if frames is None or self._stop_event.is_set():
                continue

            pair = frames.to_frame_pair()
            if pair is None:
                self._frames_dropped += 1
                continue

            self._frames_emitted += 1
            with self._observers_lock:
                observers = list(self._observers)
            for observer in observers:
                try:
                    observer.on_frame(pair)
                except Exception:
                    logger.exception("Frame observer %r failed", observer)
