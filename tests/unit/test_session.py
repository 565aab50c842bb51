"""Unit tests for the capture session and the synthetic sensor."""

import threading
import time

import numpy as np
import pytest

from depthstream.capture.session import CaptureSession, SessionStatus
from depthstream.capture.synthetic import SyntheticSensor
from depthstream.core.errors import ConfigurationError
from depthstream.core.observers import FrameObserver


class CollectingObserver(FrameObserver):
    def __init__(self):
        self.timestamps = []
        self.lock = threading.Lock()

    def on_frame(self, pair):
        with self.lock:
            self.timestamps.append(pair.timestamp_ms)


class FailingObserver(FrameObserver):
    def on_frame(self, pair):
        raise RuntimeError("observer bug")


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def make_sensor(**kwargs):
    kwargs.setdefault("width", 16)
    kwargs.setdefault("height", 12)
    kwargs.setdefault("realtime", False)
    kwargs.setdefault("interval_ms", 33)
    return SyntheticSensor(**kwargs)


class TestSyntheticSensor:
    """Tests for SyntheticSensor."""

    def test_generate_deterministic(self):
        sensor = make_sensor()
        frames = sensor.generate(3)
        assert frames.timestamp_ms == 99
        assert frames.depth.dtype == np.float32
        assert frames.depth.shape == (12, 16)
        assert frames.color.shape == (12, 16, 4)
        assert frames.depth[0, 0] == 0.0
        assert frames.complete

    def test_dropped_tick_has_no_color(self):
        sensor = make_sensor(dropped_ticks=[1])
        assert sensor.generate(1).to_frame_pair() is None
        assert sensor.generate(2).to_frame_pair() is not None

    def test_requires_open_before_start(self):
        with pytest.raises(ConfigurationError):
            make_sensor().start()


class TestCaptureSession:
    """Tests for CaptureSession."""

    def test_emits_complete_pairs_only(self):
        observer = CollectingObserver()
        sensor = make_sensor(max_frames=10, dropped_ticks={2, 5})
        session = CaptureSession(sensor, observers=[observer], frame_timeout_ms=50)

        assert session.configure().result() == SessionStatus.READY
        session.start().result()
        assert wait_until(lambda: session.frames_emitted + session.frames_dropped == 10)
        session.close()

        assert observer.timestamps == [0, 33, 99, 132, 198, 231, 264, 297]
        assert session.frames_dropped == 2

    def test_start_configures_when_needed(self):
        session = CaptureSession(make_sensor(max_frames=1), frame_timeout_ms=50)
        assert session.start().result() == SessionStatus.READY
        assert session.is_running
        session.close()

    def test_start_and_stop_idempotent(self):
        session = CaptureSession(make_sensor(max_frames=3), frame_timeout_ms=50)
        session.start().result()
        session.start().result()
        assert session.is_running

        session.stop().result()
        session.stop().result()
        assert not session.is_running
        session.close()

    def test_no_frames_after_stop(self):
        observer = CollectingObserver()
        session = CaptureSession(make_sensor(realtime=True, interval_ms=5), observers=[observer])
        session.start().result()
        assert wait_until(lambda: len(observer.timestamps) > 2)

        session.stop().result()
        count = len(observer.timestamps)
        time.sleep(0.05)
        assert len(observer.timestamps) == count
        session.close()

    def test_denied_authorization_reported_once(self, session_events):
        session = CaptureSession(make_sensor(authorized=False), session_observer=session_events)

        assert session.configure().result() == SessionStatus.NOT_AUTHORIZED
        session.start().result()
        session.start().result()

        assert not session.is_running
        assert session.status.terminal
        assert len(session_events.failures) == 1
        assert session_events.failures[0][0] == "not_authorized"
        session.close()

    def test_configuration_failure_is_terminal(self, session_events):
        session = CaptureSession(make_sensor(fail_configuration=True), session_observer=session_events)

        assert session.start().result() == SessionStatus.CONFIGURATION_FAILED
        assert session.configure().result() == SessionStatus.CONFIGURATION_FAILED
        assert session.start().result() == SessionStatus.CONFIGURATION_FAILED

        assert not session.is_running
        assert len(session_events.failures) == 1
        session.close()

    def test_observer_failure_does_not_stop_stream(self):
        observer = CollectingObserver()
        session = CaptureSession(
            make_sensor(max_frames=5),
            observers=[FailingObserver(), observer],
            frame_timeout_ms=50,
        )
        session.start().result()
        assert wait_until(lambda: len(observer.timestamps) == 5)
        session.close()

    def test_add_observer(self):
        observer = CollectingObserver()
        session = CaptureSession(make_sensor(max_frames=2), frame_timeout_ms=50)
        session.add_observer(observer)
        session.add_observer(observer)
        session.start().result()
        assert wait_until(lambda: len(observer.timestamps) == 2)
        session.close()
        assert observer.timestamps == [0, 33]

    def test_closed_session_rejects_calls(self):
        session = CaptureSession(make_sensor())
        session.close()
        session.close()
        with pytest.raises(RuntimeError):
            session.start()
