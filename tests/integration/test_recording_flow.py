"""Integration tests: synthetic sensor -> gate -> persistence -> sealed dataset.

Runs the full StreamController with a generated 33 ms frame stream.
"""

import json
import time

import pytest

from depthstream.capture.session import SessionStatus
from depthstream.capture.synthetic import SyntheticSensor
from depthstream.controller import StreamController, create_backend
from depthstream.core.errors import ConfigurationError
from depthstream.core.schema import SessionConfig
from depthstream.persistence.codec import decode_color_png, decode_depth_png
from depthstream.persistence.dataset import CAMERA_METADATA_FILENAME, DEPTH_METADATA_FILENAME


def wait_until(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def controller_factory(depthstream_config, recording_events):
    controllers = []

    def _create(**sensor_kwargs):
        sensor_kwargs.setdefault("width", 32)
        sensor_kwargs.setdefault("height", 24)
        sensor_kwargs.setdefault("interval_ms", 33)
        sensor_kwargs.setdefault("realtime", False)
        controller = StreamController(
            depthstream_config,
            backend=SyntheticSensor(**sensor_kwargs),
            recording_observer=recording_events,
        )
        controllers.append(controller)
        return controller

    yield _create

    for controller in controllers:
        controller.close()


class TestRecordingFlow:
    """End-to-end recording scenarios."""

    def test_five_frames_at_100ms(self, controller_factory, recording_events):
        controller = controller_factory()
        assert controller.start() == SessionStatus.READY

        controller.start_recording(SessionConfig(requested_frame_count=5, min_inter_frame_delay_ms=100))
        assert recording_events.done.wait(timeout=10)
        assert controller.recorder.wait_idle(timeout=10)

        sealed = recording_events.completed[0]
        assert sealed.name == "XDataset_01"
        assert recording_events.admitted == [1, 2, 3, 4, 5]

        depth_records = json.loads((sealed.path / DEPTH_METADATA_FILENAME).read_text())
        camera_records = json.loads((sealed.path / CAMERA_METADATA_FILENAME).read_text())
        assert len(depth_records) == len(camera_records) == 5

        timestamps = [r["Timestamp"] for r in depth_records]
        assert timestamps == sorted(timestamps)
        assert [r["Timestamp"] for r in camera_records] == timestamps
        for previous, current in zip(timestamps, timestamps[1:]):
            assert current - previous >= 100
            assert current % 33 == 0

        for ts in timestamps:
            depth = decode_depth_png(sealed.path / f"depth_{ts}.png")
            color = decode_color_png(sealed.path / f"rgb_{ts}.png")
            assert depth.shape == (24, 32)
            assert color.shape == (24, 32, 4)

        assert controller.dataset.verify(sealed.path).consistent

    def test_stop_mid_run_then_clear(self, controller_factory, recording_events):
        controller = controller_factory(realtime=True)
        controller.start()

        controller.start_recording(SessionConfig(10, 100))
        assert wait_until(lambda: len(recording_events.admitted) >= 4)
        controller.stop_recording().result(timeout=10)

        assert controller.recording_state.is_idle
        assert recording_events.completed == []
        assert len(recording_events.stopped) == 1
        assert 4 <= recording_events.stopped[0] < 10
        assert controller.dataset.list_datasets() == []

        scratch = controller.dataset.scratch_directory
        assert any(scratch.iterdir())
        controller.dataset.clear()
        assert not scratch.exists()

    def test_toggle_recording(self, controller_factory, recording_events):
        controller = controller_factory(realtime=True)
        controller.start()
        controller.recorder.configure(SessionConfig(50, 100))

        assert controller.toggle_recording() is None
        assert controller.recording_state.is_recording
        assert wait_until(lambda: len(recording_events.admitted) >= 1)

        future = controller.toggle_recording()
        future.result(timeout=10)
        assert controller.recording_state.is_idle

    def test_sequence_continues_across_restarts(self, depthstream_config, recording_events):
        """A second process sealing under the same prefix gets the next number."""
        names = []
        for _ in range(2):
            controller = StreamController(
                depthstream_config,
                backend=SyntheticSensor(width=32, height=24, interval_ms=33, realtime=False),
                recording_observer=recording_events,
            )
            try:
                controller.start()
                recording_events.done.clear()
                controller.start_recording(SessionConfig(2, 0))
                assert recording_events.done.wait(timeout=10)
                assert controller.recorder.wait_idle(timeout=10)
                names.append(controller.recorder.last_dataset.name)
            finally:
                controller.close()

        assert names == ["XDataset_01", "XDataset_02"]

    def test_last_selection_restored(self, depthstream_config, recording_events):
        with StreamController(depthstream_config, backend=SyntheticSensor(width=8, height=8)) as first:
            first.start_recording(SessionConfig(42, 500))
            first.stop_recording().result(timeout=10)

        with StreamController(depthstream_config, backend=SyntheticSensor(width=8, height=8)) as second:
            assert second.recorder.session_config == SessionConfig(42, 500)

    def test_denied_sensor_reported(self, depthstream_config, session_events):
        controller = StreamController(
            depthstream_config,
            backend=SyntheticSensor(width=8, height=8, authorized=False),
            session_observer=session_events,
        )
        try:
            assert controller.start() == SessionStatus.NOT_AUTHORIZED
            assert len(session_events.failures) == 1
        finally:
            controller.close()

    def test_server_status_when_disabled(self, controller_factory):
        assert controller_factory().server_status == "Server disabled"


def test_create_backend(depthstream_config):
    backend = create_backend(depthstream_config.sensor, realtime=False)
    assert isinstance(backend, SyntheticSensor)
    assert (backend.width, backend.height) == (32, 24)

    depthstream_config.sensor.backend = "kinect"
    with pytest.raises(ConfigurationError):
        create_backend(depthstream_config.sensor)
