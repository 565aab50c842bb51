"""Unit tests for the persistence worker pool."""

import threading
import time

import numpy as np
import pytest

from depthstream.persistence.codec import decode_depth_png
from depthstream.persistence.writer import PersistenceWorkerPool


class TestPersistenceWorkerPool:
    """Tests for submission, the drain barrier and failure handling."""

    def test_writes_files_and_metadata(self, tmp_path, make_pair):
        with PersistenceWorkerPool(tmp_path, max_workers=2) as pool:
            for ts in (0, 100, 200):
                pool.submit(make_pair(ts))
            assert pool.drain(timeout=10)

            assert pool.persisted_count == 3
            assert pool.failed_count == 0
            assert len(pool.depth_records()) == len(pool.camera_records()) == 3

        for ts in (0, 100, 200):
            assert (tmp_path / f"depth_{ts}.png").exists()
            assert (tmp_path / f"rgb_{ts}.png").exists()

    def test_depth_file_is_lossless(self, tmp_path, make_pair):
        pair = make_pair(7)
        with PersistenceWorkerPool(tmp_path) as pool:
            pool.submit(pair)
            pool.drain(timeout=10)
        np.testing.assert_array_equal(decode_depth_png(tmp_path / "depth_7.png"), pair.depth)

    def test_submit_returns_capture_order_index(self, tmp_path, make_pair):
        with PersistenceWorkerPool(tmp_path) as pool:
            assert [pool.submit(make_pair(ts)) for ts in (5, 6, 7)] == [0, 1, 2]
            pool.drain(timeout=10)

    def test_metadata_order_independent_of_completion_order(self, tmp_path, make_pair):
        """Earlier submissions finish last, records still follow capture order."""
        timestamps = [0, 100, 200, 300, 400, 500]

        def slow_early_frames(index, pair):
            time.sleep(0.05 * (len(timestamps) - index))

        with PersistenceWorkerPool(tmp_path, max_workers=6, before_write=slow_early_frames) as pool:
            for ts in timestamps:
                pool.submit(make_pair(ts))
            assert pool.drain(timeout=10)

            assert [r["Timestamp"] for r in pool.depth_records()] == timestamps
            assert [r["Timestamp"] for r in pool.camera_records()] == timestamps

    def test_drain_waits_for_outstanding_work(self, tmp_path, make_pair):
        release = threading.Event()

        with PersistenceWorkerPool(tmp_path, before_write=lambda i, p: release.wait(5)) as pool:
            pool.submit(make_pair(0))
            assert pool.drain(timeout=0.05) is False
            assert pool.pending_count == 1

            release.set()
            assert pool.drain(timeout=5) is True
            assert pool.pending_count == 0
            assert pool.persisted_count == 1

    def test_drain_with_nothing_submitted(self, tmp_path):
        with PersistenceWorkerPool(tmp_path) as pool:
            assert pool.drain(timeout=0.1)

    def test_failed_frame_dropped_as_unit(self, tmp_path, make_pair):
        """A failing pair is skipped; the rest of the session continues."""
        def fail_second(index, pair):
            if index == 1:
                raise OSError("disk full")

        with PersistenceWorkerPool(tmp_path, before_write=fail_second) as pool:
            for ts in (0, 100, 200):
                pool.submit(make_pair(ts))
            assert pool.drain(timeout=10)

            assert pool.persisted_count == 2
            assert pool.failed_count == 1
            assert [r["Timestamp"] for r in pool.depth_records()] == [0, 200]
            assert len(pool.camera_records()) == 2

        assert not (tmp_path / "depth_100.png").exists()
        assert not (tmp_path / "rgb_100.png").exists()

    def test_partial_files_removed_on_write_error(self, tmp_path, make_pair):
        """If the color file cannot be written, the depth file is removed too."""
        pair = make_pair(9)
        (tmp_path / pair.color_filename).mkdir()  # write_bytes on a directory fails

        with PersistenceWorkerPool(tmp_path) as pool:
            pool.submit(pair)
            pool.drain(timeout=10)
            assert pool.failed_count == 1
            assert pool.depth_records() == []

        assert not (tmp_path / pair.depth_filename).exists()

    def test_reset_starts_new_run(self, tmp_path, make_pair):
        first = tmp_path / "first"
        second = tmp_path / "second"
        first.mkdir()
        second.mkdir()

        with PersistenceWorkerPool(first) as pool:
            pool.submit(make_pair(1))
            pool.drain(timeout=10)

            pool.reset(second)
            assert pool.depth_records() == []
            assert pool.submit(make_pair(2)) == 0
            pool.drain(timeout=10)

        assert (second / "depth_2.png").exists()
        assert not (second / "depth_1.png").exists()

    def test_reset_refused_with_outstanding_work(self, tmp_path, make_pair):
        release = threading.Event()
        with PersistenceWorkerPool(tmp_path, before_write=lambda i, p: release.wait(5)) as pool:
            pool.submit(make_pair(0))
            with pytest.raises(RuntimeError):
                pool.reset(tmp_path)
            release.set()
            pool.drain(timeout=5)

    def test_submit_without_output_dir(self, make_pair):
        with PersistenceWorkerPool() as pool:
            with pytest.raises(RuntimeError):
                pool.submit(make_pair(0))

    def test_submit_after_shutdown(self, tmp_path, make_pair):
        pool = PersistenceWorkerPool(tmp_path)
        pool.shutdown()
        with pytest.raises(RuntimeError):
            pool.submit(make_pair(0))

    def test_invalid_worker_count(self):
        with pytest.raises(ValueError):
            PersistenceWorkerPool(max_workers=0)
