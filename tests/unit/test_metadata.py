"""Unit tests for per-frame metadata records."""

import json
import threading

import pytest

from depthstream.persistence.metadata import (
    DEPTH_DATA_TYPE,
    MetadataLog,
    camera_metadata_record,
    depth_metadata_record,
    to_json_array,
)


DEPTH_KEYS = {
    "Timestamp",
    "LensDistortionCenter",
    "LensDistortionLookupTable",
    "LensDistortionInverseLookupTable",
    "PixelSize",
    "IntrinsicMatrixReferenceDimensions",
    "IntrinsicMatrix.0",
    "IntrinsicMatrix.1",
    "IntrinsicMatrix.2",
    "ExtrinsicMatrix.0",
    "ExtrinsicMatrix.1",
    "ExtrinsicMatrix.2",
    "Accuracy",
    "Quality",
    "DataType",
    "DepthDataFiltered",
    "Width",
    "Height",
    "MediaType",
    "MediaSubType",
    "BytesPerRow",
    "ColorSpace",
    "BitsPerComponent",
}


class TestDepthMetadataRecord:
    """Tests for depth_metadata_record."""

    def test_has_all_keys(self, make_pair):
        record = depth_metadata_record(make_pair(100))
        assert set(record) == DEPTH_KEYS

    def test_constant_fields(self, make_pair):
        record = depth_metadata_record(make_pair(100))
        assert record["Timestamp"] == 100
        assert record["ColorSpace"] == "Gray"
        assert record["BitsPerComponent"] == 32
        assert record["MediaSubType"] == "fdep"
        assert record["DataType"] == DEPTH_DATA_TYPE
        assert record["DepthDataFiltered"] is False

    def test_dimensions(self, make_pair):
        record = depth_metadata_record(make_pair(0))
        assert record["Width"] == 32
        assert record["Height"] == 24
        assert record["BytesPerRow"] == 32 * 4
        assert record["IntrinsicMatrixReferenceDimensions"] == [64, 48]

    def test_intrinsics_rescaled_row_major(self, make_pair):
        record = depth_metadata_record(make_pair(0))
        assert record["IntrinsicMatrix.0"] == pytest.approx([30.0, 0.0, 16.0])
        assert record["IntrinsicMatrix.1"] == pytest.approx([0.0, 30.0, 12.0])
        assert record["IntrinsicMatrix.2"] == pytest.approx([0.0, 0.0, 1.0])

    def test_extrinsics_top_three_rows(self, make_pair):
        record = depth_metadata_record(make_pair(0))
        assert record["ExtrinsicMatrix.0"] == [1.0, 0.0, 0.0, 0.0]
        assert record["ExtrinsicMatrix.2"] == [0.0, 0.0, 1.0, 0.0]

    def test_distortion_tables(self, make_pair):
        record = depth_metadata_record(make_pair(0))
        assert record["LensDistortionCenter"] == [32.0, 24.0]
        assert record["LensDistortionLookupTable"] == pytest.approx([0.1, -0.05, 0.0, 0.0, 0.01])
        assert record["LensDistortionInverseLookupTable"] == []

    def test_json_serializable(self, make_pair):
        json.dumps(depth_metadata_record(make_pair(0)))


class TestCameraMetadataRecord:
    """Tests for camera_metadata_record."""

    def test_device_and_format(self, make_pair):
        record = camera_metadata_record(make_pair(42))
        assert record["Timestamp"] == 42
        assert record["DeviceType"] == "Test Sensor"
        assert record["Serial"] == "TEST-123"
        assert record["Width"] == 32
        assert record["Height"] == 24
        assert record["MediaType"] == "vide"
        assert record["MediaSubType"] == "RGBA"

    def test_includes_exposure_settings(self, make_pair):
        record = camera_metadata_record(make_pair(42))
        assert record["ExposureDuration"] == 8000
        assert record["Gain"] == 32


class TestMetadataLog:
    """Tests for the index-ordered accumulator."""

    def test_records_sorted_by_index(self):
        log = MetadataLog()
        for index in (2, 0, 1):
            log.record(index, {"Timestamp": index}, {"Timestamp": index})

        assert [r["Timestamp"] for r in log.depth_records()] == [0, 1, 2]
        assert [r["Timestamp"] for r in log.camera_records()] == [0, 1, 2]
        assert len(log) == 3

    def test_duplicate_index_rejected(self):
        log = MetadataLog()
        log.record(0, {}, {})
        with pytest.raises(ValueError):
            log.record(0, {}, {})

    def test_concurrent_records_not_lost(self):
        log = MetadataLog()

        def writer(start):
            for i in range(start, 400, 4):
                log.record(i, {"i": i}, {"i": i})

        threads = [threading.Thread(target=writer, args=(s,)) for s in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(log) == 400
        assert [r["i"] for r in log.depth_records()] == list(range(400))

    def test_clear(self):
        log = MetadataLog()
        log.record(0, {}, {})
        log.clear()
        assert len(log) == 0


def test_to_json_array_is_top_level_array():
    text = to_json_array([{"Timestamp": 1}, {"Timestamp": 2}])
    assert json.loads(text) == [{"Timestamp": 1}, {"Timestamp": 2}]
    assert json.loads(to_json_array([])) == []
