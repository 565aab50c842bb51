"""Persistence layer: frame encoding, metadata, worker pool and dataset lifecycle."""

from depthstream.persistence.codec import (
    decode_color_png,
    decode_depth_png,
    encode_color_png,
    encode_depth_png,
)
from depthstream.persistence.metadata import (
    MetadataLog,
    camera_metadata_record,
    depth_metadata_record,
    to_json_array,
)
from depthstream.persistence.preferences import PreferenceStore
from depthstream.persistence.writer import PersistenceWorkerPool
from depthstream.persistence.dataset import (
    CAMERA_METADATA_FILENAME,
    DEPTH_METADATA_FILENAME,
    DatasetManager,
    dataset_name,
)

__all__ = [
    "decode_color_png",
    "decode_depth_png",
    "encode_color_png",
    "encode_depth_png",
    "MetadataLog",
    "camera_metadata_record",
    "depth_metadata_record",
    "to_json_array",
    "PreferenceStore",
    "PersistenceWorkerPool",
    "CAMERA_METADATA_FILENAME",
    "DEPTH_METADATA_FILENAME",
    "DatasetManager",
    "dataset_name",
]
