"""On-disk lifecycle of recorded datasets.

Layout under the data root::

    <data_root>/
        AppData/Datasets/          scratch area of the current run
        <prefix>Dataset_01/        sealed datasets
        <prefix>Dataset_02/
        Archive.zip                last export archive

Sealing flushes the metadata arrays into the scratch directory, renames it to
the next numbered name and persists the new sequence value.
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from depthstream.core.config import StorageConfig
from depthstream.core.errors import PackagingError
from depthstream.core.schema import DatasetReport, SealedDataset
from depthstream.persistence.metadata import to_json_array
from depthstream.persistence.preferences import PreferenceStore

logger = logging.getLogger(__name__)


DEPTH_METADATA_FILENAME = "DepthMetadata.json"
CAMERA_METADATA_FILENAME = "CameraMetadata.json"

_DEPTH_IMAGE = re.compile(r"^depth_(-?\d+)\.png$")
_COLOR_IMAGE = re.compile(r"^rgb_(-?\d+)\.png$")


def dataset_name(prefix: str, sequence: int) -> str:
    """Name of the sealed dataset with the given sequence number."""
    return f"{prefix}Dataset_{sequence:02d}"


class DatasetManager:
    """Owns the scratch directory, sealing and clearing.

    Usage:
        manager = DatasetManager(Path("data"), prefs)
        manager.prepare_scratch()
        ...  # frames are written into manager.scratch_directory
        sealed = manager.seal("Stream", depth_records, camera_records)
    """

    def __init__(
        self,
        data_root: Path,
        preferences: PreferenceStore,
        app_dir_name: str = "AppData",
        scratch_dir_name: str = "Datasets",
        archive_name: str = "Archive.zip",
    ):
        self.data_root = Path(data_root)
        self.preferences = preferences
        self.app_directory = self.data_root / app_dir_name
        self.scratch_directory = self.app_directory / scratch_dir_name
        self.archive_path = self.data_root / archive_name

    @classmethod
    def from_config(
        cls,
        config: StorageConfig,
        preferences: PreferenceStore,
        base_dir: Optional[Path] = None,
    ) -> DatasetManager:
        """Create a manager from the storage section of the configuration."""
        return cls(
            data_root=config.get_data_root(base_dir),
            preferences=preferences,
            app_dir_name=config.app_dir_name,
            scratch_dir_name=config.scratch_dir_name,
            archive_name=config.archive_name,
        )

    # ------------------------------------------------------------------
    # Scratch area

    def prepare_scratch(self) -> Path:
        """Ensure an empty scratch directory exists.

        Raises:
            PackagingError: If the directory tree cannot be created
        """
        try:
            if self.scratch_directory.exists():
                shutil.rmtree(self.scratch_directory)
            self.scratch_directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PackagingError(
                f"Cannot create scratch directory {self.scratch_directory}: {e}"
            ) from e
        return self.scratch_directory

    def clear_scratch(self) -> None:
        """Delete the scratch directory and everything in it."""
        if self.scratch_directory.exists():
            shutil.rmtree(self.scratch_directory)
            logger.info("Cleared scratch dataset %s", self.scratch_directory)

    def clear_app_data(self) -> None:
        """Delete every entry of the data root, sealed datasets included."""
        if not self.data_root.exists():
            return
        for entry in self.data_root.iterdir():
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
        logger.info("Cleared app data under %s", self.data_root)

    def clear(self, include_app_data: bool = False) -> None:
        """User-initiated reset of the scratch area or the whole data root."""
        if include_app_data:
            self.clear_app_data()
        else:
            self.clear_scratch()

    # ------------------------------------------------------------------
    # Sealing

    def write_metadata(
        self,
        depth_records: Sequence[Dict[str, Any]],
        camera_records: Sequence[Dict[str, Any]],
        directory: Optional[Path] = None,
    ) -> None:
        """Flush both metadata arrays as JSON files into directory."""
        directory = directory or self.scratch_directory
        (directory / DEPTH_METADATA_FILENAME).write_text(to_json_array(depth_records), encoding="utf-8")
        (directory / CAMERA_METADATA_FILENAME).write_text(to_json_array(camera_records), encoding="utf-8")

    def seal(
        self,
        prefix: str,
        depth_records: Sequence[Dict[str, Any]],
        camera_records: Sequence[Dict[str, Any]],
        failed_frames: int = 0,
    ) -> SealedDataset:
        """Seal the scratch directory into the next numbered dataset.

        Must only be called after the persistence pool has drained.

        Raises:
            PackagingError: If metadata cannot be written, the rename fails or
                the sequence cannot be read or stored; the scratch directory
                is left in place for a retry
        """
        if not self.scratch_directory.is_dir():
            raise PackagingError(f"No scratch dataset at {self.scratch_directory}")

        try:
            self.write_metadata(depth_records, camera_records)
        except OSError as e:
            raise PackagingError(f"Cannot write metadata: {e}") from e

        try:
            sequence = self.preferences.archive_number(prefix) + 1
        except sqlite3.Error as e:
            raise PackagingError(f"Cannot read archive sequence for '{prefix}': {e}") from e
        # Never reuse a name that already exists on disk
        while (self.data_root / dataset_name(prefix, sequence)).exists():
            sequence += 1
        name = dataset_name(prefix, sequence)
        target = self.data_root / name

        try:
            os.rename(self.scratch_directory, target)
        except OSError as e:
            raise PackagingError(f"Cannot move dataset to {target}: {e}") from e

        try:
            self.preferences.store_archive_number(prefix, sequence)
        except (sqlite3.Error, ValueError) as e:
            # An unrecorded number could be handed out again; undo the rename
            self._restore_scratch(target)
            raise PackagingError(f"Cannot store archive sequence for '{prefix}': {e}") from e
        logger.info("Sealed dataset %s with %d frames", name, len(depth_records))

        try:
            self.prepare_scratch()
        except PackagingError as e:
            # Recorder.start prepares the scratch directory again
            logger.warning("Sealed %s but could not recreate scratch directory: %s", name, e)

        return SealedDataset(
            name=name,
            path=target,
            sequence=sequence,
            frame_count=len(depth_records),
            failed_frames=failed_frames,
        )

    def _restore_scratch(self, sealed: Path) -> None:
        try:
            os.rename(sealed, self.scratch_directory)
        except OSError as e:
            logger.error("Cannot move %s back to %s: %s", sealed, self.scratch_directory, e)

    # ------------------------------------------------------------------
    # Inspection

    def list_datasets(self, prefix: Optional[str] = None) -> List[Path]:
        """Sealed dataset directories, sorted by name."""
        if not self.data_root.exists():
            return []
        pattern = re.compile(rf"^{re.escape(prefix) if prefix else '.*'}Dataset_\d+$")
        return sorted(
            p for p in self.data_root.iterdir()
            if p.is_dir() and pattern.match(p.name)
        )

    def verify(self, directory: Optional[Path] = None) -> DatasetReport:
        """Count images and metadata records of a dataset directory.

        A mismatch reveals frames lost to persistence errors.
        """
        directory = Path(directory) if directory is not None else self.scratch_directory
        report = DatasetReport(path=directory)
        if not directory.is_dir():
            return report

        depth_stamps = []
        color_stamps = []
        for entry in directory.iterdir():
            depth_match = _DEPTH_IMAGE.match(entry.name)
            if depth_match:
                depth_stamps.append(int(depth_match.group(1)))
                continue
            color_match = _COLOR_IMAGE.match(entry.name)
            if color_match:
                color_stamps.append(int(color_match.group(1)))

        report.depth_images = len(depth_stamps)
        report.color_images = len(color_stamps)

        depth_records = _load_records(directory / DEPTH_METADATA_FILENAME)
        camera_records = _load_records(directory / CAMERA_METADATA_FILENAME)
        report.depth_records = len(depth_records)
        report.camera_records = len(camera_records)

        depth_times = [r.get("Timestamp") for r in depth_records]
        camera_times = [r.get("Timestamp") for r in camera_records]
        report.ordered = (
            depth_times == camera_times
            and depth_times == sorted(depth_times)
            and sorted(depth_stamps) == depth_times
            and sorted(color_stamps) == depth_times
        )
        return report


def _load_records(path: Path) -> List[Dict[str, Any]]:
    if not path.exists():
        return []
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path.name} is not a JSON array")
    return data
