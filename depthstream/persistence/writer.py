"""Concurrent persistence of admitted frame pairs.

Encoding and writing run on a bounded thread pool so the sensor thread only
pays for an enqueue. drain() is the completion barrier: it returns once every
previously submitted pair has been written (or dropped).
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from depthstream.core.errors import PersistenceError
from depthstream.core.schema import FramePair
from depthstream.persistence.codec import encode_color_png, encode_depth_png
from depthstream.persistence.metadata import (
    MetadataLog,
    camera_metadata_record,
    depth_metadata_record,
)

logger = logging.getLogger(__name__)


class PersistenceWorkerPool:
    """Bounded worker pool writing frame pairs into a dataset directory.

    Each unit of work writes depth_<ts>.png and rgb_<ts>.png, then records
    the pair's two metadata records under its submission index. A pair whose
    encode or write fails is dropped as a unit: partial files are removed and
    no metadata is recorded.

    Usage:
        pool = PersistenceWorkerPool(scratch_dir, max_workers=4)
        pool.submit(pair)
        ...
        pool.drain()
        depth_records = pool.depth_records()
    """

    def __init__(
        self,
        output_dir: Optional[Path] = None,
        max_workers: int = 4,
        before_write: Optional[Callable[[int, FramePair], None]] = None,
    ):
        """Initialize the pool.

        Args:
            output_dir: Directory frames are written into
            max_workers: Maximum number of concurrent writers
            before_write: Optional hook run on the worker before encoding
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self.output_dir = Path(output_dir) if output_dir is not None else None
        self.max_workers = max_workers
        self._before_write = before_write

        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="depthstream-save",
        )
        self._metadata = MetadataLog()

        self._cond = threading.Condition()
        self._next_index = 0
        self._outstanding = 0
        self._persisted = 0
        self._failed = 0
        self._closed = False

    # ------------------------------------------------------------------
    # Submission and barrier

    def submit(self, pair: FramePair) -> int:
        """Enqueue a frame pair for persistence without waiting for it.

        Returns:
            Submission index of the pair (capture order)

        Raises:
            RuntimeError: If the pool is shut down or has no output directory
        """
        with self._cond:
            if self._closed:
                raise RuntimeError("Persistence pool is shut down")
            if self.output_dir is None:
                raise RuntimeError("Persistence pool has no output directory")
            index = self._next_index
            self._next_index += 1
            self._outstanding += 1
            output_dir = self.output_dir

        try:
            self._executor.submit(self._persist, index, pair, output_dir)
        except RuntimeError:
            self._complete(success=False)
            raise
        return index

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Block until all submitted work has finished.

        Must not be called from the sensor's capture thread.

        Returns:
            True if the pool drained, False on timeout
        """
        with self._cond:
            return self._cond.wait_for(lambda: self._outstanding == 0, timeout=timeout)

    def _complete(self, success: bool) -> None:
        with self._cond:
            self._outstanding -= 1
            if success:
                self._persisted += 1
            else:
                self._failed += 1
            if self._outstanding == 0:
                self._cond.notify_all()

    # ------------------------------------------------------------------
    # Unit of work

    def _persist(self, index: int, pair: FramePair, output_dir: Path) -> None:
        start = time.perf_counter()
        try:
            if self._before_write is not None:
                self._before_write(index, pair)
            self._write_pair(index, pair, output_dir)
        except Exception as e:
            logger.warning("Dropped frame %d (timestamp %d): %s", index, pair.timestamp_ms, e)
            self._complete(success=False)
            return

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        logger.debug("Saved images, timestamp: %d, time taken: %.0f ms", pair.timestamp_ms, elapsed_ms)
        self._complete(success=True)

    def _write_pair(self, index: int, pair: FramePair, output_dir: Path) -> None:
        depth_path = output_dir / pair.depth_filename
        color_path = output_dir / pair.color_filename
        written: List[Path] = []
        try:
            depth_record = depth_metadata_record(pair)
            camera_record = camera_metadata_record(pair)

            depth_path.write_bytes(encode_depth_png(pair.depth))
            written.append(depth_path)
            color_path.write_bytes(encode_color_png(pair.color))
            written.append(color_path)

            self._metadata.record(index, depth_record, camera_record)
        except (OSError, ValueError) as e:
            for path in written:
                path.unlink(missing_ok=True)
            raise PersistenceError(str(e)) from e

    # ------------------------------------------------------------------
    # Run management

    def reset(self, output_dir: Optional[Path] = None) -> None:
        """Start a new run, optionally writing into a different directory.

        Raises:
            RuntimeError: If work from the previous run is still outstanding
        """
        with self._cond:
            if self._outstanding:
                raise RuntimeError("Cannot reset persistence pool with outstanding work")
            if output_dir is not None:
                self.output_dir = Path(output_dir)
            self._metadata.clear()
            self._next_index = 0
            self._persisted = 0
            self._failed = 0

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work and release the worker threads."""
        with self._cond:
            self._closed = True
        self._executor.shutdown(wait=wait)

    def depth_records(self) -> List[Dict[str, Any]]:
        """Depth-metadata records in capture order."""
        return self._metadata.depth_records()

    def camera_records(self) -> List[Dict[str, Any]]:
        """Camera-metadata records in capture order."""
        return self._metadata.camera_records()

    @property
    def submitted_count(self) -> int:
        with self._cond:
            return self._next_index

    @property
    def pending_count(self) -> int:
        with self._cond:
            return self._outstanding

    @property
    def persisted_count(self) -> int:
        with self._cond:
            return self._persisted

    @property
    def failed_count(self) -> int:
        with self._cond:
            return self._failed

    def __enter__(self) -> PersistenceWorkerPool:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
