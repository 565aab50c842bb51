"""On-demand ZIP archive of the data root with progress reporting."""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from depthstream.core.errors import PackagingError
from depthstream.core.observers import ProgressObserver

logger = logging.getLogger(__name__)


_CHUNK_SIZE = 1024 * 1024


class ArchiveProgress:
    """Thread-safe byte counter of a running compression."""

    def __init__(self):
        self._lock = threading.Lock()
        self._total = 0
        self._done = 0
        self._finished = False

    def begin(self, total_bytes: int) -> None:
        with self._lock:
            self._total = total_bytes
            self._done = 0
            self._finished = False

    def advance(self, nbytes: int) -> None:
        with self._lock:
            self._done += nbytes

    def finish(self) -> None:
        with self._lock:
            self._done = self._total
            self._finished = True

    @property
    def finished(self) -> bool:
        with self._lock:
            return self._finished

    @property
    def fraction_completed(self) -> float:
        """Completed share in [0, 1]; 1.0 once finished."""
        with self._lock:
            if self._finished:
                return 1.0
            if self._total == 0:
                return 0.0
            return min(1.0, self._done / self._total)


@dataclass
class ArchiveResult:
    """Outcome of a successful compression."""

    path: Path
    file_count: int
    total_bytes: int


def _collect_files(source: Path, exclude: List[Path]) -> List[Path]:
    excluded = {p.resolve() for p in exclude}
    files = []
    for root, dirs, names in os.walk(source):
        dirs.sort()
        for name in sorted(names):
            path = Path(root) / name
            if path.is_symlink() or not path.is_file():
                continue
            if path.resolve() in excluded:
                continue
            files.append(path)
    return files


def compress_directory(
    source: Path,
    archive_path: Path,
    progress: Optional[ArchiveProgress] = None,
) -> ArchiveResult:
    """Write a deflated ZIP of every regular file under source.

    Entries are stored relative to source. The archive is built in a
    temporary file next to archive_path and then replaces any prior archive,
    so a failed run never leaves a truncated archive behind.

    Raises:
        PackagingError: If the source is missing or any file cannot be read
            or written
    """
    source = Path(source)
    archive_path = Path(archive_path)
    progress = progress or ArchiveProgress()

    if not source.is_dir():
        raise PackagingError(f"Nothing to compress: {source} is not a directory")

    try:
        archive_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{archive_path.name}.", suffix=".partial", dir=archive_path.parent,
        )
    except OSError as e:
        raise PackagingError(f"Cannot create archive in {archive_path.parent}: {e}") from e
    os.close(fd)
    tmp_path = Path(tmp_name)

    try:
        files = _collect_files(source, [archive_path, tmp_path])
        total_bytes = sum(f.stat().st_size for f in files)
        progress.begin(total_bytes)

        with zipfile.ZipFile(tmp_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for path in files:
                arcname = path.relative_to(source).as_posix()
                with open(path, "rb") as src, zf.open(arcname, "w", force_zip64=True) as dst:
                    while True:
                        chunk = src.read(_CHUNK_SIZE)
                        if not chunk:
                            break
                        dst.write(chunk)
                        progress.advance(len(chunk))

        os.replace(tmp_path, archive_path)
    except (OSError, zipfile.BadZipFile) as e:
        tmp_path.unlink(missing_ok=True)
        raise PackagingError(f"Creation of ZIP archive failed: {e}") from e

    progress.finish()
    logger.info("Compressed %d files (%d bytes) into %s", len(files), total_bytes, archive_path)
    return ArchiveResult(path=archive_path, file_count=len(files), total_bytes=total_bytes)


class ProgressReporter:
    """Forwards ArchiveProgress to a ProgressObserver on a timer thread.

    Usage:
        with ProgressReporter(progress, observer, interval_s=0.3):
            compress_directory(root, archive, progress)
    """

    def __init__(
        self,
        progress: ArchiveProgress,
        observer: ProgressObserver,
        interval_s: float = 0.3,
    ):
        self.progress = progress
        self.observer = observer
        self.interval_s = interval_s
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="depthstream-progress", daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self) -> None:
        while True:
            fraction = self.progress.fraction_completed
            self._report(fraction)
            if fraction >= 1.0:
                return
            if self._stop.wait(self.interval_s):
                if self.progress.finished:
                    self._report(1.0)
                return

    def _report(self, fraction: float) -> None:
        try:
            self.observer.on_progress(fraction)
        except Exception:
            logger.exception("Progress observer failed")

    def __enter__(self) -> ProgressReporter:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
