"""FastAPI application of the export server.

Serves the bundled viewer and, on any ``*.zip`` request, compresses the
whole data root into a fresh archive and returns it.
"""

import logging
import os
import threading
from pathlib import Path, PurePosixPath
from typing import Callable, Optional

import psutil
from fastapi import FastAPI
from fastapi.responses import FileResponse, PlainTextResponse, StreamingResponse

from depthstream.core.errors import PackagingError
from depthstream.core.observers import ProgressObserver
from depthstream.export.archive import ArchiveProgress, ProgressReporter, compress_directory
from depthstream.export.models import DatasetList, DatasetSummary, HealthStatus
from depthstream.persistence.dataset import DatasetManager

logger = logging.getLogger(__name__)


STATIC_DIR = Path(__file__).parent / "static"

# Request suffix -> bundled asset and media type
STATIC_ROUTES = {
    ".js": ("index.js", "application/javascript"),
    ".png": ("test.png", "image/png"),
    ".ico": ("favicon.ico", "image/x-icon"),
}


def _notify(observer: ProgressObserver, method: str, *args) -> None:
    try:
        getattr(observer, method)(*args)
    except Exception:
        logger.exception("Progress observer failed in %s", method)


def _stream_file(handle, chunk_size: int = 1024 * 1024):
    try:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        handle.close()


def create_app(
    manager: DatasetManager,
    observer: Optional[ProgressObserver] = None,
    progress_interval_s: float = 0.3,
    status_provider: Optional[Callable[[], str]] = None,
    static_dir: Path = STATIC_DIR,
) -> FastAPI:
    """Build the export application.

    Args:
        manager: Dataset manager owning the data root and archive path
        observer: Receives compression start, progress, completion and errors
        progress_interval_s: Period of progress notifications
        status_provider: Returns the server status string for /health
        static_dir: Directory holding the viewer assets
    """
    observer = observer or ProgressObserver()
    compress_lock = threading.Lock()

    app = FastAPI(
        title="DepthStream Export",
        description="Retrieve recorded RGB-D datasets",
        version="0.1.0",
    )
    app.state.manager = manager
    app.state.observer = observer

    def asset(name: str, media_type: str):
        path = static_dir / name
        if not path.is_file():
            logger.warning("Missing bundled asset %s", path)
            return PlainTextResponse("Error, cannot read file", status_code=500)
        return FileResponse(path, media_type=media_type)

    def archive():
        _notify(observer, "on_compression_started")
        progress = ArchiveProgress()
        # One compression at a time; concurrent requests get the fresh archive in turn
        with compress_lock:
            try:
                with ProgressReporter(progress, observer, progress_interval_s):
                    result = compress_directory(manager.data_root, manager.archive_path, progress)
                # A later request replaces the file, not this open snapshot
                snapshot = open(result.path, "rb")
            except (PackagingError, OSError) as e:
                logger.error("Archive request failed: %s", e)
                _notify(observer, "on_error", str(e))
                return PlainTextResponse(f"Error: {e}", status_code=500)

        _notify(observer, "on_compression_completed", result)
        size = os.fstat(snapshot.fileno()).st_size
        return StreamingResponse(
            _stream_file(snapshot),
            media_type="application/zip",
            headers={
                "Content-Length": str(size),
                "Content-Disposition": f'attachment; filename="{result.path.name}"',
            },
        )

    @app.get("/health", response_model=HealthStatus)
    def health():
        """Health check endpoint."""
        data_root = manager.data_root
        disk_free_mb = 0.0
        if data_root.exists():
            disk_free_mb = psutil.disk_usage(str(data_root)).free / (1024 * 1024)
        return HealthStatus(
            status="ok",
            server=status_provider() if status_provider else "running",
            data_root=str(data_root),
            datasets=len(manager.list_datasets()),
            disk_free_mb=round(disk_free_mb, 1),
            archive_available=manager.archive_path.exists(),
        )

    @app.get("/api/datasets", response_model=DatasetList)
    def list_datasets():
        """List sealed datasets with their verification counts."""
        summaries = []
        for path in manager.list_datasets():
            try:
                report = manager.verify(path)
            except ValueError as e:
                logger.warning("Unreadable metadata in %s: %s", path.name, e)
                summaries.append(DatasetSummary(name=path.name, consistent=False))
                continue
            summaries.append(DatasetSummary(
                name=path.name,
                frame_count=report.frame_count,
                depth_images=report.depth_images,
                color_images=report.color_images,
                depth_records=report.depth_records,
                camera_records=report.camera_records,
                consistent=report.consistent,
            ))
        archive_path = manager.archive_path
        return DatasetList(
            datasets=summaries,
            total=len(summaries),
            archive=archive_path.name if archive_path.exists() else None,
        )

    @app.get("/")
    def index():
        return asset("index.html", "text/html")

    @app.get("/{path:path}")
    def resource(path: str):
        suffix = PurePosixPath(path).suffix.lower()
        if suffix == ".zip":
            return archive()
        if suffix in STATIC_ROUTES:
            return asset(*STATIC_ROUTES[suffix])

        logger.warning("No such file: /%s", path)
        return PlainTextResponse(f"Error: no such file /{path}", status_code=404)

    return app
