"""Export server: static viewer and on-demand archive of the data root."""

from depthstream.export.archive import (
    ArchiveProgress,
    ArchiveResult,
    ProgressReporter,
    compress_directory,
)
from depthstream.export.app import create_app
from depthstream.export.server import SERVER_ERROR_STATUS, ExportServer, local_ip_address

__all__ = [
    "ArchiveProgress",
    "ArchiveResult",
    "ProgressReporter",
    "compress_directory",
    "create_app",
    "SERVER_ERROR_STATUS",
    "ExportServer",
    "local_ip_address",
]
