"""Response models for the export HTTP server."""

from typing import List, Optional

from pydantic import BaseModel, Field


class HealthStatus(BaseModel):
    """Export server health."""
    status: str = "ok"
    server: str = ""
    data_root: str
    datasets: int = 0
    disk_free_mb: float = 0.0
    archive_available: bool = False


class DatasetSummary(BaseModel):
    """A sealed dataset and the result of verifying it."""
    name: str
    frame_count: int = 0
    depth_images: int = 0
    color_images: int = 0
    depth_records: int = 0
    camera_records: int = 0
    consistent: bool = True


class DatasetList(BaseModel):
    """All sealed datasets under the data root."""
    datasets: List[DatasetSummary] = Field(default_factory=list)
    total: int = 0
    archive: Optional[str] = None
