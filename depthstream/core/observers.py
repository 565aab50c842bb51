"""Observer interfaces passed to DepthStream components at construction.

Every method has a no-op default so implementations override only the
events they care about.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from depthstream.core.schema import FramePair, SealedDataset


class FrameObserver:
    """Receives every synchronized frame pair, before any gating.

    Called on the sensor's capture thread; implementations must return
    quickly.
    """

    def on_frame(self, pair: FramePair) -> None:
        pass


class SessionObserver:
    """Receives terminal capture-session failures."""

    def on_session_failed(self, status: str, message: str) -> None:
        pass


class RecordingObserver:
    """Receives recording progress and completion events."""

    def on_frame_admitted(self, count: int) -> None:
        """A frame pair was admitted; count is the running total."""
        pass

    def on_capture_complete(self, dataset: Optional[SealedDataset]) -> None:
        """All requested frames are persisted and the dataset is sealed.

        dataset is None when sealing failed; on_error carries the reason.
        """
        pass

    def on_recording_stopped(self, frames_captured: int) -> None:
        """A manual stop has drained outstanding work."""
        pass

    def on_error(self, message: str) -> None:
        pass


class ProgressObserver:
    """Receives archive compression events from the export server."""

    def on_compression_started(self) -> None:
        pass

    def on_progress(self, fraction: float) -> None:
        pass

    def on_compression_completed(self, result) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass
