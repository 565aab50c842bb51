"""Cadence gate: turns a high-rate frame stream into a bounded, evenly
spaced recorded subsequence.

The gate holds no lock of its own; the Recorder serializes calls to it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from depthstream.core.schema import SessionConfig


@dataclass(frozen=True)
class Admission:
    """Outcome of offering one frame timestamp to the gate.

    Attributes:
        admitted: Whether the frame should be recorded
        count: Frames admitted so far in this run
        complete: True when this admission reached the requested count
    """

    admitted: bool
    count: int = 0
    complete: bool = False


class CadenceGate:
    """Admit frames at least min_inter_frame_delay_ms apart, up to
    requested_frame_count per run.

    The first frame after enable() is always admitted and becomes the
    reference for the spacing test.
    """

    def __init__(self):
        self._config: Optional[SessionConfig] = None
        self._enabled = False
        self._last_admitted_ms: Optional[int] = None
        self._frames_captured = 0

    def enable(self, config: SessionConfig) -> None:
        """Start a new run with the given parameters."""
        self._config = config
        self._enabled = True
        self._last_admitted_ms = None
        self._frames_captured = 0

    def disable(self) -> int:
        """Stop admitting frames; returns the number admitted this run."""
        self._enabled = False
        return self._frames_captured

    def offer(self, timestamp_ms: int) -> Admission:
        """Decide whether the frame captured at timestamp_ms is recorded."""
        if not self.accepts(timestamp_ms):
            return Admission(False, self._frames_captured)
        return self.admit(timestamp_ms)

    def accepts(self, timestamp_ms: int) -> bool:
        """Whether offer() would admit timestamp_ms; changes nothing."""
        if not self._enabled or self._config is None:
            return False
        if self._last_admitted_ms is None:
            return True
        return timestamp_ms - self._last_admitted_ms >= self._config.min_inter_frame_delay_ms

    def admit(self, timestamp_ms: int) -> Admission:
        """Count a frame that accepts() approved as recorded."""
        self._last_admitted_ms = timestamp_ms
        self._frames_captured += 1

        complete = self._frames_captured >= self._config.requested_frame_count
        if complete:
            self._enabled = False
        return Admission(True, self._frames_captured, complete)

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def frames_captured(self) -> int:
        return self._frames_captured

    @property
    def config(self) -> Optional[SessionConfig]:
        return self._config
