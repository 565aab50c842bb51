"""Recording layer: cadence gate and recording lifecycle."""

from depthstream.recording.gate import Admission, CadenceGate
from depthstream.recording.recorder import Recorder

__all__ = [
    "Admission",
    "CadenceGate",
    "Recorder",
]
