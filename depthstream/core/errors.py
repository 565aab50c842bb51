"""Exception hierarchy for DepthStream.

Session-lifecycle errors (authorization, configuration) are terminal for a
capture session. Packaging and transport errors abort a single operation and
leave recorded data untouched so it can be retried.
"""


class DepthStreamError(Exception):
    """Base class for all DepthStream errors."""


class AuthorizationError(DepthStreamError):
    """Access to the depth sensor was denied."""


class ConfigurationError(DepthStreamError):
    """The sensor could not be opened or configured."""


class PersistenceError(DepthStreamError):
    """A single frame pair could not be encoded or written."""


class PackagingError(DepthStreamError):
    """Scratch preparation, sealing or compression failed."""


class TransportError(DepthStreamError):
    """The export server could not bind or has no reachable address."""


class RecordingStateError(DepthStreamError):
    """An operation is not allowed in the current recording state."""
