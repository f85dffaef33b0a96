class DetectionError(Exception):
    """Base class for failures of a similarity checking run."""


class ConfigMismatch(DetectionError, ValueError):
    """Raised when band/row settings or signature hash families disagree."""


class InsufficientData(DetectionError):
    """Raised when a run has fewer than two documents with text to compare."""


class RunCancelled(DetectionError):
    """Raised when a run is cancelled or exceeds its deadline."""


class InvalidRunState(DetectionError):
    """Raised when a checking run is driven out of its lifecycle order."""
