"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class AutosrError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(AutosrError):
    """Raised for issues related to configuration loading or validation."""


class InvalidLinkError(AutosrError):
    """Raised when a link cannot be parsed or has no host component."""


class NoModuleForHostError(AutosrError):
    """Raised when no registered site module claims a host."""

    def __init__(self, host: str):
        super().__init__(f"No module is registered for host '{host}'.")
        self.host = host


class NotTrackedError(AutosrError):
    """Raised when an operation names a link that is not being tracked."""

    def __init__(self, link: str):
        super().__init__(f"We are not tracking this target: {link}")
        self.link = link


class SaveError(AutosrError):
    """Raised when a save request is rejected before it is admitted."""


class DownloaderError(AutosrError):
    """Raised when the external downloader cannot be prepared or started."""


class RecoveryError(AutosrError):
    """
    Base for the expected outcomes of a failed recovery.

    Carries the wall-clock time spent waiting so callers can backdate the end
    of a save to the moment the stream actually stopped.
    """

    def __init__(self, message: str, elapsed: float = 0.0):
        super().__init__(message)
        self.elapsed = elapsed


class TargetNotLiveError(RecoveryError):
    """Raised when a target is not live."""


class StreamURLNotFoundError(RecoveryError):
    """Raised when a live target has no resolvable stream URL."""
