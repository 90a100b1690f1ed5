class LanScoutError(Exception):
    """Base class for scanner errors."""


class NoNetworkError(LanScoutError):
    """No usable local network context is available."""

    def __init__(self, message: str = "No network connection"):
        super().__init__(message)


class ScanCancelled(LanScoutError):
    """The scan's cancellation token fired."""


class ScanInProgressError(LanScoutError):
    """A full scan was requested while another one is running."""
