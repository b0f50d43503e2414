from typing import List, Optional


class DownloaderError(RuntimeError):
    """Base class for errors reported back to API callers"""


class ValidationError(DownloaderError):
    """Raised when the caller supplied a missing or malformed URL"""


class UpstreamError(DownloaderError):
    """Raised when the extraction API cannot be reached or answers garbage"""


class TransportError(UpstreamError):
    """Raised when a single provider request fails"""


class AllProvidersFailedError(UpstreamError):
    """Raised when every configured provider failed"""

    def __init__(self, reasons: Optional[List[str]] = None):
        super().__init__("Service temporarily unavailable. Please try again.")
        self.reasons = list(reasons or [])


class NormalizeError(DownloaderError):
    """Raised when an upstream payload cannot be turned into a result"""


class NoMediaDataError(NormalizeError):
    """Raised when the upstream payload has no nested data object"""

    def __init__(self, message: str = "No media data found in API response"):
        super().__init__(message)


class DownloadFailedError(DownloaderError):
    """Raised when proxying media bytes fails"""
