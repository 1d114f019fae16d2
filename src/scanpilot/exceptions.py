"""Custom exception hierarchy for ScanPilot."""


class ScanPilotError(Exception):
    """Base exception for all ScanPilot errors."""


class ConfigurationError(ScanPilotError):
    """Raised when settings are invalid or missing."""


class ScanInProgressError(ScanPilotError):
    """Raised when a scan is requested while another session is active."""


class AuthenticationCheckpoint(ScanPilotError):
    """Raised when the search provider hits a login or verification wall."""


class BrowserLaunchError(ScanPilotError):
    """Raised when the browser fails to start."""


class SearchExtractionFailure(ScanPilotError):
    """Raised when a search results page does not have the expected shape."""


class PostingScanError(ScanPilotError):
    """Base for per-posting failures recorded on the posting itself."""

    kind = "unknown"


class FetchError(PostingScanError):
    """Raised when a posting page cannot be retrieved."""

    kind = "fetch_error"


class PageParseError(PostingScanError):
    """Raised when a retrieved page yields no usable content."""

    kind = "parse_error"


class NotifierFailure(ScanPilotError):
    """Raised when a notification cannot be delivered."""


class StorageFailure(ScanPilotError):
    """Raised when the index store cannot be read or written."""
