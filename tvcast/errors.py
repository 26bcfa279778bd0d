"""
Error taxonomy

Exceptions raised across the ingestion pipeline and the streaming session manager.
"""


class TvcastError(Exception):
    """Base class for all tvcast errors"""
    pass


class ConfigurationError(TvcastError):
    """Raised at startup when required settings are missing or inconsistent"""
    pass


class NetworkError(TvcastError):
    """Transient network failure (timeout, connection error, HTTP 5xx)"""
    pass


class ResponseTooLargeError(TvcastError):
    """Raised when a response body exceeds the configured size cap"""
    pass


class FetchError(TvcastError):
    """Raised when every fetch attempt failed and no cached copy exists"""

    def __init__(self, url: str, cache_key: str, last_error: Exception | None = None):
        self.url = url
        self.cache_key = cache_key
        self.last_error = last_error
        message = f"Failed to fetch {url} (cache key '{cache_key}')"
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message)


class ParseError(TvcastError):
    """Malformed playlist line or guide element"""
    pass


class StreamPipelineError(TvcastError):
    """Abnormal termination of the media pipeline process"""

    def __init__(self, returncode: int | None, stderr_tail: str = ""):
        self.returncode = returncode
        self.stderr_tail = stderr_tail
        super().__init__(f"ffmpeg exited with code {returncode}")


class DataIntegrityWarning(UserWarning):
    """Suspicious but tolerated data, e.g. a programme for an unknown channel"""
    pass
