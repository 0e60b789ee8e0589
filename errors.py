"""Error taxonomy for the sunlight analysis engine."""

from __future__ import annotations


class SunbarError(Exception):
    """Base class for every error raised by the engine."""


class ValidationError(SunbarError, ValueError):
    """Malformed coordinates, bounding box or venue data. Never retried."""


class RequestCancelled(SunbarError):
    """The caller cancelled the request while it was in flight."""


class UpstreamError(SunbarError):
    """Base class for failures talking to the geodata service."""


class UpstreamTimeout(UpstreamError):
    """A single attempt against one endpoint timed out."""

    def __init__(self, endpoint: str, timeout_s: float):
        super().__init__(f"{endpoint} timed out after {timeout_s:g}s")
        self.endpoint = endpoint
        self.timeout_s = timeout_s


class UpstreamHTTPError(UpstreamError):
    """Non-retryable HTTP status from the geodata service."""

    def __init__(self, status_code: int, endpoint: str, reason: str = ""):
        message = f"Overpass API error {status_code} from {endpoint}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class UpstreamUnavailable(UpstreamError):
    """All attempts against all endpoints were exhausted."""

    def __init__(self, attempts: int, last_error: Exception | None = None):
        super().__init__(
            "Overpass API temporarily unavailable. Please try again later."
        )
        self.attempts = attempts
        self.last_error = last_error
