"""Exception hierarchy and wire error classification."""

from __future__ import annotations

DEFAULT_RECOVERY = "Stream terminated due to error. Please try again."
TIMEOUT_RECOVERY = "AI analysis took too long. Please try again."


class StreamError(Exception):
    """Base class for failures surfaced by the stream controller."""

    code = "internal"
    recovery = DEFAULT_RECOVERY

    def __init__(self, message: str, *, recovery: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if recovery is not None:
            self.recovery = recovery


class StreamTimeoutError(StreamError):
    """Raised when the overall run deadline expires."""

    code = "timeout"
    recovery = TIMEOUT_RECOVERY

    def __init__(self, timeout_s: float) -> None:
        super().__init__(f"Request timeout after {timeout_s:g}s")
        self.timeout_s = timeout_s


class UpstreamError(StreamError):
    """Raised when the upstream token source fails."""

    code = "upstream"


class FinalPayloadError(StreamError):
    """Raised when the authoritative final value is not a structured payload."""

    code = "invalid_output"


class SinkClosedError(StreamError):
    """Raised when the downstream sink can no longer accept frames."""

    code = "disconnected"


class StreamSetupError(StreamError):
    """Raised by the HTTP binding when an upstream run cannot be started."""

    code = "setup"


class SchemaError(ValueError):
    """Raised when a stream schema file is malformed."""


def classify_error(exc: BaseException) -> tuple[str, str, str]:
    """Return ``(code, message, recovery)`` for an exception."""

    if isinstance(exc, StreamError):
        return exc.code, exc.message, exc.recovery
    message = str(exc) or exc.__class__.__name__
    return UpstreamError.code, message, DEFAULT_RECOVERY


__all__ = [
    "DEFAULT_RECOVERY",
    "TIMEOUT_RECOVERY",
    "FinalPayloadError",
    "SchemaError",
    "SinkClosedError",
    "StreamError",
    "StreamSetupError",
    "StreamTimeoutError",
    "UpstreamError",
    "classify_error",
]
