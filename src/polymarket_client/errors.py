"""
Error taxonomy for the Polymarket client.

Order construction and signing errors always reach the caller. Transport
errors are recovered by the streaming session until its retry budget runs
out, at which point a single StreamUnavailable is surfaced.
"""

from typing import Any, Optional


class ClobError(Exception):
    """Base exception for all client errors."""
    pass


class PrecisionError(ClobError, ValueError):
    """A decimal value cannot be represented at the target fixed-point scale."""

    def __init__(self, value: Any, decimals: int):
        super().__init__(
            f"{value} has more than {decimals} fractional digits"
        )
        self.value = value
        self.decimals = decimals


class InvalidOrderError(ClobError, ValueError):
    """Order request violates market constraints."""
    pass


class SigningError(ClobError):
    """Key unavailable or payload cannot be signed."""
    pass


class TransportError(ClobError):
    """Connection-level failure of the stream transport."""
    pass


class StreamUnavailable(ClobError):
    """Reconnection budget exhausted; the session is closed."""

    def __init__(self, message: str, attempts: int = 0, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class DecodeWarning(ClobError):
    """Inbound frame could not be decoded. The frame is dropped."""

    def __init__(self, message: str, frame: Any = None):
        super().__init__(message)
        self.frame = frame
