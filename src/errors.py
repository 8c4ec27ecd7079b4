"""Failure types raised by sweep stages."""


class SweepError(Exception):
    """Base class for every stage failure; the message is the diagnostic."""


class TransportError(SweepError):
    """Connection-level failure: DNS, refused, reset, timeout. No status code."""


class HttpStatusError(SweepError):
    def __init__(self, message: str, status_code: int, reason: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


class DecodeError(SweepError):
    """Malformed listing or bulk-write response body."""
